"""OpenAI key validator — lists models with a bearer token."""

from __future__ import annotations

import httpx

from keyscout.models import IssuerType
from keyscout.validators.base import IssuerValidator


class OpenAIValidator(IssuerValidator):
    issuer = IssuerType.OPENAI
    name = "OpenAI"
    default_base_url = "https://api.openai.com"
    patterns = (
        r"(?<![A-Za-z0-9_-])sk-proj-[A-Za-z0-9_-]{40,}(?![A-Za-z0-9_-])",
        r"(?<![A-Za-z0-9_-])sk-(?:svcacct|admin)-[A-Za-z0-9_-]{40,}(?![A-Za-z0-9_-])",
        r"(?<![A-Za-z0-9_-])sk-[A-Za-z0-9]{20}T3BlbkFJ[A-Za-z0-9]{20}(?![A-Za-z0-9_-])",
        # Legacy keys have no fixed marker; this also matches other issuers'
        # sk- keys, which the verifier's fallback sorts out.
        r"(?<![A-Za-z0-9_-])sk-[A-Za-z0-9_-]{32,}(?![A-Za-z0-9_-])",
    )

    async def _request(self, client: httpx.AsyncClient, secret: str) -> httpx.Response:
        return await client.get(
            f"{self.base_url}/v1/models",
            headers={"Authorization": f"Bearer {secret}"},
        )
