"""Anthropic key validator — lists models with the x-api-key header."""

from __future__ import annotations

import httpx

from keyscout.models import IssuerType
from keyscout.validators.base import IssuerValidator

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicValidator(IssuerValidator):
    issuer = IssuerType.ANTHROPIC
    name = "Anthropic"
    default_base_url = "https://api.anthropic.com"
    patterns = (
        r"(?<![A-Za-z0-9_-])sk-ant-api\d{2}-[A-Za-z0-9_-]{80,}(?![A-Za-z0-9_-])",
        r"(?<![A-Za-z0-9_-])sk-ant-[A-Za-z0-9_-]{32,}(?![A-Za-z0-9_-])",
    )

    async def _request(self, client: httpx.AsyncClient, secret: str) -> httpx.Response:
        return await client.get(
            f"{self.base_url}/v1/models",
            headers={"x-api-key": secret, "anthropic-version": ANTHROPIC_VERSION},
        )
