"""Google AI (Gemini) key validator."""

from __future__ import annotations

import httpx

from keyscout.models import IssuerType
from keyscout.validators.base import IssuerValidator, ValidationOutcome, ValidationResult, response_detail

# Google answers a bad key with 400 rather than 401.
_INVALID_KEY_MARKERS = ("API_KEY_INVALID", "API key not valid")


class GoogleAIValidator(IssuerValidator):
    issuer = IssuerType.GOOGLE_AI
    name = "Google AI"
    default_base_url = "https://generativelanguage.googleapis.com"
    patterns = (r"(?<![A-Za-z0-9_-])AIza[0-9A-Za-z_-]{35}(?![A-Za-z0-9_-])",)

    async def _request(self, client: httpx.AsyncClient, secret: str) -> httpx.Response:
        return await client.get(f"{self.base_url}/v1beta/models", params={"key": secret})

    def classify(self, resp: httpx.Response) -> ValidationResult:
        if resp.status_code == 400 and any(m in resp.text for m in _INVALID_KEY_MARKERS):
            return ValidationResult(ValidationOutcome.UNAUTHORIZED, response_detail(resp))
        return super().classify(resp)
