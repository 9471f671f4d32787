"""
Issuer validator base — one live API check per credential issuer.

Subclasses declare the issuer, a display name, recognition patterns, and the
HTTP request that proves a key works. The base class turns transport failures
and HTTP status codes into a ``ValidationResult``.

Usage:
    class AcmeValidator(IssuerValidator):
        issuer = IssuerType.ACME
        name = "Acme"
        patterns = (r"acme_[A-Za-z0-9]{32}",)

        async def _request(self, client, secret):
            return await client.get(f"{self.base_url}/v1/me", headers={...})
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum

import httpx

from keyscout.models import IssuerType

logger = logging.getLogger(__name__)

DETAIL_MAX_CHARS = 500


class ValidationOutcome(StrEnum):
    VALID = "valid"  # conclusive success
    HTTP_ERROR = "http_error"  # ambiguous rejection, detail decides
    UNAUTHORIZED = "unauthorized"  # explicit rejection by this issuer
    NETWORK_ERROR = "network_error"  # transport/timeout, says nothing about the key
    PROVIDER_ERROR = "provider_error"  # anything else


@dataclass(frozen=True)
class ValidationResult:
    outcome: ValidationOutcome
    detail: str = ""


class IssuerValidator(ABC):
    """Classifies a candidate secret against one issuer's live API."""

    issuer: IssuerType
    name: str
    patterns: tuple[str, ...] = ()
    default_base_url: str = ""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} issuer={self.issuer}>"

    async def validate(self, secret: str) -> ValidationResult:
        """Call the issuer's API with ``secret`` and classify the response."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await self._request(client, secret)
        except httpx.TransportError as e:
            return ValidationResult(ValidationOutcome.NETWORK_ERROR, f"{type(e).__name__}: {e}")
        except httpx.HTTPError as e:
            return ValidationResult(ValidationOutcome.PROVIDER_ERROR, f"{type(e).__name__}: {e}")
        return self.classify(resp)

    @abstractmethod
    async def _request(self, client: httpx.AsyncClient, secret: str) -> httpx.Response:
        """Issue the cheapest authenticated request the issuer offers."""

    def classify(self, resp: httpx.Response) -> ValidationResult:
        """Map an HTTP response to an outcome. Override for issuer quirks."""
        if resp.is_success:
            return ValidationResult(ValidationOutcome.VALID)
        if resp.status_code == 401:
            return ValidationResult(ValidationOutcome.UNAUTHORIZED, response_detail(resp))
        return ValidationResult(ValidationOutcome.HTTP_ERROR, response_detail(resp))


def response_detail(resp: httpx.Response) -> str:
    return f"HTTP {resp.status_code}: {resp.text[:DETAIL_MAX_CHARS]}"
