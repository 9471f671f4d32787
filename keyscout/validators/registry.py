"""
Validator registry — the ordered, immutable set of issuer validators.

Every recognition pattern is compiled when the registry is built, so a bad
pattern fails at startup instead of in the middle of a scrape.

Usage:
    registry = default_registry()
    for issuer, pattern in registry.pattern_pairs():
        ...
    candidates = registry.candidates_for(credential)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from keyscout.errors import DuplicateIssuerError, InvalidPatternError
from keyscout.models import Credential, IssuerType
from keyscout.validators.anthropic import AnthropicValidator
from keyscout.validators.base import IssuerValidator
from keyscout.validators.google import GoogleAIValidator
from keyscout.validators.openai import OpenAIValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredValidator:
    validator: IssuerValidator
    patterns: tuple[re.Pattern[str], ...]

    @property
    def issuer(self) -> IssuerType:
        return self.validator.issuer

    def matches(self, secret: str) -> bool:
        return any(p.search(secret) for p in self.patterns)


def _compile(validator: IssuerValidator, pattern: str) -> re.Pattern[str]:
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        raise InvalidPatternError(validator.name, pattern, str(e)) from e
    if compiled.fullmatch(""):
        raise InvalidPatternError(validator.name, pattern, "matches the empty string")
    return compiled


class ValidatorRegistry:
    """Ordered validators, one per issuer, with pre-compiled patterns."""

    def __init__(self, validators: Iterable[IssuerValidator]) -> None:
        entries: list[RegisteredValidator] = []
        seen: set[IssuerType] = set()
        for validator in validators:
            if validator.issuer in seen:
                raise DuplicateIssuerError(f"Issuer {validator.issuer} registered twice")
            if not validator.patterns:
                raise InvalidPatternError(validator.name, "", "no recognition patterns")
            seen.add(validator.issuer)
            compiled = tuple(_compile(validator, p) for p in validator.patterns)
            entries.append(RegisteredValidator(validator, compiled))
        self._entries: tuple[RegisteredValidator, ...] = tuple(entries)

    def __iter__(self) -> Iterator[RegisteredValidator]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def names(self) -> list[str]:
        return [e.validator.name for e in self._entries]

    def get(self, issuer: IssuerType) -> RegisteredValidator | None:
        for entry in self._entries:
            if entry.issuer == issuer:
                return entry
        return None

    def pattern_pairs(self) -> list[tuple[IssuerType, re.Pattern[str]]]:
        """All ``(issuer, pattern)`` pairs in registry order, for the matcher."""
        return [(e.issuer, p) for e in self._entries for p in e.patterns]

    def candidates_for(self, credential: Credential) -> list[IssuerValidator]:
        """Validators to try for a key: its assigned issuer first, then every
        other issuer whose pattern matches the secret, in registry order."""
        result: list[IssuerValidator] = []
        assigned = self.get(credential.api_type)
        if assigned is not None:
            result.append(assigned.validator)
        for entry in self._entries:
            if entry.issuer == credential.api_type:
                continue
            if entry.matches(credential.api_key):
                result.append(entry.validator)
        return result


def default_registry(timeout: float = 15.0) -> ValidatorRegistry:
    """The built-in issuers: OpenAI, Anthropic, Google AI."""
    return ValidatorRegistry(
        [
            OpenAIValidator(timeout=timeout),
            AnthropicValidator(timeout=timeout),
            GoogleAIValidator(timeout=timeout),
        ]
    )
