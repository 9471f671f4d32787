"""Issuer validators and the registry that orders them."""

from keyscout.validators.anthropic import AnthropicValidator
from keyscout.validators.base import IssuerValidator, ValidationOutcome, ValidationResult
from keyscout.validators.google import GoogleAIValidator
from keyscout.validators.openai import OpenAIValidator
from keyscout.validators.registry import RegisteredValidator, ValidatorRegistry, default_registry

__all__ = [
    "AnthropicValidator",
    "GoogleAIValidator",
    "IssuerValidator",
    "OpenAIValidator",
    "RegisteredValidator",
    "ValidationOutcome",
    "ValidationResult",
    "ValidatorRegistry",
    "default_registry",
]
