"""keyscout — finds exposed API keys in public code and keeps a capped pool of verified ones."""

__version__ = "0.1.0"
