"""Intent validation package."""

from ledgerbook.validation.validator import IntentValidator

__all__ = ["IntentValidator"]
