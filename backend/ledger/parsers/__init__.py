"""Deterministic fallback parsers (no extraction capability required)."""
from .base import StatementParser
from .generic import GenericLineParser
from .uob import UOBCreditCardParser
from .router import FallbackParserRouter, detect_bank_name

__all__ = ['StatementParser', 'GenericLineParser', 'UOBCreditCardParser', 'FallbackParserRouter', 'detect_bank_name']
