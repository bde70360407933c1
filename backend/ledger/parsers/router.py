"""Fallback parser router.

Picks a specialised layout parser by its detector predicate and falls
back to the generic line parser when no layout matches, or when the
layout parser finds nothing.
"""
import logging
import re
from typing import List, Optional, Sequence

from ..categorize import CategoryMapper
from ..config import Config
from ..schema import ExtractionResult, StatementMeta, empty_meta
from .base import StatementParser
from .generic import GenericLineParser
from .uob import UOBCreditCardParser

# Checked in order; more specific names first
BANK_SIGNATURES = [
    ("United Overseas Bank", "UOB"),
    ("UOB", "UOB"),
    ("DBS", "DBS"),
    ("POSB", "DBS"),
    ("OCBC", "OCBC"),
    ("Standard Chartered", "Standard Chartered"),
    ("Bank of America", "Bank of America"),
    ("Wells Fargo", "Wells Fargo"),
    ("Capital One", "Capital One"),
    ("American Express", "American Express"),
    ("Citibank", "Citibank"),
    ("Chase", "Chase"),
    ("HSBC", "HSBC"),
    ("Barclays", "Barclays"),
]


def detect_bank_name(text: str) -> Optional[str]:
    """Best-effort bank name from keyword signatures."""
    for signature, bank in BANK_SIGNATURES:
        if re.search(rf"\b{re.escape(signature)}\b", text, re.I):
            return bank
    return None


class FallbackParserRouter:
    """Deterministic parsing entry point used without the extraction capability."""

    def __init__(self, category_mapper: Optional[CategoryMapper] = None,
                 layout_parsers: Optional[List[StatementParser]] = None,
                 day_first: bool = Config.DAY_FIRST):
        self.category_mapper = category_mapper or CategoryMapper()
        if layout_parsers is None:
            layout_parsers = [UOBCreditCardParser(self.category_mapper)]
        self.layout_parsers = layout_parsers
        self.generic = GenericLineParser(self.category_mapper, day_first=day_first)

    def detect_layout(self, text: str) -> Optional[StatementParser]:
        for parser in self.layout_parsers:
            if parser.detect(text):
                return parser
        return None

    def parse_pages(self, pages: Sequence[str]) -> ExtractionResult:
        text = "\n".join(pages)
        meta: StatementMeta = empty_meta()
        meta["bank_name"] = detect_bank_name(text)

        transactions = []
        layout = self.detect_layout(text)
        if layout is not None:
            transactions = layout.parse(text)
            if transactions:
                meta = self._merge_layout_meta(meta, layout.describe(text))
                logging.info(f"Fallback router used '{layout.name}' parser: {len(transactions)} transaction(s)")
            else:
                logging.warning(f"Layout parser '{layout.name}' found nothing; trying generic parser")

        if not transactions:
            transactions = self.generic.parse(text)
            logging.info(f"Fallback router used 'generic' parser: {len(transactions)} transaction(s)")

        return {"meta": meta, "transactions": transactions}

    @staticmethod
    def _merge_layout_meta(detected: StatementMeta, layout: StatementMeta) -> StatementMeta:
        merged = dict(layout)
        if not merged.get("bank_name"):
            merged["bank_name"] = detected.get("bank_name")
        return merged
