"""Common interface for deterministic statement parsers."""
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from ..categorize import CategoryMapper
from ..schema import Transaction, StatementMeta, empty_meta

# Rows that summarize the statement rather than move money
SUMMARY_KEYWORDS = [
    "previous balance",
    "opening balance",
    "beginning balance",
    "closing balance",
    "ending balance",
    "new balance",
    "balance forward",
    "balance b/f",
    "balance c/f",
    "sub total",
    "subtotal",
    "total balance",
    "total debits",
    "total credits",
    "statement period",
]

FEE_KEYWORDS = ['fee', 'service charge', 'overdraft charge', 'late charge', 'annual charge']
INTEREST_KEYWORDS = ['interest']
REFUND_KEYWORDS = ['refund', 'reversal', 'cashback', 'chargeback']
PAYMENT_KEYWORDS = ['payment received', 'payment - thank you', 'payment thank you', 'bill payment', 'card payment']


SUMMARY_PATTERN = re.compile(
    r'^\W*(?:' + '|'.join(re.escape(kw) for kw in SUMMARY_KEYWORDS) + r')(?!\w)', re.I
)
# Only figures, dates, CR/DR and currency codes may follow a summary marker
SUMMARY_TAIL = re.compile(r'(?:[^A-Za-z]|\b(?:CR|DR)\b|\b[A-Z]{3}\b(?=\s*[-+(]?\d))*')


def is_summary_line(text: str) -> bool:
    """
    True for rows like PREVIOUS BALANCE 1,234.00 or Sub Total.

    A merchant whose name merely starts with a marker (NEW BALANCE ORCHARD)
    is a real purchase and is kept.
    """
    match = SUMMARY_PATTERN.match(text)
    return bool(match) and SUMMARY_TAIL.fullmatch(text, match.end()) is not None


def detect_tx_type(description: str, amount: float) -> str:
    """Transaction type from description keywords, falling back to the sign."""
    desc_lower = description.lower()
    for kw in FEE_KEYWORDS:
        if kw in desc_lower: return 'fee'
    for kw in INTEREST_KEYWORDS:
        if kw in desc_lower: return 'interest'
    for kw in REFUND_KEYWORDS:
        if kw in desc_lower and amount > 0: return 'refund'
    for kw in PAYMENT_KEYWORDS:
        if kw in desc_lower: return 'payment'
    if amount > 0:
        return 'credit'
    if amount < 0:
        return 'debit'
    return 'unknown'


class StatementParser(ABC):
    """
    A deterministic parser for one statement layout.

    detect() decides from the full document text whether this parser
    applies; parse() turns that text into transactions.
    """
    name = "base"
    account_type = "unknown"
    currency: Optional[str] = None

    def __init__(self, category_mapper: Optional[CategoryMapper] = None):
        self.category_mapper = category_mapper or CategoryMapper()

    @abstractmethod
    def detect(self, text: str) -> bool:
        pass

    @abstractmethod
    def parse(self, text: str) -> List[Transaction]:
        pass

    def describe(self, text: str) -> StatementMeta:
        meta = empty_meta()
        meta["account_type"] = self.account_type
        meta["currency"] = self.currency
        return meta

    def build_transaction(self, date: str, description: str, amount: float,
                          balance: Optional[float] = None,
                          posting_date: Optional[str] = None) -> Transaction:
        description = re.sub(r'\s+', ' ', description).strip()
        return {
            "date": date,
            "posting_date": posting_date,
            "description": description,
            "amount": round(amount, 2),
            "currency": self.currency,
            "type": detect_tx_type(description, amount),
            "balance": round(balance, 2) if balance is not None else None,
            "category": self.category_mapper.category_for(description, amount),
            "fraud_likelihood": None,
            "fraud_reason": None,
        }
