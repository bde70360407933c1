"""
Ledger Schema - TypedDict definitions shared by every pipeline stage.

Both the Response Normalizer and the fallback parsers emit these shapes,
so downstream consumers (categorization, dedup, persistence) never need
to know which path produced a row.
"""
from typing import TypedDict, Dict, Any, Optional, List

ACCOUNT_TYPES = ("current", "savings", "credit_card", "unknown")
TRANSACTION_TYPES = ("debit", "credit", "payment", "fee", "interest", "refund", "unknown")


class StatementMeta(TypedDict):
    """Statement-level metadata, merged first-writer-wins across chunks"""
    bank_name: Optional[str]
    country: Optional[str]
    account_type: str             # 'current' | 'savings' | 'credit_card' | 'unknown'
    currency: Optional[str]       # stored as provided, never converted


class _TransactionRequired(TypedDict):
    date: str                     # YYYY-MM-DD
    description: str              # non-empty
    amount: float                 # signed: negative = outflow, positive = inflow


class Transaction(_TransactionRequired, total=False):
    """
    Core transaction record.

    date, description and amount are mandatory; a row missing any of them
    never enters the ledger.
    """
    posting_date: Optional[str]
    currency: Optional[str]
    type: str                     # one of TRANSACTION_TYPES
    balance: Optional[float]
    category: str
    category_confidence: float    # [0, 1], absent when the rule engine assigned the category
    fraud_likelihood: Optional[float]  # advisory heuristic from the extraction capability
    fraud_reason: Optional[str]


class ExtractionResult(TypedDict):
    """Unit returned per chunk and the unit merged across chunks"""
    meta: StatementMeta
    transactions: List[Transaction]


class ProgressEvent(TypedDict, total=False):
    """Streamed job update, tagged by type"""
    type: str                     # 'status' | 'estimate' | 'progress' | 'complete' | 'error'
    message: str
    progress: float               # [0, 100]
    pages: int
    chunks: int
    estimatedTime: int            # milliseconds
    completed: int
    total: int
    failed: int
    statement: ExtractionResult
    transaction_count: int
    error: str
    detail: Optional[str]
    stats: Dict[str, Any]


def empty_meta() -> StatementMeta:
    return {
        "bank_name": None,
        "country": None,
        "account_type": "unknown",
        "currency": None,
    }


def empty_result() -> ExtractionResult:
    return {"meta": empty_meta(), "transactions": []}
