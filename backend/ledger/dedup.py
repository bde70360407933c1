"""
Deduplicator - removes repeated transactions when statements are combined.

Dedup key: (date, amount rounded to 2 places, lowercased trimmed description).
A single forward pass keeps the first occurrence of every key, so the
result is stable and applying it twice changes nothing. Input rows are
never mutated.
"""
from typing import Any, Dict, Iterable, List, Tuple

from .schema import Transaction

DedupKey = Tuple[str, float, str]


def dedup_key(tx: Transaction) -> DedupKey:
    amount = round(float(tx.get("amount") or 0.0), 2) + 0.0  # folds -0.0 into 0.0
    return (
        str(tx.get("date") or ""),
        amount,
        str(tx.get("description") or "").strip().lower(),
    )


def remove_duplicates(transactions: Iterable[Transaction]) -> List[Transaction]:
    seen = set()
    unique: List[Transaction] = []
    for tx in transactions:
        key = dedup_key(tx)
        if key not in seen:
            seen.add(key)
            unique.append(tx)
    return unique


def find_duplicates(transactions: Iterable[Transaction]) -> List[Dict[str, Any]]:
    """
    Flag every row whose key was already seen.

    Rows are numbered from 1; 'duplicate_of' points at the first occurrence.
    """
    seen_signatures: Dict[DedupKey, int] = {}
    flagged: List[Dict[str, Any]] = []
    for idx, tx in enumerate(transactions):
        row_num = idx + 1
        key = dedup_key(tx)
        if key in seen_signatures:
            flagged.append({
                "row": row_num,
                "duplicate_of": seen_signatures[key],
                "date": tx.get("date", ""),
                "description": str(tx.get("description", ""))[:50],
                "amount": tx.get("amount", 0),
                "flag_type": "DUPLICATE",
            })
        else:
            seen_signatures[key] = row_num
    return flagged


def merge_statements(*statement_transactions: Iterable[Transaction]) -> List[Transaction]:
    """Flatten the transactions of several statements and drop duplicates."""
    combined: List[Transaction] = []
    for transactions in statement_transactions:
        combined.extend(transactions)
    return remove_duplicates(combined)
