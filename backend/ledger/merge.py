"""
Metadata Merger - folds per-chunk results into one statement.

For every meta field the first usable value wins: non-null for
bank_name, country and currency, anything but 'unknown' for account_type.
Later chunks never overwrite a value once it is set.
"""
from typing import Iterable, List

from .schema import ExtractionResult, StatementMeta, Transaction, empty_meta

NULLABLE_FIELDS = ("bank_name", "country", "currency")


def merge_meta(metas: Iterable[StatementMeta]) -> StatementMeta:
    merged = empty_meta()
    for meta in metas:
        if not meta:
            continue
        for field in NULLABLE_FIELDS:
            if merged[field] is None and meta.get(field):
                merged[field] = meta[field]
        account_type = meta.get("account_type")
        if merged["account_type"] == "unknown" and account_type and account_type != "unknown":
            merged["account_type"] = account_type
    return merged


def merge_results(results: Iterable[ExtractionResult]) -> ExtractionResult:
    """Concatenate transactions in the given order and merge their metadata."""
    results = list(results)
    transactions: List[Transaction] = []
    for result in results:
        transactions.extend(result.get("transactions") or [])
    return {
        "meta": merge_meta(result.get("meta") for result in results),
        "transactions": transactions,
    }
