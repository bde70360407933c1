import re
from datetime import datetime
from typing import Optional, List, Dict, Any

from .schema import Transaction, TRANSACTION_TYPES

ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_NUMBER_PATTERN = re.compile(r'^-?(\d+(\.\d+)?|\.\d+)$')


def parse_iso_date(value: Any) -> Optional[str]:
    """Return value if it is a real calendar date in strict YYYY-MM-DD form."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not ISO_DATE_PATTERN.match(value):
        return None
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return None
    return value


def parse_signed_number(value: Any) -> Optional[float]:
    """
    Parse a loosely formatted number, keeping its sign.

    Currency symbols, thousands separators and other non-numeric characters
    are stripped. A leading minus or surrounding parentheses make the value
    negative. Returns None when nothing numeric remains.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return round(float(value), 2)

    text = str(value).strip()
    if not text:
        return None
    negative = text.startswith('(') and text.endswith(')')
    cleaned = re.sub(r'[^0-9.\-]', '', text)
    if cleaned.startswith('-'):
        negative = True
    cleaned = cleaned.replace('-', '')
    if not _NUMBER_PATTERN.match(cleaned):
        return None
    number = float(cleaned)
    return round(-number if negative else number, 2)


def _unit_interval(value: Any) -> Optional[float]:
    number = parse_signed_number(value)
    if number is None:
        return None
    return min(max(number, 0.0), 1.0)


class TransactionSchema:
    REQUIRED_FIELDS = ["date", "description", "amount"]

    @staticmethod
    def validate(row: Dict[str, Any]) -> List[str]:
        errors = []
        for field in TransactionSchema.REQUIRED_FIELDS:
            if field not in row or row[field] is None or str(row[field]).strip() == "":
                errors.append(f"Missing {field}")

        if row.get("date") is not None and parse_iso_date(row.get("date")) is None:
            errors.append("Invalid date format")

        if row.get("amount") is not None and parse_signed_number(row.get("amount")) is None:
            errors.append("Invalid amount format")

        return errors

    @staticmethod
    def coerce(row: Dict[str, Any], currency: Optional[str] = None) -> Optional[Transaction]:
        """
        Build a strict Transaction from a loose dict, or None if the row is
        missing a mandatory field. Optional fields that fail to parse are
        nulled rather than rejecting the row.
        """
        if not isinstance(row, dict) or TransactionSchema.validate(row):
            return None

        amount = parse_signed_number(row["amount"])
        tx_type = str(row.get("type") or "").strip().lower()
        if tx_type not in TRANSACTION_TYPES:
            tx_type = infer_type_from_sign(amount)

        tx: Transaction = {
            "date": parse_iso_date(row["date"]),
            "posting_date": parse_iso_date(row.get("posting_date")),
            "description": " ".join(str(row["description"]).split()),
            "amount": amount,
            "currency": row.get("currency") or currency,
            "type": tx_type,
            "balance": parse_signed_number(row.get("balance")),
            "fraud_likelihood": _unit_interval(row.get("fraud_likelihood")),
            "fraud_reason": row.get("fraud_reason") or None,
        }

        category = row.get("category")
        if isinstance(category, str) and category.strip():
            tx["category"] = category.strip()
            confidence = _unit_interval(row.get("category_confidence"))
            if confidence is not None:
                tx["category_confidence"] = confidence

        return tx


def infer_type_from_sign(amount: Optional[float]) -> str:
    if amount is None or amount == 0:
        return "unknown"
    return "credit" if amount > 0 else "debit"
