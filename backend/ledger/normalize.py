"""
Response Normalizer - turns one chunk's raw extraction output into an ExtractionResult.

The capability answers in one of two shapes:
1. JSON matching {"meta": {...}, "transactions": [...]}
2. Plain text with pipe-delimited rows:
   date | description | amount | balance | category | fraud_score | fraud_reason

The shape is decided by a structural check on the text itself, never by
what the service claims to have returned. Rows that fail validation are
dropped and counted; dropping rows is never an error on its own.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import MalformedResponseError
from .models import TransactionSchema, parse_iso_date, parse_signed_number
from .schema import ACCOUNT_TYPES, ExtractionResult, StatementMeta, Transaction, empty_meta

FENCE_PATTERN = re.compile(r'^```[a-zA-Z]*\s*|\s*```$')

# Free-text metadata, one field per line
BANK_PATTERN = re.compile(r'\bbank(?:\s+name)?\s*:\s*(.+?)\s*$', re.I | re.M)
COUNTRY_PATTERN = re.compile(r'^\s*country\s*:\s*(.+?)\s*$', re.I | re.M)
CURRENCY_PATTERN = re.compile(r'currency\s*:\s*([A-Za-z]{3})\b', re.I)
ACCOUNT_TYPE_PATTERN = re.compile(
    r'account\s+type\s*:\s*(current|savings|credit[ _]card|credit|debit|checking)', re.I
)

ACCOUNT_TYPE_ALIASES = {
    "credit": "credit_card",
    "credit card": "credit_card",
    "debit": "current",
    "checking": "current",
}


@dataclass(frozen=True)
class JsonShaped:
    payload: Dict[str, Any]


@dataclass(frozen=True)
class LineShaped:
    text: str

    @property
    def lines(self) -> List[str]:
        return [line.strip() for line in self.text.splitlines() if line.strip()]


RawResponse = Union[JsonShaped, LineShaped]


def _strip_fences(raw: str) -> str:
    return FENCE_PATTERN.sub('', raw.strip()).strip()


def classify_response(raw: Optional[str]) -> RawResponse:
    """
    Decide which shape a raw response has.

    Text that looks like JSON must parse into an object with a
    'transactions' list, otherwise MalformedResponseError is raised.
    Anything else is treated as line-shaped text.
    """
    text = _strip_fences(raw or "")
    if not text.startswith(('{', '[')):
        return LineShaped(text)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in prose; retry on the outermost braces
        start, end = text.find('{'), text.rfind('}')
        if start == -1 or end <= start:
            raise MalformedResponseError("Extraction response is not valid JSON", detail=text[:200])
        try:
            payload = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedResponseError("Extraction response is not valid JSON", detail=str(e)) from e

    if isinstance(payload, list):
        payload = {"meta": {}, "transactions": payload}
    if not isinstance(payload, dict) or not isinstance(payload.get("transactions"), list):
        raise MalformedResponseError(
            "Extraction response does not match the expected shape",
            detail="missing 'transactions' list"
        )
    return JsonShaped(payload)


def normalize_account_type(value: Any) -> str:
    if not isinstance(value, str):
        return "unknown"
    value = value.strip().lower().replace("-", " ")
    value = ACCOUNT_TYPE_ALIASES.get(value, value.replace(" ", "_"))
    return value if value in ACCOUNT_TYPES else "unknown"


def _clean_optional(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in ("null", "none", "unknown", "n/a"):
        return None
    return value


def _meta_from_json(meta: Any) -> StatementMeta:
    meta = meta if isinstance(meta, dict) else {}
    currency = _clean_optional(meta.get("currency"))
    return {
        "bank_name": _clean_optional(meta.get("bank_name")),
        "country": _clean_optional(meta.get("country")),
        "account_type": normalize_account_type(meta.get("account_type")),
        "currency": currency.upper() if currency else None,
    }


def _meta_from_text(text: str) -> StatementMeta:
    meta = empty_meta()
    plain = "\n".join(line for line in text.splitlines() if '|' not in line)

    bank = BANK_PATTERN.search(plain)
    if bank:
        meta["bank_name"] = _clean_optional(bank.group(1))
    country = COUNTRY_PATTERN.search(plain)
    if country:
        meta["country"] = _clean_optional(country.group(1))
    currency = CURRENCY_PATTERN.search(plain)
    if currency:
        meta["currency"] = currency.group(1).upper()
    account = ACCOUNT_TYPE_PATTERN.search(plain)
    if account:
        meta["account_type"] = normalize_account_type(account.group(1))
    return meta


def _from_json(shaped: JsonShaped) -> Tuple[ExtractionResult, int]:
    meta = _meta_from_json(shaped.payload.get("meta"))
    transactions: List[Transaction] = []
    dropped = 0
    for row in shaped.payload["transactions"]:
        tx = TransactionSchema.coerce(row, currency=meta["currency"])
        if tx is None:
            dropped += 1
            continue
        transactions.append(tx)
    return {"meta": meta, "transactions": transactions}, dropped


def parse_pipe_line(line: str, currency: Optional[str] = None) -> Optional[Transaction]:
    """
    Parse one 'date | description | amount | balance | category | ...' line.
    Returns None for anything that is not a transaction row.
    """
    if '|' not in line:
        return None
    parts = [p.strip() for p in line.split('|')]
    if len(parts) < 3:
        return None

    date, description, amount_str = parts[0], parts[1], parts[2]
    if parse_iso_date(date) is None:
        return None
    amount = parse_signed_number(amount_str)
    if amount is None:
        return None

    def field(i):
        return parts[i] if len(parts) > i and parts[i] else None

    row = {
        "date": date,
        "description": description,
        "amount": amount,
        "balance": field(3),
        "category": field(4),
        "fraud_likelihood": field(5),
        "fraud_reason": field(6),
    }
    return TransactionSchema.coerce(row, currency=currency)


def _from_lines(shaped: LineShaped) -> Tuple[ExtractionResult, int]:
    meta = _meta_from_text(shaped.text)
    transactions: List[Transaction] = []
    dropped = 0
    for line in shaped.lines:
        tx = parse_pipe_line(line, currency=meta["currency"])
        if tx is not None:
            transactions.append(tx)
        elif '|' in line and re.match(r'^\s*\d{4}-\d{2}-\d{2}', line):
            # Looked like a row but failed validation
            dropped += 1
    return {"meta": meta, "transactions": transactions}, dropped


def normalize_response(raw: Optional[str], chunk_index: Optional[int] = None) -> ExtractionResult:
    """Convert one chunk's raw extraction output into a validated ExtractionResult."""
    try:
        shaped = classify_response(raw)
    except MalformedResponseError as e:
        e.chunk_index = chunk_index
        raise

    if isinstance(shaped, JsonShaped):
        result, dropped = _from_json(shaped)
    else:
        result, dropped = _from_lines(shaped)

    label = f"chunk {chunk_index}" if chunk_index is not None else "response"
    logging.info(
        f"Normalized {label} ({type(shaped).__name__}): "
        f"{len(result['transactions'])} kept, {dropped} dropped"
    )
    return result
