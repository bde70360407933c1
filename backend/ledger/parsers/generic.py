"""
Generic line parser - one transaction per text line.

A line is a transaction when it carries a date followed by at least one
currency amount: the text in between is the description, the first
amount is the transaction amount and a second one is the running balance.
No AI, no ML - pure pattern matching for reproducible results.
"""
import re
from datetime import date
from typing import List, Optional, Tuple

from ..config import Config
from ..schema import Transaction
from .base import StatementParser, is_summary_line

# Priority order: slash dates, ISO dates, dashed day-first dates
DATE_PATTERNS = [
    re.compile(r'(?<!\d)(\d{1,2})/(\d{1,2})/(\d{4})(?!\d)'),
    re.compile(r'(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)'),
    re.compile(r'(?<!\d)(\d{2})-(\d{2})-(\d{4})(?!\d)'),
]

AMOUNT_PATTERN = re.compile(
    r'\(\s*\$?\s*\d+(?:,\d+)*\.\d{2}\s*\)'
    r'|-?\$?\s*\d+(?:,\d+)*\.\d{2}(?!\d)'
)


def _iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_slash_date(first: int, second: int, year: int, day_first: bool = Config.DAY_FIRST) -> Optional[str]:
    """
    Resolve NN/NN/YYYY. A field above 12 must be the day; when both fields
    could be a month, day_first decides.
    """
    if first > 12:
        return _iso(year, second, first)
    if second > 12:
        return _iso(year, first, second)
    if day_first:
        return _iso(year, second, first)
    return _iso(year, first, second)


def find_date(line: str, day_first: bool = Config.DAY_FIRST) -> Optional[Tuple[str, int, int]]:
    """Return (iso_date, start, end) for the first date found in priority order."""
    for index, pattern in enumerate(DATE_PATTERNS):
        match = pattern.search(line)
        if not match:
            continue
        a, b, c = (int(g) for g in match.groups())
        if index == 0:
            iso = parse_slash_date(a, b, c, day_first)
        elif index == 1:
            iso = _iso(a, b, c)
        else:
            iso = _iso(c, b, a)
        if iso:
            return iso, match.start(), match.end()
    return None


def parse_amount(token: str) -> float:
    """
    Normalize an amount token: strip currency symbols and thousands
    separators; parentheses or a leading minus make it negative.
    """
    cleaned = token.replace('$', '').replace(' ', '')
    negative = cleaned.startswith('(') or cleaned.startswith('-')
    value = float(re.sub(r'[(),\-]', '', cleaned))
    return -value if negative else value


class GenericLineParser(StatementParser):
    name = "generic"

    def __init__(self, category_mapper=None, currency: Optional[str] = None,
                 day_first: bool = Config.DAY_FIRST):
        super().__init__(category_mapper)
        self.currency = currency
        self.day_first = day_first

    def detect(self, text: str) -> bool:
        # Last resort: accepts any document
        return True

    def parse(self, text: str) -> List[Transaction]:
        transactions = []
        for line in text.split('\n'):
            tx = self.parse_line(line)
            if tx:
                transactions.append(tx)
        return transactions

    def parse_line(self, line: str) -> Optional[Transaction]:
        line_clean = line.strip()
        if not line_clean:
            return None

        found = find_date(line_clean, self.day_first)
        if not found:
            return None
        iso_date, _, date_end = found

        amounts = list(AMOUNT_PATTERN.finditer(line_clean))
        if not amounts:
            return None
        first = amounts[0]
        if first.start() < date_end:
            return None

        description = line_clean[date_end:first.start()].strip()
        if not description or is_summary_line(description):
            return None

        amount = parse_amount(first.group(0))
        balance = parse_amount(amounts[1].group(0)) if len(amounts) > 1 else None
        return self.build_transaction(iso_date, description, amount, balance=balance)
