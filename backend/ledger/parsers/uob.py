"""
UOB credit card layout - transactions spread over several lines.

    28 JUL 23 JUL BUS/MRT 676443472 SINGAPORE      <- post date, transaction date, description
    Ref No. : 74541835207288086824184              <- ignored
    MYR 52.10                                      <- foreign amount, ignored
    4.08                                           <- amount (CR suffix = credit)

The transaction date is the second date; the year comes from the
"Statement Date" header. Card charges are outflows, so amounts are
negative unless marked CR.
"""
import logging
import re
from datetime import date
from typing import List, Optional, Tuple

from ..schema import StatementMeta, Transaction
from .base import StatementParser, is_summary_line

MONTHS = {
    'JAN': 1, 'FEB': 2, 'MAR': 3, 'APR': 4, 'MAY': 5, 'JUN': 6,
    'JUL': 7, 'AUG': 8, 'SEP': 9, 'OCT': 10, 'NOV': 11, 'DEC': 12
}
_MONTH = r'(JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|OCT|NOV|DEC)'

HEADER_PATTERN = re.compile(rf'^(\d{{1,2}})\s+{_MONTH}\s+(\d{{1,2}})\s+{_MONTH}\s+(.+)$', re.I)
SAME_LINE_AMOUNT = re.compile(r'\s([\d,]+\.\d{2})(CR)?$')
AMOUNT_ONLY = re.compile(r'^([\d,]+\.\d{2})(CR)?$')
FOREIGN_AMOUNT = re.compile(r'\b[A-Z]{3}\s*[\d,]+\.\d{2}$')
REFERENCE_MARKER = re.compile(r'Ref\s*No\.?', re.I)
STATEMENT_DATE = re.compile(rf'Statement\s+Date\D*?(?:(\d{{1,2}})\s+{_MONTH}\s+)?(20\d{{2}})', re.I)
LOOKAHEAD = 3


class UOBCreditCardParser(StatementParser):
    name = "uob_credit_card"
    account_type = "credit_card"
    currency = "SGD"

    def detect(self, text: str) -> bool:
        lower = text.lower()
        return (
            ('uob' in lower or 'united overseas bank' in lower) and
            ('credit card' in lower or 'credit limit' in lower or 'card.centre@uobgroup.com' in lower)
        )

    def describe(self, text: str) -> StatementMeta:
        meta = super().describe(text)
        meta["bank_name"] = "UOB"
        meta["country"] = "Singapore"
        return meta

    def statement_period(self, lines: List[str]) -> Tuple[int, Optional[int]]:
        """(year, month) of the Statement Date header; month may be unknown."""
        for line in lines:
            if 'statement date' not in line.lower():
                continue
            match = STATEMENT_DATE.search(line)
            if match:
                month = MONTHS[match.group(2).upper()] if match.group(2) else None
                return int(match.group(3)), month
            year = re.search(r'20\d{2}', line)
            if year:
                return int(year.group(0)), None
        year = date.today().year
        logging.warning(f"UOB statement has no Statement Date header; assuming {year}")
        return year, None

    def parse(self, text: str) -> List[Transaction]:
        lines = [line.strip() for line in text.split('\n')]
        year, statement_month = self.statement_period(lines)

        transactions = []
        for i, line in enumerate(lines):
            if not line or is_summary_line(line):
                continue
            match = HEADER_PATTERN.match(line)
            if not match:
                continue

            tx = self._parse_block(match, lines[i + 1:i + 1 + LOOKAHEAD], year, statement_month)
            if tx:
                transactions.append(tx)

        logging.info(f"UOB layout parser found {len(transactions)} transaction(s)")
        return transactions

    def _parse_block(self, header, following: List[str], year: int,
                     statement_month: Optional[int]) -> Optional[Transaction]:
        post_day, post_month, tx_day, tx_month, rest = header.groups()
        rest = rest.strip()

        amount_match = SAME_LINE_AMOUNT.search(rest)
        if amount_match:
            description = rest[:amount_match.start()]
            description = FOREIGN_AMOUNT.sub('', description.strip())
        else:
            description = rest
            amount_match = self._find_amount_line(following)
            if amount_match is None:
                return None

        description = description.strip()
        if len(description) < 2:
            return None

        value = float(amount_match.group(1).replace(',', ''))
        amount = value if amount_match.group(2) else -value

        tx_date = self._build_date(year, statement_month, MONTHS[tx_month.upper()], int(tx_day))
        post_date = self._build_date(year, statement_month, MONTHS[post_month.upper()], int(post_day))
        if tx_date is None:
            return None
        return self.build_transaction(tx_date, description, amount, posting_date=post_date)

    def _find_amount_line(self, following: List[str]):
        for candidate in following:
            if HEADER_PATTERN.match(candidate):
                break
            if REFERENCE_MARKER.search(candidate) or FOREIGN_AMOUNT.search(candidate):
                continue
            match = AMOUNT_ONLY.match(candidate)
            if match:
                return match
        return None

    @staticmethod
    def _build_date(year: int, statement_month: Optional[int], month: int, day: int) -> Optional[str]:
        # December rows on a January statement belong to the previous year
        if statement_month is not None and month > statement_month:
            year -= 1
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None
