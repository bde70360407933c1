import os
import sys
import json
import threading
import time

# Keep test runs from writing server.log into the working directory
os.environ.setdefault("LOG_FILE", os.devnull)

# Ensure project root is on sys.path so `backend` resolves
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import pytest

from backend.ledger.client import ExtractionClient


# --- Test utilities: scripted extraction capability ---

class FakeExtractionClient(ExtractionClient):
    """
    Answers each chunk from a script keyed by a marker found in the chunk text.

    A script value is either the raw response text or an exception instance to
    raise. `delays` (marker -> seconds) holds a chunk back to control the
    completion order.
    """
    name = "fake"

    def __init__(self, script=None, default="", delays=None):
        self.script = script or {}
        self.default = default
        self.delays = delays or {}
        self.calls = []
        self._lock = threading.Lock()

    def extract(self, text, timeout):
        with self._lock:
            self.calls.append(text)
        for marker, seconds in self.delays.items():
            if marker in text:
                time.sleep(seconds)
        for marker, response in self.script.items():
            if marker in text:
                if isinstance(response, BaseException):
                    raise response
                return response
        return self.default


def json_response(transactions, **meta):
    return json.dumps({"meta": meta, "transactions": transactions})


def tx_rows(prefix, count=2, day=1):
    return [
        {"date": f"2024-03-{day + i:02d}", "description": f"{prefix} purchase {i}", "amount": -(10.0 + i)}
        for i in range(count)
    ]


@pytest.fixture
def fake_client():
    return FakeExtractionClient


@pytest.fixture
def five_pages():
    return [f"PAGE-{i} statement text" for i in range(1, 6)]


@pytest.fixture
def generic_pages():
    return [
        "DBS Bank Ltd\nAccount Statement\n"
        "01/03/2024 Opening Balance 1,000.00\n"
        "02/03/2024 Salary ACME Pte Ltd 3,000.00 4,000.00\n"
        "05/03/2024 Starbucks Coffee (5.50) 3,994.50",
        "2024-03-10 Netflix Subscription -15.98 3,978.52\n"
        "Closing Balance 3,978.52",
    ]


@pytest.fixture
def uob_pages():
    return [
        "UOB Credit Card Statement\n"
        "Statement Date 15 AUG 2024\n"
        "PREVIOUS BALANCE 1,234.00\n"
        "28 JUL 23 JUL BUS/MRT 676443472 SINGAPORE\n"
        "Ref No. : 74541835207288086824184\n"
        "4.08\n"
        "02 AUG 01 AUG GRAB*TRIP A-123 SINGAPORE 12.30",
        "05 AUG 05 AUG PAYMENT - THANK YOU\n"
        "500.00CR\n"
        "10 AUG 08 AUG AMAZON MARKETPLACE\n"
        "USD 30.00\n"
        "41.25",
    ]


@pytest.fixture
def empty_pages():
    return ["Thank you for banking with us.", "This page intentionally left blank."]


class FakeTable:
    def __init__(self, db, name):
        self.db = db
        self.name = name
        self._pending = None

    def insert(self, data):
        self._pending = data
        return self

    def select(self, *args, **kwargs):
        return self

    def order(self, *args, **kwargs):
        return self

    def limit(self, *args, **kwargs):
        return self

    def execute(self):
        rows = self.db.tables.setdefault(self.name, [])
        if self._pending is not None:
            if self.db.fail:
                raise RuntimeError("insert rejected")
            rows.extend(self._pending if isinstance(self._pending, list) else [self._pending])
            self._pending = None
        return type("Result", (), {"data": list(rows)})()


class FakeSupabase:
    """In-memory stand-in for the supabase client's table() API."""

    def __init__(self, fail=False):
        self.tables = {}
        self.fail = fail

    def table(self, name):
        return FakeTable(self, name)


@pytest.fixture
def fake_supabase():
    return FakeSupabase()
