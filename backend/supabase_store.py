"""
Supabase Statement Store - persistence adapter for parsed statements.

Builds a statement record (ids, date range, per-row statement linkage)
from an ExtractionResult and writes it to the 'statements' and
'transactions' tables. Designed to fail gracefully if keys are not
provided: the record is still built and returned, just not persisted.
"""
import os
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from supabase import create_client

from backend.ledger.categorize import CategoryMapper
from backend.ledger.errors import ValidationError
from backend.ledger.schema import ExtractionResult


def build_statement_record(result: ExtractionResult, file_name: Optional[str] = None,
                           category_mapper: Optional[CategoryMapper] = None) -> Dict[str, Any]:
    """
    Shape a parsed statement for storage.

    Transaction currency falls back to the statement currency and a
    missing category is filled by the rule engine.
    """
    if not isinstance(result, dict) or not isinstance(result.get("transactions"), list):
        raise ValidationError("Statement must contain a 'transactions' list")

    mapper = category_mapper or CategoryMapper()
    meta = result.get("meta") or {}
    statement_id = str(uuid.uuid4())
    dates = sorted(tx["date"] for tx in result["transactions"] if tx.get("date"))

    transactions = []
    for tx in result["transactions"]:
        row = dict(tx)
        row["id"] = str(uuid.uuid4())
        row["statement_id"] = statement_id
        row["currency"] = tx.get("currency") or meta.get("currency")
        if not row.get("category"):
            row["category"] = mapper.categorize(tx.get("description", ""), tx.get("amount") or 0.0)
        transactions.append(row)

    return {
        "statement": {
            "id": statement_id,
            "bank_name": meta.get("bank_name") or "Unknown",
            "country": meta.get("country"),
            "account_type": meta.get("account_type") or "unknown",
            "currency": meta.get("currency"),
            "file_name": file_name,
            "start_date": dates[0] if dates else None,
            "end_date": dates[-1] if dates else None,
            "uploaded_at": datetime.now().isoformat(),
        },
        "transactions": transactions,
    }


class SupabaseStatementStore:
    """
    Writes statement records to Supabase.
    """

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None, client=None):
        self.url = url or os.environ.get("SUPABASE_URL")
        self.key = key or os.environ.get("SUPABASE_KEY")
        self.client = client

        if self.client is None and self.url and self.key:
            try:
                self.client = create_client(self.url, self.key)
                logging.info("Supabase client initialized.")
            except Exception as e:
                logging.warning(f"Failed to initialize Supabase client: {e}")

    @property
    def configured(self) -> bool:
        return self.client is not None

    def save_statement(self, result: ExtractionResult, file_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Build and persist a statement record.

        Returns the record with a 'persisted' flag; storage failures are
        logged and reported through that flag rather than raised.
        """
        record = build_statement_record(result, file_name)
        record["persisted"] = False

        if not self.client:
            logging.info("Supabase not configured. Skipping statement persistence.")
            return record

        try:
            self.client.table("statements").insert(record["statement"]).execute()
            if record["transactions"]:
                self.client.table("transactions").insert(record["transactions"]).execute()
            record["persisted"] = True
            logging.info(
                f"Statement {record['statement']['id']} saved with "
                f"{len(record['transactions'])} transaction(s)"
            )
        except Exception as e:
            logging.error(f"Failed to save statement to Supabase: {e}")
        return record

    def list_statements(self, limit: int = 50):
        """Most recent statements first."""
        if not self.client:
            return []
        try:
            res = self.client.table("statements").select("*").order("uploaded_at", desc=True).limit(limit).execute()
            return res.data
        except Exception as e:
            logging.error(f"Failed to fetch statements: {e}")
            return []
