import io
import json

import pytest

from backend.app import create_app, status_for
from backend.ledger.errors import (
    ChunkExtractionError, ConfigurationError, JobTimeoutError, NoTransactionsFoundError, ValidationError
)
from backend.ledger.pipeline import StatementPipeline
from backend.supabase_store import SupabaseStatementStore


@pytest.fixture
def client(tmp_path, fake_supabase):
    app = create_app(
        pipeline=StatementPipeline(),
        store=SupabaseStatementStore(client=fake_supabase),
        upload_folder=str(tmp_path),
    )
    app.config["TESTING"] = True
    return app.test_client()


def _sse_events(body):
    return [json.loads(frame[len("data: "):]) for frame in body.split("\n\n") if frame.startswith("data: ")]


def _upload(text, name="statement.txt"):
    return {"file": (io.BytesIO(text.encode()), name)}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"
    assert resp.get_json()["extraction"]["enabled"] is False


def test_parse_text(client, generic_pages):
    resp = client.post("/parse-text", json={"pages": generic_pages})
    data = resp.get_json()

    assert resp.status_code == 200
    assert data["success"] is True
    assert data["transaction_count"] == 3
    assert data["meta"]["bank_name"] == "DBS"


def test_parse_text_with_raw_text(client, generic_pages):
    resp = client.post("/parse-text", json={"text": "\f".join(generic_pages)})
    assert resp.get_json()["transaction_count"] == 3


def test_parse_text_with_no_transactions_is_422(client, empty_pages):
    resp = client.post("/parse-text", json={"pages": empty_pages})
    assert resp.status_code == 422
    assert resp.get_json()["error"] == "No transactions found in the statement"


def test_parse_text_rejects_bad_body(client):
    assert client.post("/parse-text", json={"pages": "not a list"}).status_code == 400
    assert client.post("/parse-text", data="plain").status_code == 400


def test_parse_statement_upload(client, tmp_path, generic_pages):
    resp = client.post("/parse-statement", data=_upload("\f".join(generic_pages)),
                       content_type="multipart/form-data")

    assert resp.status_code == 200
    assert resp.get_json()["transaction_count"] == 3
    assert list(tmp_path.iterdir()) == []


def test_upload_validation(client):
    assert client.post("/parse-statement", data={}, content_type="multipart/form-data").status_code == 400
    resp = client.post("/parse-statement", data=_upload("x", "malware.exe"), content_type="multipart/form-data")
    assert resp.status_code == 400
    assert "Unsupported file type" in resp.get_json()["error"]


def test_stream_emits_sse_events(client, tmp_path, uob_pages):
    resp = client.post("/parse-statement-stream", data=_upload("\f".join(uob_pages)),
                       content_type="multipart/form-data")

    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"
    events = _sse_events(resp.get_data(as_text=True))
    assert events[0]["type"] == "status"
    assert events[-1]["type"] == "complete"
    assert events[-1]["transaction_count"] == 4
    assert events[-1]["statement"]["meta"]["bank_name"] == "UOB"
    assert list(tmp_path.iterdir()) == []


def test_stream_ends_with_error_event(client, empty_pages):
    resp = client.post("/parse-statement-stream", data=_upload("\f".join(empty_pages)),
                       content_type="multipart/form-data")
    events = _sse_events(resp.get_data(as_text=True))

    assert resp.status_code == 200
    assert events[-1]["type"] == "error"


def test_combine_statements(client):
    taxi = {"date": "2024-02-01", "amount": -10.00, "description": "Taxi"}
    resp = client.post("/statements/combine", json={"statements": [
        {"meta": {"bank_name": "DBS"}, "transactions": [taxi]},
        {"transactions": [taxi, {"date": "2024-02-02", "amount": -3.0, "description": "Bus"}]},
    ]})
    data = resp.get_json()

    assert resp.status_code == 200
    assert len(data["transactions"]) == 2
    assert data["duplicates_removed"] == 1
    assert data["meta"]["bank_name"] == "DBS"


def test_combine_requires_statements(client):
    assert client.post("/statements/combine", json={"statements": []}).status_code == 400
    assert client.post("/statements/combine", json={"statements": [{"meta": {}}]}).status_code == 400


def test_save_and_list_statements(client, fake_supabase):
    statement = {"meta": {"bank_name": "DBS", "currency": "SGD"},
                 "transactions": [{"date": "2024-02-01", "amount": -10.0, "description": "Taxi"}]}
    resp = client.post("/statements", json={"statement": statement, "file_name": "feb.pdf"})

    assert resp.status_code == 201
    assert resp.get_json()["persisted"] is True
    assert resp.get_json()["transactions"][0]["category"] == "Transport"
    assert len(client.get("/statements").get_json()) == 1


def test_save_statement_requires_body(client):
    assert client.post("/statements", json={}).status_code == 400


@pytest.mark.parametrize("error, status", [
    (ValidationError("bad"), 400),
    (NoTransactionsFoundError("none"), 422),
    (ConfigurationError("missing key"), 500),
    (JobTimeoutError("slow"), 504),
    (ChunkExtractionError("upstream"), 502),
])
def test_error_status_mapping(error, status):
    assert status_for(error) == status
