import pytest

from backend.ledger.categorize import CategoryMapper, MerchantCategoryCache
from backend.ledger.config import Config
from backend.ledger.errors import ChunkExtractionError, ConfigurationError, NoTransactionsFoundError
from backend.ledger.events import to_sse
from backend.ledger.orchestrator import BEST_EFFORT
from backend.ledger.pipeline import StatementPipeline
from conftest import FakeExtractionClient, json_response, tx_rows


def extraction_pipeline(client, **options):
    options.setdefault("chunk_size", 2)
    options.setdefault("max_workers", 1)
    options.setdefault("policy", "fail_fast")
    return StatementPipeline(client=client, **options)


def five_page_client():
    return FakeExtractionClient({
        "PAGE-1": json_response(tx_rows("first", day=1), bank_name="First Bank", account_type="savings"),
        "PAGE-3": json_response(tx_rows("second", day=10)),
        "PAGE-5": json_response(tx_rows("third", day=20)),
    })


def test_five_page_job_completes_with_six_transactions(five_pages):
    events = list(extraction_pipeline(five_page_client()).process_pages(five_pages))

    final = events[-1]
    assert final["type"] == "complete"
    assert final["progress"] == 100.0
    assert final["transaction_count"] == 6
    assert final["statement"]["meta"]["account_type"] == "savings"
    assert final["stats"]["path"] == "extraction"
    assert [e["type"] for e in events].count("complete") == 1

    progress = [e["progress"] for e in events]
    assert progress == sorted(progress)


def test_every_transaction_gets_a_category(five_pages):
    result = extraction_pipeline(five_page_client()).parse(five_pages)
    assert all(tx.get("category") for tx in result["transactions"])


def test_capability_category_takes_precedence():
    client = FakeExtractionClient(default=json_response([
        {"date": "2024-01-15", "description": "Starbucks Coffee", "amount": -5.5, "category": "Travel"},
        {"date": "2024-01-16", "description": "Starbucks Coffee", "amount": -6.5},
    ]))
    result = extraction_pipeline(client).parse(["page"])

    assert [tx["category"] for tx in result["transactions"]] == ["Travel", "Food & Dining"]


def test_pipe_delimited_response_is_categorized():
    client = FakeExtractionClient(default="Currency: SGD\n2024-01-15 | Starbucks Coffee | -5.50 | 120.00 |")
    [tx] = extraction_pipeline(client).parse(["page"])["transactions"]

    assert tx["amount"] == -5.50
    assert tx["balance"] == 120.00
    assert tx["currency"] == "SGD"
    assert tx["category"] == "Food & Dining"


def test_fallback_path_without_client(generic_pages):
    pipeline = StatementPipeline()
    events = list(pipeline.process_pages(generic_pages))

    assert [e["type"] for e in events] == ["status", "progress", "complete"]
    assert events[1]["progress"] == 50
    assert events[-1]["transaction_count"] == 3
    assert events[-1]["stats"]["path"] == "fallback"
    assert events[-1]["statement"]["meta"]["bank_name"] == "DBS"


def test_merchant_lookup_on_rule_based_path():
    mapper = CategoryMapper(cache=MerchantCategoryCache(max_size=8), merchant_lookup=True)
    pipeline = StatementPipeline(category_mapper=mapper)

    [tx] = pipeline.parse(["01/03/2024 JOES KITCHEN (12.00)"])["transactions"]
    assert tx["category"] == "Food & Dining"
    assert "joes kitchen" in mapper.cache


def test_rule_based_path_without_merchant_lookup():
    pipeline = StatementPipeline(category_mapper=CategoryMapper(merchant_lookup=False))
    [tx] = pipeline.parse(["01/03/2024 JOES KITCHEN (12.00)"])["transactions"]
    assert tx["category"] == "Miscellaneous"


def test_recognised_layout_skips_extraction(uob_pages):
    client = FakeExtractionClient(default=json_response(tx_rows("llm")))
    result = extraction_pipeline(client).parse(uob_pages)

    assert client.calls == []
    assert len(result["transactions"]) == 4
    assert result["transactions"][0]["description"] == "BUS/MRT 676443472 SINGAPORE"
    assert result["transactions"][0]["category"] == "Transport"


def test_layout_preference_can_be_switched_off(uob_pages):
    client = FakeExtractionClient(default=json_response(tx_rows("llm")))
    pipeline = extraction_pipeline(client, prefer_layout_parsers=False)

    assert pipeline.select_path(uob_pages) == "extraction"
    assert len(pipeline.parse(uob_pages)["transactions"]) == 2
    assert len(client.calls) == 1


def test_no_transactions_on_fallback_path(empty_pages):
    with pytest.raises(NoTransactionsFoundError):
        StatementPipeline().parse(empty_pages)


def test_no_transactions_on_extraction_path(empty_pages):
    client = FakeExtractionClient(default="Sorry, I found no transactions in this document.")
    with pytest.raises(NoTransactionsFoundError):
        extraction_pipeline(client).parse(empty_pages)


@pytest.mark.parametrize("use_client", [False, True])
def test_no_transactions_is_one_terminal_error_event(empty_pages, use_client):
    pipeline = extraction_pipeline(FakeExtractionClient(default="")) if use_client else StatementPipeline()
    events = list(pipeline.process_pages(empty_pages))

    assert events[-1]["type"] == "error"
    assert events[-1]["message"] == "No transactions found in the statement"
    assert [e["type"] for e in events].count("error") == 1
    assert "complete" not in [e["type"] for e in events]


def test_fail_fast_chunk_error_becomes_error_event(five_pages):
    client = five_page_client()
    client.script["PAGE-3"] = ChunkExtractionError("Extraction request failed", detail="503 Service Unavailable")
    events = list(extraction_pipeline(client).process_pages(five_pages))

    assert events[-1]["type"] == "error"
    assert events[-1]["detail"] == "503 Service Unavailable"


def test_best_effort_completes_with_partial_result(five_pages):
    client = five_page_client()
    client.script["PAGE-3"] = ChunkExtractionError("Extraction request failed")
    events = list(extraction_pipeline(client, policy="best_effort").process_pages(five_pages))

    assert events[-1]["type"] == "complete"
    assert events[-1]["transaction_count"] == 4


def test_unexpected_failure_is_logged_and_reported(five_pages, caplog):
    client = five_page_client()
    client.script["PAGE-1"] = RuntimeError("kaboom")
    events = list(extraction_pipeline(client).process_pages(five_pages))

    assert events[-1]["type"] == "error"
    assert events[-1]["detail"] == "kaboom"
    assert "PIPELINE_ERROR" in caplog.text


def test_process_reads_text_file(tmp_path, generic_pages):
    path = tmp_path / "statement.txt"
    path.write_text("\f".join(generic_pages))
    events = list(StatementPipeline().process(str(path), "txt"))

    assert events[0]["message"] == "Reading document..."
    assert events[-1]["type"] == "complete"
    assert events[-1]["transaction_count"] == 3


def test_process_rejects_unknown_file_type(tmp_path):
    path = tmp_path / "statement.xls"
    path.write_text("anything")
    events = list(StatementPipeline().process(str(path), "xls"))

    assert events[-1]["type"] == "error"
    assert "Unsupported file type" in events[-1]["detail"]


def test_sse_framing(generic_pages):
    frame = to_sse(list(StatementPipeline().process_pages(generic_pages))[0])
    assert frame.startswith('data: {"type": "status"')
    assert frame.endswith("\n\n")


def test_from_config_in_required_mode_without_endpoint(monkeypatch):
    monkeypatch.setattr(Config, "EXTRACTION_MODE", "required")
    monkeypatch.setattr(Config, "EXTRACTION_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "OLLAMA_BASE_URL", None)

    with pytest.raises(ConfigurationError):
        StatementPipeline.from_config()


def test_from_config_auto_mode_uses_fallback(monkeypatch):
    monkeypatch.setattr(Config, "EXTRACTION_MODE", "auto")
    monkeypatch.setattr(Config, "EXTRACTION_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "OLLAMA_BASE_URL", None)

    assert not StatementPipeline.from_config().uses_extraction


def test_from_config_with_endpoint_uses_extraction(monkeypatch):
    monkeypatch.setattr(Config, "EXTRACTION_MODE", "auto")
    monkeypatch.setattr(Config, "EXTRACTION_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "OLLAMA_BASE_URL", "http://localhost:11434")

    pipeline = StatementPipeline.from_config()
    assert pipeline.uses_extraction
    assert pipeline.orchestrator.policy in ("fail_fast", "best_effort")


def test_every_chunk_failing_reports_failed_count(five_pages):
    client = FakeExtractionClient({
        marker: ChunkExtractionError("Extraction request failed", detail="503") for marker in ("PAGE-1", "PAGE-3", "PAGE-5")
    })
    events = list(extraction_pipeline(client, policy=BEST_EFFORT).process_pages(five_pages))

    assert events[-1]["type"] == "error"
    assert events[-1]["message"] == "No transactions found in the statement"
    assert "All 3 chunk(s) failed" in events[-1]["detail"]
    assert "503" in events[-1]["detail"]
