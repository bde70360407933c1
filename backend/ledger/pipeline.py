"""
Statement Pipeline - coordinates extraction, fallback parsing, categorization and dedup.

Flow: Pages → (Extraction Orchestrator | Fallback Router) → Categorize → Validate count

The extraction capability is used when one is configured; otherwise, or
when a specialised layout parser recognises the document, the
deterministic fallback router produces the same transaction schema.
"""
import logging
import time
from typing import Any, Dict, Generator, Iterable, Iterator, List, Optional, Sequence

from .categorize import CategoryMapper, MerchantCategoryCache
from .client import ExtractionClient, build_client
from .config import Config
from .dedup import find_duplicates, remove_duplicates
from .errors import LedgerError, NoTransactionsFoundError
from .events import complete_event, error_event, progress_event, status_event
from .extract import ReaderFactory
from .merge import merge_meta
from .orchestrator import ExtractionOrchestrator
from .parsers import FallbackParserRouter
from .schema import ExtractionResult, ProgressEvent


class StatementPipeline:
    """
    One pipeline instance per deployment; every call to process/parse is
    an independent job.
    """

    def __init__(self, client: Optional[ExtractionClient] = None,
                 orchestrator: Optional[ExtractionOrchestrator] = None,
                 router: Optional[FallbackParserRouter] = None,
                 category_mapper: Optional[CategoryMapper] = None,
                 prefer_layout_parsers: bool = Config.PREFER_LAYOUT_PARSERS,
                 **orchestrator_options):
        self.category_mapper = category_mapper or CategoryMapper()
        self.router = router or FallbackParserRouter(self.category_mapper)
        if orchestrator is None and client is not None:
            orchestrator = ExtractionOrchestrator(client, **orchestrator_options)
        self.orchestrator = orchestrator
        self.prefer_layout_parsers = prefer_layout_parsers

    @classmethod
    def from_config(cls) -> "StatementPipeline":
        """Build from Config; raises ConfigurationError in 'required' mode without credentials."""
        cache = MerchantCategoryCache(Config.MERCHANT_CACHE_SIZE) if Config.MERCHANT_LOOKUP else None
        mapper = CategoryMapper(cache=cache, merchant_lookup=Config.MERCHANT_LOOKUP)
        return cls(client=build_client(), category_mapper=mapper)

    @property
    def uses_extraction(self) -> bool:
        return self.orchestrator is not None

    # ─────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────

    def process_pages(self, pages: Sequence[str]) -> Iterator[ProgressEvent]:
        """
        Run one job and yield progress events.
        The stream always ends with exactly one 'complete' or 'error' event.
        """
        start_time = time.time()
        last_progress = 0.0
        path = self.select_path(pages)
        events = self._run(pages, path)
        try:
            while True:
                try:
                    event = next(events)
                except StopIteration as done:
                    result = done.value
                    break
                last_progress = event.get("progress", last_progress)
                yield event
        except LedgerError as e:
            logging.warning(f"Statement parsing failed: {type(e).__name__}: {e.message} ({e.detail})")
            yield error_event(e.message, e.detail, last_progress)
            return
        except Exception as e:
            logging.exception("PIPELINE_ERROR")
            yield error_event("Internal error while parsing statement", str(e), last_progress)
            return

        stats = {
            "processing_time_ms": (time.time() - start_time) * 1000,
            "pages": len(pages),
            "path": path,
            "categories": self.category_mapper.get_category_stats(result["transactions"]),
        }
        yield complete_event(result, stats=stats)

    def parse(self, pages: Sequence[str]) -> ExtractionResult:
        """Run one job to completion; terminal failures are raised."""
        events = self._run(pages, self.select_path(pages))
        while True:
            try:
                next(events)
            except StopIteration as done:
                return done.value

    def process(self, file_path: str, file_type: str) -> Iterator[ProgressEvent]:
        """Read a document from disk and stream the parse job."""
        yield status_event("Reading document...", 0)
        try:
            payload = ReaderFactory.get_reader(file_type).read(file_path)
        except LedgerError as e:
            yield error_event(e.message, e.detail)
            return
        except (ValueError, OSError) as e:
            logging.warning(f"Could not read {file_path}: {e}")
            yield error_event("Could not read document", str(e))
            return
        yield from self.process_pages(payload["pages"])

    # ─────────────────────────────────────────────────────────────
    # Job
    # ─────────────────────────────────────────────────────────────

    def select_path(self, pages: Sequence[str]) -> str:
        """'extraction' or 'fallback'; a recognised layout wins when prefer_layout_parsers is set."""
        if not self.uses_extraction:
            return "fallback"
        if self.prefer_layout_parsers and self.router.detect_layout("\n".join(pages)):
            return "fallback"
        return "extraction"

    def _run(self, pages: Sequence[str], path: str) -> Generator[ProgressEvent, None, ExtractionResult]:
        pages = [page for page in pages if page and page.strip()]

        if path == "extraction":
            result = yield from self.orchestrator.run(pages)
        else:
            yield status_event(f"Parsing {len(pages)} page(s) with rule-based parser...", 0)
            result = self.router.parse_pages(pages)
            yield progress_event(
                f"Found {len(result['transactions'])} transaction(s)", 50, len(pages), len(pages)
            )

        filled = self.category_mapper.categorize_transactions(result["transactions"])
        logging.info(f"Categorized {filled} transaction(s) without a category")

        if not result["transactions"]:
            raise NoTransactionsFoundError(
                "No transactions found in the statement",
                detail="No dated rows with an amount could be identified. "
                       "Please make sure this is a bank statement with transaction data."
            )
        return result


def combine_statements(results: Iterable[ExtractionResult]) -> Dict[str, Any]:
    """
    Combine several parsed statements into one deduplicated candidate set.
    Existing rows are never mutated; the first occurrence of a duplicate wins.
    """
    results = list(results)
    combined: List[Dict[str, Any]] = []
    for result in results:
        combined.extend(result.get("transactions") or [])

    unique = remove_duplicates(combined)
    duplicates = find_duplicates(combined)
    logging.info(f"Combined {len(results)} statement(s): {len(combined)} rows, {len(duplicates)} duplicate(s) removed")
    return {
        "meta": merge_meta(result.get("meta") for result in results),
        "transactions": unique,
        "duplicates_removed": len(combined) - len(unique),
        "duplicates": duplicates,
    }
