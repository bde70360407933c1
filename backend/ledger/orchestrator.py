"""
Extraction Orchestrator - fans chunks out to the extraction capability.

Flow: chunk pages → submit every chunk to a thread pool → report progress
as each chunk resolves (completion order) → merge in chunk order.

run() is a generator: it yields progress events and returns the merged
ExtractionResult, so callers drive it with `result = yield from ...`.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed, TimeoutError as FuturesTimeout
from typing import Dict, Generator, List, Optional, Sequence

from .chunking import Chunk, chunk_pages
from .client import ExtractionClient
from .config import Config
from .errors import ChunkExtractionError, ConfigurationError, JobTimeoutError, NoTransactionsFoundError
from .events import estimate_event, progress_event, status_event
from .merge import merge_results
from .normalize import normalize_response
from .schema import ExtractionResult, ProgressEvent

FAIL_FAST = "fail_fast"
BEST_EFFORT = "best_effort"
DISPATCH_POLICIES = (FAIL_FAST, BEST_EFFORT)


class ExtractionOrchestrator:

    def __init__(self, client: ExtractionClient,
                 policy: str = Config.DISPATCH_POLICY,
                 chunk_size: int = Config.CHUNK_SIZE,
                 chunk_timeout: float = Config.CHUNK_TIMEOUT_S,
                 job_timeout: float = Config.JOB_TIMEOUT_S,
                 max_workers: int = Config.MAX_WORKERS,
                 ms_per_chunk: int = Config.ESTIMATED_MS_PER_CHUNK,
                 progress_baseline: float = Config.PROGRESS_BASELINE,
                 progress_span: float = Config.PROGRESS_SPAN):
        if client is None:
            raise ConfigurationError("Extraction orchestrator requires an extraction client")
        if policy not in DISPATCH_POLICIES:
            raise ConfigurationError(
                f"Unknown dispatch policy: {policy}",
                detail=f"expected one of {', '.join(DISPATCH_POLICIES)}"
            )
        self.client = client
        self.policy = policy
        self.chunk_size = chunk_size
        self.chunk_timeout = chunk_timeout
        self.job_timeout = job_timeout
        self.max_workers = max(1, max_workers)
        self.ms_per_chunk = ms_per_chunk
        self.progress_baseline = progress_baseline
        self.progress_span = progress_span
        logging.info(f"Extraction orchestrator using '{policy}' dispatch policy")

    def run(self, pages: Sequence[str]) -> Generator[ProgressEvent, None, ExtractionResult]:
        yield status_event(f"Preparing {len(pages)} page(s) for extraction...", 0)

        chunks = chunk_pages(pages, self.chunk_size)
        yield estimate_event(len(pages), len(chunks), len(chunks) * self.ms_per_chunk)
        if not chunks:
            return merge_results([])

        logging.info(f"Dispatching {len(chunks)} chunk(s) for {len(pages)} page(s)")
        results: Dict[int, ExtractionResult] = {}
        failed: List[int] = []
        last_error: Optional[ChunkExtractionError] = None
        completed = 0

        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(chunks)))
        try:
            futures = {executor.submit(self._extract_chunk, chunk): chunk for chunk in chunks}
            for future in as_completed(futures, timeout=self.job_timeout):
                chunk = futures[future]
                completed += 1
                try:
                    results[chunk.index] = future.result()
                    message = (f"Chunk {completed}/{len(chunks)} complete "
                               f"({len(results[chunk.index]['transactions'])} transactions)")
                except ChunkExtractionError as e:
                    if self.policy == FAIL_FAST:
                        raise
                    logging.warning(f"Chunk {chunk.index} dropped under best-effort policy: {e.message} ({e.detail})")
                    failed.append(chunk.index)
                    last_error = e
                    message = f"Chunk {completed}/{len(chunks)} failed, continuing"

                yield progress_event(message, self._progress(completed, len(chunks)),
                                     completed, len(chunks), len(failed))
        except FuturesTimeout as e:
            raise JobTimeoutError(
                "Statement parsing timed out",
                detail=f"{completed}/{len(chunks)} chunk(s) finished within {self.job_timeout:g}s"
            ) from e
        finally:
            # In-flight calls are abandoned, never awaited
            executor.shutdown(wait=False, cancel_futures=True)

        if failed and len(failed) == len(chunks):
            logging.warning(f"All {len(chunks)} chunk(s) failed under best-effort policy")
            raise NoTransactionsFoundError(
                "No transactions found in the statement",
                detail=f"All {len(chunks)} chunk(s) failed extraction; last error: "
                       f"{last_error.message} ({last_error.detail})"
            )

        yield status_event("Merging results...", 95)
        return merge_results(results[index] for index in sorted(results))

    def extract(self, pages: Sequence[str]) -> ExtractionResult:
        """Run to completion, discarding progress events."""
        events = self.run(pages)
        while True:
            try:
                next(events)
            except StopIteration as done:
                return done.value

    def _progress(self, completed: int, total: int) -> float:
        return self.progress_baseline + (completed / total) * self.progress_span

    def _extract_chunk(self, chunk: Chunk) -> ExtractionResult:
        started = time.time()
        try:
            raw = self.client.extract(chunk.text, timeout=self.chunk_timeout)
        except ChunkExtractionError as e:
            e.chunk_index = chunk.index
            raise
        except TimeoutError as e:
            raise ChunkExtractionError("Chunk extraction timed out", detail=str(e), chunk_index=chunk.index) from e

        result = normalize_response(raw, chunk_index=chunk.index)
        logging.info(f"Chunk {chunk.index} ({len(chunk)} page(s)) extracted in {(time.time() - started) * 1000:.0f}ms")
        return result
