"""Progress event builders and server-sent-events framing."""
import json
from typing import Optional

from .schema import ExtractionResult, ProgressEvent


def _clamp(progress: float) -> float:
    return round(min(max(float(progress), 0.0), 100.0), 1)


def status_event(message: str, progress: float = 0) -> ProgressEvent:
    return {"type": "status", "message": message, "progress": _clamp(progress)}


def estimate_event(pages: int, chunks: int, estimated_time_ms: int, progress: float = 5) -> ProgressEvent:
    return {
        "type": "estimate",
        "message": f"Processing {pages} page(s) in {chunks} chunk(s)...",
        "progress": _clamp(progress),
        "pages": pages,
        "chunks": chunks,
        "estimatedTime": int(estimated_time_ms),
    }


def progress_event(message: str, progress: float, completed: int, total: int, failed: int = 0) -> ProgressEvent:
    return {
        "type": "progress",
        "message": message,
        "progress": _clamp(progress),
        "completed": completed,
        "total": total,
        "failed": failed,
    }


def complete_event(statement: ExtractionResult, message: str = "Parsing complete!", stats: Optional[dict] = None) -> ProgressEvent:
    event: ProgressEvent = {
        "type": "complete",
        "message": message,
        "progress": 100.0,
        "statement": statement,
        "transaction_count": len(statement["transactions"]),
    }
    if stats:
        event["stats"] = stats
    return event


def error_event(message: str, detail: Optional[str] = None, progress: float = 0) -> ProgressEvent:
    return {
        "type": "error",
        "message": message,
        "error": message,
        "detail": detail,
        "progress": _clamp(progress),
    }


def to_sse(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event)}\n\n"
