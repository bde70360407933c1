"""
Error taxonomy for the statement parsing pipeline.

ConfigurationError, JobTimeoutError and NoTransactionsFoundError are always
terminal. ChunkExtractionError (and MalformedResponseError, which is handled
the same way) is terminal under fail-fast dispatch and dropped under
best-effort dispatch.
"""
from typing import Optional


class LedgerError(RuntimeError):
    """Base class carrying a short message and an optional diagnostic detail."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self):
        return {"error": self.message, "detail": self.detail, "kind": type(self).__name__}


class ConfigurationError(LedgerError):
    pass


class ValidationError(LedgerError):
    pass


class ChunkExtractionError(LedgerError):
    def __init__(self, message: str, detail: Optional[str] = None, chunk_index: Optional[int] = None):
        super().__init__(message, detail)
        self.chunk_index = chunk_index


class MalformedResponseError(ChunkExtractionError):
    pass


class NoTransactionsFoundError(LedgerError):
    pass


class JobTimeoutError(LedgerError):
    pass
