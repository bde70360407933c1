"""
Ledger Package - Bank Statement Parsing & Normalization

Modules:
- extract: document readers and page splitting
- chunking: fixed-size page chunks for extraction calls
- client: extraction capability clients (Ollama, OpenAI-compatible)
- orchestrator: concurrent chunk dispatch with progress events
- normalize: JSON / pipe-delimited response normalization
- merge: first-writer-wins metadata merge
- parsers: deterministic fallback parsers (generic lines, UOB credit card)
- categorize: rule-based categorization
- dedup: duplicate removal across statements
- pipeline: main orchestrator
- schema: TypedDict definitions
"""
from .pipeline import StatementPipeline, combine_statements
from .schema import Transaction, StatementMeta, ExtractionResult, ProgressEvent

__all__ = [
    'StatementPipeline', 'combine_statements',
    'Transaction', 'StatementMeta', 'ExtractionResult', 'ProgressEvent'
]
