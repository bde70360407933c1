# Ledger Configuration
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Extraction capability
    EXTRACTION_MODE = os.environ.get("LEDGER_EXTRACTION_MODE", "auto")  # off | auto | required
    EXTRACTION_PROVIDER = os.environ.get("LEDGER_EXTRACTION_PROVIDER", "ollama")  # ollama | openai
    OLLAMA_BASE_URL = os.environ.get("OLLAMA_BASE_URL")
    OLLAMA_MODEL = os.environ.get("OLLAMA_MODEL", "llama3")
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
    OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")

    # Chunking & dispatch
    CHUNK_SIZE = int(os.environ.get("LEDGER_CHUNK_SIZE", "2"))
    CHUNK_TIMEOUT_S = float(os.environ.get("LEDGER_CHUNK_TIMEOUT_S", "60"))
    JOB_TIMEOUT_S = float(os.environ.get("LEDGER_JOB_TIMEOUT_S", "90"))
    MAX_WORKERS = int(os.environ.get("LEDGER_MAX_WORKERS", "4"))
    DISPATCH_POLICY = os.environ.get("LEDGER_DISPATCH_POLICY", "fail_fast")  # fail_fast | best_effort

    # Progress reporting
    ESTIMATED_MS_PER_CHUNK = 23000
    PROGRESS_BASELINE = 10
    PROGRESS_SPAN = 80

    # Fallback parsing & categorization
    PREFER_LAYOUT_PARSERS = _env_bool("LEDGER_PREFER_LAYOUT_PARSERS", True)
    DAY_FIRST = _env_bool("LEDGER_DAY_FIRST", True)
    MERCHANT_LOOKUP = _env_bool("LEDGER_MERCHANT_LOOKUP", False)
    MERCHANT_CACHE_SIZE = int(os.environ.get("LEDGER_MERCHANT_CACHE_SIZE", "512"))

    # Upload boundary
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "temp_uploads")
    ALLOWED_EXTENSIONS = {'pdf', 'csv', 'txt', 'docx'}
    MAX_FILE_MB = int(os.environ.get("LEDGER_MAX_FILE_MB", "10"))
