"""
Extraction capability clients.

The capability is any text-in/text-out model endpoint. It receives one
chunk of statement text plus EXTRACTION_PROMPT and answers either with
strict JSON or with pipe-delimited lines; turning that answer into
transactions is the Response Normalizer's job, not the client's.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from .config import Config
from .errors import ChunkExtractionError, ConfigurationError

EXTRACTION_PROMPT = """You are a bank statement parser. You receive raw text extracted from a bank statement.
Pages are separated by the line "--- PAGE BREAK ---".

Return ONLY valid JSON, no markdown and no code fences, following this schema:
{
  "meta": {
    "bank_name": "string or null",
    "country": "string or null",
    "account_type": "current | savings | credit_card | unknown",
    "currency": "string or null"
  },
  "transactions": [
    {
      "date": "YYYY-MM-DD",
      "posting_date": "YYYY-MM-DD or null",
      "description": "string",
      "amount": 0.0,
      "currency": "string or null",
      "type": "debit | credit | payment | fee | interest | refund | unknown",
      "balance": 0.0,
      "category": "string",
      "category_confidence": 0.0,
      "fraud_likelihood": 0.0,
      "fraud_reason": "string or null"
    }
  ]
}

Rules:
- Only return real transaction rows. Skip headers, page numbers, summaries and balances brought forward.
- Use negative amounts for debits and positive amounts for credits.
- Keep the full merchant description even when it wraps over several lines.
- category is one of: Food & Dining, Transport, Shopping, Bills & Utilities, Salary & Income,
  Healthcare, Entertainment, Travel, Education, Transfers, Miscellaneous.
- If a row has no valid date and amount, skip it.

If you cannot produce JSON, write one transaction per line instead:
DATE | DESCRIPTION | AMOUNT | BALANCE | CATEGORY | FRAUD_SCORE | FRAUD_REASON
and put "Bank: <name>", "Currency: <ISO code>" and "Account type: <type>" on their own lines."""


def build_prompt(chunk_text: str) -> str:
    return f"{EXTRACTION_PROMPT}\n\nBank statement text:\n{chunk_text}"


class ExtractionClient(ABC):
    name = "extraction"

    @abstractmethod
    def extract(self, text: str, timeout: float) -> str:
        """Send one chunk of statement text, return the raw model output."""
        pass


class OllamaExtractionClient(ExtractionClient):
    name = "ollama"

    def __init__(self, base_url: str, model: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.session = session or requests.Session()

    def extract(self, text: str, timeout: float) -> str:
        try:
            response = self.session.post(
                f"{self.base_url}/api/generate",
                json={
                    "model": self.model,
                    "prompt": build_prompt(text),
                    "stream": False,
                    "options": {"temperature": 0}
                },
                timeout=timeout
            )
            response.raise_for_status()
            output = response.json().get("response") or ""
            if not isinstance(output, str):
                raise TypeError(f"'response' is {type(output).__name__}, not text")
            return output
        except requests.exceptions.RequestException as e:
            raise ChunkExtractionError("Extraction request failed", detail=str(e)) from e
        except ValueError as e:
            raise ChunkExtractionError("Extraction service returned a non-JSON envelope", detail=str(e)) from e
        except (AttributeError, TypeError) as e:
            raise ChunkExtractionError("Extraction service returned an unexpected envelope", detail=str(e)) from e


class OpenAIChatClient(ExtractionClient):
    """OpenAI-compatible /v1/chat/completions endpoint."""
    name = "openai"

    def __init__(self, api_key: str, model: str, base_url: str = "https://api.openai.com",
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()

    def extract(self, text: str, timeout: float) -> str:
        try:
            response = self.session.post(
                f"{self.base_url}/v1/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": build_prompt(text)}],
                    "temperature": 0
                },
                timeout=timeout
            )
            response.raise_for_status()
            choices = response.json().get("choices") or [{}]
            output = (choices[0].get("message") or {}).get("content") or ""
            if not isinstance(output, str):
                raise TypeError(f"'content' is {type(output).__name__}, not text")
            return output
        except requests.exceptions.RequestException as e:
            raise ChunkExtractionError("Extraction request failed", detail=str(e)) from e
        except (ValueError, AttributeError, TypeError, KeyError, IndexError) as e:
            raise ChunkExtractionError("Extraction service returned an unexpected envelope", detail=str(e)) from e


def build_client(mode: Optional[str] = None,
                 provider: Optional[str] = None) -> Optional[ExtractionClient]:
    """
    Build the configured extraction client.

    Returns None when the capability is switched off, or is unconfigured in
    'auto' mode; the caller then uses the fallback parser. In 'required'
    mode a missing endpoint or credential raises ConfigurationError.
    """
    mode = (mode or Config.EXTRACTION_MODE or "auto").lower()
    if mode not in ("off", "auto", "required"):
        raise ConfigurationError(f"Unknown extraction mode: {mode}")
    if mode == "off":
        return None

    provider = (provider or Config.EXTRACTION_PROVIDER or "").lower()
    client: Optional[ExtractionClient] = None
    missing = None
    if provider == "ollama":
        if Config.OLLAMA_BASE_URL and Config.OLLAMA_MODEL:
            client = OllamaExtractionClient(Config.OLLAMA_BASE_URL, Config.OLLAMA_MODEL)
        else:
            missing = "OLLAMA_BASE_URL"
    elif provider == "openai":
        if Config.OPENAI_API_KEY:
            client = OpenAIChatClient(Config.OPENAI_API_KEY, Config.OPENAI_MODEL, Config.OPENAI_BASE_URL)
        else:
            missing = "OPENAI_API_KEY"
    else:
        raise ConfigurationError(f"Unknown extraction provider: {provider}")

    if client is None:
        if mode == "required":
            raise ConfigurationError(
                "Extraction service is not configured",
                detail=f"{missing} environment variable is not set"
            )
        logging.info(f"Extraction provider '{provider}' not configured ({missing} missing); using fallback parser.")
        return None

    logging.info(f"Extraction client ready: {client.name}")
    return client
