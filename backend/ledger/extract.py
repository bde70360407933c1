import pdfplumber
import pandas as pd
import re
import hashlib
import logging
from typing import List, Dict, Any
from abc import ABC, abstractmethod

from .chunking import PAGE_SEPARATOR

# Form feeds (pdf-to-text tools) and our own page separator both mark page boundaries.
PAGE_BREAK_PATTERN = re.compile(r'\f|' + re.escape(PAGE_SEPARATOR.strip()))


def split_pages(raw_text: str) -> List[str]:
    """
    Turn a document's raw text into ordered page texts.

    Whitespace-only pages are dropped; order is preserved.
    """
    if not raw_text:
        return []
    return [page.strip() for page in PAGE_BREAK_PATTERN.split(raw_text) if page.strip()]


class BaseReader(ABC):
    @abstractmethod
    def read(self, file_path: str) -> Dict[str, Any]:
        pass

    def get_file_hash(self, file_path: str) -> str:
        sha256_hash = hashlib.sha256()
        with open(file_path, "rb") as f:
            for byte_block in iter(lambda: f.read(4096), b""):
                sha256_hash.update(byte_block)
        return sha256_hash.hexdigest()

    def _payload(self, file_path: str, pages: List[str]) -> Dict[str, Any]:
        return {
            "document_hash": self.get_file_hash(file_path),
            "pages": pages,
            "source_file": file_path
        }


class PDFReader(BaseReader):
    def read(self, file_path: str) -> Dict[str, Any]:
        """
        Returns one text blob per page, in page order:
        {
            "document_hash": "...",
            "pages": ["page 1 text", "page 2 text", ...],
            "source_file": "..."
        }
        """
        pages = []
        logging.info(f"Extracting PDF text: {file_path}")
        with pdfplumber.open(file_path) as pdf:
            for page in pdf.pages:
                text = page.extract_text()
                if text and text.strip():
                    pages.append(text.strip())
        return self._payload(file_path, pages)


class CSVReader(BaseReader):
    def read(self, file_path: str) -> Dict[str, Any]:
        # A CSV export has no pages; render every row as one text line of a single page
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
        lines = [" ".join(df.columns.astype(str))]
        for _, row in df.iterrows():
            lines.append(" ".join(str(cell).strip() for cell in row.tolist() if str(cell).strip()))
        return self._payload(file_path, ["\n".join(lines)] if len(df) else [])


class TextReader(BaseReader):
    def read(self, file_path: str) -> Dict[str, Any]:
        with open(file_path, 'r', encoding='utf-8', errors='ignore') as f:
            text = f.read()
        return self._payload(file_path, split_pages(text))


class DocxReader(BaseReader):
    def read(self, file_path: str) -> Dict[str, Any]:
        import docx
        doc = docx.Document(file_path)
        lines = [para.text for para in doc.paragraphs if para.text.strip()]

        for table in doc.tables:
            for row in table.rows:
                lines.append(" ".join(cell.text.strip() for cell in row.cells if cell.text.strip()))

        return self._payload(file_path, ["\n".join(lines)] if lines else [])


class ReaderFactory:
    @staticmethod
    def get_reader(file_type: str) -> BaseReader:
        ft = file_type.lower().lstrip('.')
        if ft == 'pdf':
            return PDFReader()
        elif ft == 'csv':
            return CSVReader()
        elif ft == 'txt':
            return TextReader()
        elif ft == 'docx':
            return DocxReader()
        else:
            raise ValueError(f"Unsupported file type: {file_type}")
