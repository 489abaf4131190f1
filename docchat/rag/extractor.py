"""Plain-text extraction for uploaded files.

Handles:
- Declared type resolution from the file name
- PDF text via pypdf (page by page)
- DOCX text via python-docx (paragraph by paragraph)
- TXT / MD decoded as UTF-8
"""
import io
from pathlib import PurePath
from typing import Iterable

import docx
import pypdf
import structlog

from docchat import config
from docchat.errors import ExtractionError, UnsupportedTypeError

logger = structlog.get_logger()


def resolve_type(filename: str) -> str:
    """Return the declared type (lower-case extension) of a file name.

    Raises:
        UnsupportedTypeError: If the extension is not accepted
    """
    declared_type = PurePath(filename or "").suffix.lower().lstrip(".")
    if declared_type not in config.ALLOWED_TYPES:
        raise UnsupportedTypeError(declared_type)
    return declared_type


class TextExtractor:
    """Converts raw file bytes into plain text according to their declared type."""

    def __init__(self, allowed_types: Iterable[str] = None):
        self.allowed_types = tuple(allowed_types or config.ALLOWED_TYPES)

    def extract(self, data: bytes, declared_type: str) -> str:
        """Extract plain text.

        Args:
            data: Raw file contents
            declared_type: One of pdf, docx, txt, md (case-insensitive, leading dot allowed)

        Returns:
            Extracted text (may be empty, e.g. for scanned PDFs)

        Raises:
            UnsupportedTypeError: If the type is not accepted
            ExtractionError: If the file cannot be parsed
        """
        declared_type = (declared_type or "").lower().lstrip(".")
        if declared_type not in self.allowed_types:
            raise UnsupportedTypeError(declared_type)

        try:
            if declared_type == "pdf":
                text = self._extract_pdf(data)
            elif declared_type == "docx":
                text = self._extract_docx(data)
            else:
                text = data.decode("utf-8")
        except Exception as e:
            logger.error(
                "text_extraction_failed",
                declared_type=declared_type,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ExtractionError(f"Could not read {declared_type.upper()} file: {e}") from e

        logger.info(
            "text_extracted",
            declared_type=declared_type,
            byte_size=len(data),
            text_length=len(text),
        )
        return text

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                parts.append(page_text)
        return "\n\n".join(parts)

    @staticmethod
    def _extract_docx(data: bytes) -> str:
        document = docx.Document(io.BytesIO(data))
        return "\n".join(paragraph.text for paragraph in document.paragraphs)
