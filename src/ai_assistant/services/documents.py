"""Text extraction for uploaded documents."""

from typing import Callable, Dict, Optional

from ..domain.errors import InvalidRequest

Extractor = Callable[[str, bytes], str]


def extract_plain_text(file_name: str, data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def extract_pdf_placeholder(file_name: str, data: bytes) -> str:
    # PDF parsing is not wired in; keep a marker so the upload is still recorded
    return f"PDF file uploaded: {file_name}"


def describe_size(size_in_bytes: int) -> str:
    """Human readable size descriptor, e.g. ``1.5 KB``."""
    return f"{size_in_bytes / 1024:.1f} KB"


class DocumentExtractor:
    """Maps allowed content types to extraction functions."""

    def __init__(self, extractors: Optional[Dict[str, Extractor]] = None) -> None:
        self._extractors = dict(
            extractors
            or {
                "application/pdf": extract_pdf_placeholder,
                "text/plain": extract_plain_text,
            }
        )

    @property
    def allowed_types(self):
        return sorted(self._extractors)

    def extract(self, file_name: str, content_type: Optional[str], data: bytes) -> str:
        extractor = self._extractors.get((content_type or "").split(";")[0].strip().lower())
        if extractor is None:
            raise InvalidRequest(
                f"Unsupported file type {content_type!r}; allowed: {', '.join(self.allowed_types)}"
            )
        return extractor(file_name, data)
