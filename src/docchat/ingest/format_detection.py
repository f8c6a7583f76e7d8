"""Utilities for detecting the format of uploaded documents."""
from __future__ import annotations

import mimetypes
from enum import Enum
from pathlib import Path
from typing import Optional

from docchat.errors import UnsupportedFormatError


class DocumentFormat(str, Enum):
    """Supported document formats."""

    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"
    MD = "md"


class DocumentFormatDetector:
    """Maps MIME types (and, for registration, file names) to a format."""

    _MIME_MAP = {
        "application/pdf": DocumentFormat.PDF,
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
        "text/plain": DocumentFormat.TXT,
        "text/markdown": DocumentFormat.MD,
        "text/x-markdown": DocumentFormat.MD,
    }

    _CANONICAL_MIME = {
        DocumentFormat.PDF: "application/pdf",
        DocumentFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        DocumentFormat.TXT: "text/plain",
        DocumentFormat.MD: "text/markdown",
    }

    @classmethod
    def from_mime(cls, mime_type: Optional[str]) -> DocumentFormat:
        """Return the format for *mime_type* or raise :class:`UnsupportedFormatError`.

        Parameters such as ``; charset=utf-8`` are ignored.
        """

        normalized = (mime_type or "").split(";", 1)[0].strip().lower()
        try:
            return cls._MIME_MAP[normalized]
        except KeyError:
            raise UnsupportedFormatError(mime_type) from None

    @classmethod
    def guess_mime(cls, file_name: str, declared: Optional[str] = None) -> str:
        """Resolve the MIME type to store for an upload.

        A supported declared type wins; otherwise ``mimetypes`` and finally the
        file suffix are consulted. Unknown files keep whatever was declared so
        that ingestion can reject them explicitly.
        """

        if declared:
            normalized = declared.split(";", 1)[0].strip().lower()
            if normalized in cls._MIME_MAP:
                return normalized

        guessed_type, _ = mimetypes.guess_type(file_name)
        if guessed_type and guessed_type in cls._MIME_MAP:
            return guessed_type

        suffix = Path(file_name).suffix.lower().lstrip(".")
        if suffix == "markdown":
            suffix = "md"
        try:
            return cls._CANONICAL_MIME[DocumentFormat(suffix)]
        except ValueError:
            return declared or "application/octet-stream"
