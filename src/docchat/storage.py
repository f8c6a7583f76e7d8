"""Persisting uploads on disk and fetching document bytes by location."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Final, Optional, Protocol
from urllib.parse import unquote, urlparse
from uuid import uuid4

import requests
from fastapi import UploadFile

from docchat.errors import IngestionError

LOGGER = logging.getLogger(__name__)

_FILENAME_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename preserving the extension when possible."""
    if not filename:
        filename = "upload"
    sanitized = Path(filename).name
    sanitized = _FILENAME_SAFE_CHARS_RE.sub("_", sanitized)
    sanitized = sanitized.strip("._") or "upload"
    return sanitized


def _scope_directory(scope_id: str) -> str:
    return _FILENAME_SAFE_CHARS_RE.sub("_", scope_id).strip("._") or "default"


async def save_upload(scope_id: str, upload: UploadFile, data_dir: Path | str = "data") -> Path:
    """Persist an uploaded file inside the data directory of its product scope."""
    scope_dir = Path(data_dir) / _scope_directory(scope_id)
    scope_dir.mkdir(parents=True, exist_ok=True)

    sanitized_name = _sanitize_filename(upload.filename or "")
    base = Path(sanitized_name).stem or "upload"
    suffix = Path(sanitized_name).suffix
    unique_name = f"{base}-{uuid4().hex}{suffix}" if suffix else f"{base}-{uuid4().hex}"
    destination = scope_dir / unique_name

    contents = await upload.read()
    destination.write_bytes(contents)
    await upload.seek(0)

    return destination.resolve()


class ObjectFetcher(Protocol):
    def fetch(self, location: str) -> bytes:
        ...


class LocalFileFetcher:
    """Read documents stored on the local filesystem (plain paths or ``file://`` URLs)."""

    def fetch(self, location: str) -> bytes:
        parsed = urlparse(location)
        path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(location)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise IngestionError(f"Failed to read document from {path}", cause=exc) from exc


class HttpObjectFetcher:
    """Download documents over HTTP(S)."""

    def __init__(self, *, session: Optional[requests.Session] = None, timeout: float = 30.0) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, location: str) -> bytes:
        try:
            response = self.session.get(location, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.error("Failed to download %s: %s", location, exc)
            raise IngestionError(f"Failed to download document from {location}", cause=exc) from exc
        return response.content


class DispatchingFetcher:
    """Choose a fetcher by URL scheme."""

    def __init__(
        self,
        *,
        local: Optional[ObjectFetcher] = None,
        http: Optional[ObjectFetcher] = None,
    ) -> None:
        self.local = local or LocalFileFetcher()
        self.http = http or HttpObjectFetcher()

    def fetch(self, location: str) -> bytes:
        scheme = urlparse(location).scheme.lower()
        if scheme in {"http", "https"}:
            return self.http.fetch(location)
        if scheme in {"", "file"} or len(scheme) == 1:
            # Single-letter schemes are Windows drive letters.
            return self.local.fetch(location)
        raise IngestionError(f"Unsupported document location scheme: {scheme!r}")


__all__ = [
    "DispatchingFetcher",
    "HttpObjectFetcher",
    "LocalFileFetcher",
    "ObjectFetcher",
    "save_upload",
]
