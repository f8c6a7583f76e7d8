"""Language detection helpers."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0

SAMPLE_CHARS = 5000

# langdetect loads its profiles on first use and is not safe to initialise concurrently.
_DETECT_LOCK = threading.Lock()


class LanguageDetector:
    """Best-effort document language detection; ``None`` when undecidable."""

    def detect(self, text: str) -> Optional[str]:
        cleaned = text.strip()[:SAMPLE_CHARS]
        if not cleaned:
            return None
        try:
            with _DETECT_LOCK:
                language = detect(cleaned)
        except LangDetectException:
            LOGGER.info("Unable to determine language for text of length %s", len(text))
            return None
        LOGGER.debug("Detected language: %s", language)
        return language
