"""
Extraction strategy selection.

    text ──> should_use_quick_extraction? ──yes──> HeuristicExtractor ("fallback-quick")
                     │ no
                     ▼
              GeminiExtractor ──ok──> result
                     │ ExtractError
                     ▼
          fallback configured? ──yes──> HeuristicExtractor ("fallback")
                     │ no
                     ▼
               re-raise → executor applies retry rules

The quick path only runs when a fallback is configured: with no fallback,
every job goes through the primary extractor.
"""

import logging
from dataclasses import replace
from typing import Iterable, Optional

from config.settings import settings
from extraction.base import AbstractExtractor, ExtractionResult
from extraction.errors import ExtractError
from extraction.fields import normalize_fields
from extraction.gemini import GeminiExtractor
from extraction.heuristic import HeuristicExtractor, should_use_quick_extraction

logger = logging.getLogger(__name__)


class ExtractionService:

    def __init__(
        self,
        primary: AbstractExtractor,
        fallback: Optional[AbstractExtractor] = None,
    ):
        self._primary = primary
        self._fallback = fallback

    def extract(self, text: str, fields: Iterable[str]) -> ExtractionResult:
        requested = normalize_fields(fields)

        if self._fallback is not None and should_use_quick_extraction(text):
            result = self._fallback.extract(text, requested)
            return replace(result, method=f"{result.method}-quick")

        try:
            return self._primary.extract(text, requested)
        except ExtractError as e:
            if self._fallback is None:
                raise
            logger.warning(
                f"Primary extractor failed ({e.kind}: {e}); using {self._fallback.method}"
            )
            return self._fallback.extract(text, requested)


def build_extraction_service() -> ExtractionService:
    """The production wiring: Gemini first, heuristic fallback if enabled."""
    fallback = HeuristicExtractor() if settings.EXTRACTOR_FALLBACK_ENABLED else None
    return ExtractionService(GeminiExtractor(), fallback)
