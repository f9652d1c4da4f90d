"""
Abstract base class for extraction strategies.

The executor never talks to a concrete extractor. It goes through
ExtractionService, which picks between two implementations of this
interface:

- GeminiExtractor    = primary, remote LLM call with a hard deadline
- HeuristicExtractor = fallback, local pattern matching, never fails

Both return the same ExtractionResult and honour the same field contract
(extraction/fields.py), so the caller cannot tell them apart except by
ExtractionResult.method.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from models.enums import ExtractField


@dataclass(frozen=True)
class ExtractionResult:
    data: dict = field(default_factory=dict)
    method: str = "unknown"  # stored on the job as extraction_method


class AbstractExtractor(ABC):

    @abstractmethod
    def extract(self, text: str, fields: list[ExtractField]) -> ExtractionResult:
        """
        Extract the requested fields from text.

        Args:
            text: raw document text
            fields: normalized field list (see fields.normalize_fields)

        Returns:
            ExtractionResult whose data has exactly the requested keys.

        Raises:
            ExtractError subclasses → retryable failure.
        """
        ...

    @property
    @abstractmethod
    def method(self) -> str:
        """Name recorded on the job (e.g., 'gemini', 'fallback')."""
        ...
