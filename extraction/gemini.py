"""
Primary extractor — Gemini generateContent with structured JSON output.

The request carries a responseSchema built from the requested fields, so the
model is asked for exactly the keys the job needs. The response is still
validated locally: the schema is a request, not a guarantee.

Deadline handling:
- httpx enforces EXTRACTOR_TIMEOUT_SECONDS on connect/read/write/pool
- the body is streamed and the total elapsed time is checked after every
  chunk, so an upstream that keeps trickling bytes is cut off once
  EXTRACTOR_TIMEOUT_SECONDS have passed (ExtractTimeout)
Either way the response is closed before this method returns; nothing keeps
running detached from the job.

Error mapping:
    httpx.TimeoutException        → ExtractTimeout
    other httpx.HTTPError         → UpstreamError
    non-2xx status                → UpstreamError
    body / candidate not parsable → UpstreamError
    wrong shape                   → InvalidShape
"""

import json
import logging
import re
import time
from datetime import date
from typing import Callable, Optional

import httpx

from config.settings import settings
from models.enums import ExtractField
from extraction.base import AbstractExtractor, ExtractionResult
from extraction.errors import ExtractTimeout, UpstreamError
from extraction.fields import build_response_schema, validate_shape

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You extract structured data from resume (CV) text. Extract ONLY the requested fields.

RULES:
- name: the person's full name. Capitalize each word except connectives (de, da, do, dos, das).
- age: a number followed by "anos" / "years", otherwise compute it from a birth date (current year: {year}). If neither is present: 0.
- email: the first valid address containing "@". If none: "".
- contacts: up to 2 phone numbers formatted (DD) 9XXXX-XXXX, or (DD) XXXX-XXXX for landlines. If none: [].

Answer with the JSON object only, no explanation."""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


class GeminiExtractor(AbstractExtractor):

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_text_chars: Optional[int] = None,
        client: Optional[httpx.Client] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self._model = model or settings.GEMINI_MODEL
        self._base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.EXTRACTOR_TIMEOUT_SECONDS
        self._max_text_chars = max_text_chars or settings.EXTRACTOR_MAX_TEXT_CHARS
        self._client = client or httpx.Client(timeout=httpx.Timeout(self._timeout))
        self._monotonic = monotonic

    @property
    def method(self) -> str:
        return "gemini"

    def close(self) -> None:
        self._client.close()

    def extract(self, text: str, fields: list[ExtractField]) -> ExtractionResult:
        if not self._api_key:
            raise UpstreamError("GEMINI_API_KEY is not configured")

        payload = self._build_payload(text, fields)
        url = f"{self._base_url}/models/{self._model}:generateContent"

        start = self._monotonic()
        body = bytearray()
        try:
            with self._client.stream(
                "POST",
                url,
                params={"key": self._api_key},
                json=payload,
                timeout=httpx.Timeout(self._timeout),
            ) as response:
                for chunk in response.iter_bytes():
                    body.extend(chunk)
                    elapsed = self._monotonic() - start
                    if elapsed > self._timeout:
                        raise ExtractTimeout(
                            f"Gemini still sending after {elapsed:.1f}s (deadline {self._timeout}s)"
                        )
                status_code = response.status_code
        except httpx.TimeoutException as e:
            raise ExtractTimeout(f"Gemini timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Gemini transport error: {e}") from e

        elapsed = self._monotonic() - start
        if elapsed > self._timeout:
            raise ExtractTimeout(f"Gemini answered after {elapsed:.1f}s (deadline {self._timeout}s)")

        content = body.decode("utf-8", errors="replace")
        if status_code >= 400:
            raise UpstreamError(f"Gemini returned {status_code}: {content[:100]}")

        raw = self._candidate_text(content)
        data, repaired = self._parse_json(raw)
        cleaned = validate_shape(data, fields)

        age = cleaned.get(ExtractField.AGE.value)
        if age is not None and not 14 <= age <= 100:
            cleaned[ExtractField.AGE.value] = 0

        return ExtractionResult(
            data=cleaned,
            method="gemini-repaired" if repaired else self.method,
        )

    def _build_payload(self, text: str, fields: list[ExtractField]) -> dict:
        if len(text) > self._max_text_chars:
            text = text[: self._max_text_chars] + "..."

        return {
            "contents": [{"parts": [{"text": f"CV:\n{text}"}]}],
            "systemInstruction": {
                "parts": [{"text": SYSTEM_PROMPT.format(year=date.today().year)}]
            },
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": build_response_schema(fields),
                "maxOutputTokens": 300,
                "temperature": 0,
                "candidateCount": 1,
            },
        }

    @staticmethod
    def _candidate_text(content: str) -> str:
        try:
            body = json.loads(content)
        except ValueError as e:
            raise UpstreamError("Gemini returned a non-JSON body") from e

        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Gemini response has no candidate text") from e

        if not isinstance(text, str) or not text.strip():
            raise UpstreamError("Gemini response has no candidate text")
        return text.strip()

    @staticmethod
    def _parse_json(raw: str) -> tuple[dict, bool]:
        """Parse the model output, with one repair pass for truncated/fenced JSON."""
        try:
            return json.loads(raw), False
        except json.JSONDecodeError as first:
            repaired = _FENCE_RE.sub("", raw).strip()
            repaired = re.sub(r"[,:]\s*$", "", repaired)
            if not repaired.startswith("{"):
                repaired = "{" + repaired
            if not repaired.endswith("}"):
                repaired = repaired + "}"
            try:
                data = json.loads(repaired)
            except json.JSONDecodeError:
                raise UpstreamError(f"Unrecoverable JSON from model: {first.msg}") from first
            logger.info("Repaired malformed JSON from Gemini")
            return data, True
