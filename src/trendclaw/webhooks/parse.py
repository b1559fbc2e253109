"""Best-effort extraction of signal entries from free-text agent output."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from trendclaw.models import SIGNAL_SOURCE_NAME_LENGTH, SIGNAL_SOURCE_URL_LENGTH, SIGNAL_TITLE_LENGTH, SIGNAL_TYPE_LENGTH

logger = structlog.get_logger()

UNTITLED_SIGNAL = "Untitled signal"
DEFAULT_CONFIDENCE = 0.5

# Summaries past this size are not scanned.
MAX_SUMMARY_CHARS = 100_000
MAX_ARRAY_STARTS = 32

COLUMN_LENGTHS = {
    "title": SIGNAL_TITLE_LENGTH,
    "source_url": SIGNAL_SOURCE_URL_LENGTH,
    "source_name": SIGNAL_SOURCE_NAME_LENGTH,
}

FENCE = "```"
FENCE_LANGUAGE_RE = re.compile(r"\w*")


class SignalCandidate(BaseModel):
    """One signal entry as reported by the agent."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(
        ..., min_length=1, max_length=SIGNAL_TYPE_LENGTH, description="Category key from the requested enum"
    )
    title: str = Field(UNTITLED_SIGNAL, description="Short headline")
    summary: str = Field("", description="2-3 sentence description")
    source_url: str | None = Field(None, alias="sourceUrl")
    source_name: str | None = Field(None, alias="sourceName")
    confidence: float = Field(DEFAULT_CONFIDENCE, ge=0, le=1)
    raw_data: Any | None = Field(None, alias="rawData")

    @field_validator("type", mode="before")
    @classmethod
    def _strip_type(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return UNTITLED_SIGNAL
        return value

    @field_validator("summary", mode="before")
    @classmethod
    def _default_summary(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("source_url", "source_name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("title", "source_url", "source_name")
    @classmethod
    def _fit_column(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            return None
        return value[: COLUMN_LENGTHS[info.field_name]]

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_CONFIDENCE
        if isinstance(value, bool):
            return DEFAULT_CONFIDENCE
        if isinstance(value, (int, float)):
            return min(1.0, max(0.0, float(value)))
        return value


class ExtractionStatus(str, Enum):
    PARSED = "parsed"
    NOT_JSON = "not_json"
    EMPTY = "empty"


@dataclass
class ExtractionResult:
    """Outcome of parsing one agent summary."""

    status: ExtractionStatus
    candidates: list[SignalCandidate] = field(default_factory=list)
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return self.status != ExtractionStatus.NOT_JSON


def strip_code_fence(text: str) -> str:
    stripped = text.rstrip()
    if len(stripped) < 2 * len(FENCE) or not (stripped.startswith(FENCE) and stripped.endswith(FENCE)):
        return text
    body = stripped[len(FENCE) : -len(FENCE)]
    language = FENCE_LANGUAGE_RE.match(body)
    return body[language.end() if language else 0 :].strip()


def find_json_array(text: str) -> list[Any] | None:
    """Return the first decodable JSON array embedded in prose, if any.

    Only the first ``MAX_ARRAY_STARTS`` opening brackets are tried.
    """
    decoder = json.JSONDecoder()
    start = text.find("[")
    attempts = 0
    while start != -1 and attempts < MAX_ARRAY_STARTS:
        attempts += 1
        try:
            value, _ = decoder.raw_decode(text, start)
        except (ValueError, RecursionError):
            value = None
        if isinstance(value, list):
            return value
        start = text.find("[", start + 1)
    return None


def _decode(text: str) -> Any:
    if text.startswith(("[", "{")):
        try:
            return json.loads(text)
        except (ValueError, RecursionError):
            return None
    found = find_json_array(text)
    # Prose that merely contains a bracketed list of scalars is an agent message, not output.
    if found is not None and any(not isinstance(item, dict) for item in found):
        return None
    return found


def _entries(parsed: Any) -> list[Any] | None:
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        signals = parsed.get("signals")
        return signals if isinstance(signals, list) else []
    return None


def extract_signals(summary: str | None) -> ExtractionResult:
    """Parse an agent summary into signal candidates.

    Accepts a bare JSON array, an object with a ``signals`` array, either of
    those wrapped in a markdown fence, or prose with an embedded array.
    """
    text = (summary or "").strip()
    if not text:
        return ExtractionResult(ExtractionStatus.EMPTY)
    if len(text) > MAX_SUMMARY_CHARS:
        logger.warning("webhook.summary_too_large", length=len(text), limit=MAX_SUMMARY_CHARS)
        return ExtractionResult(ExtractionStatus.NOT_JSON)

    entries = _entries(_decode(strip_code_fence(text)))
    if entries is None:
        logger.warning("webhook.summary_not_json", preview=text[:120])
        return ExtractionResult(ExtractionStatus.NOT_JSON)
    if not entries:
        return ExtractionResult(ExtractionStatus.EMPTY)

    candidates: list[SignalCandidate] = []
    skipped = 0
    for entry in entries:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        try:
            candidates.append(SignalCandidate.model_validate(entry))
        except ValidationError as exc:
            skipped += 1
            logger.debug("webhook.entry_skipped", errors=exc.error_count())

    if skipped:
        logger.info("webhook.entries_skipped", skipped=skipped, kept=len(candidates))
    return ExtractionResult(ExtractionStatus.PARSED, candidates, skipped)
