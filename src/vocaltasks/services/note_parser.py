"""LLM-enhanced note parsing with heuristic fallback."""

from __future__ import annotations

import json
import logging
import re
import threading
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from vocaltasks.services.errors import (
    InternalInvariantFailure,
    MalformedResultError,
    NoteParsingError,
)
from vocaltasks.services.heuristics import HeuristicExtractor
from vocaltasks.services.llm_client import (
    LLMClient,
    LLMProvider,
    ProviderConfig,
    get_llm_client,
)
from vocaltasks.services.note import DEFAULT_TIME, NoteProvider, ParsedNote
from vocaltasks.services.prompts import build_prompt
from vocaltasks.services.times import clock_time
from vocaltasks.services.timezone import TimezoneService, get_timezone_service

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CLOCK = re.compile(r"^(\d{1,2})\s*[:h]\s*(\d{2})?$")


class ProviderNotePayload(BaseModel):
    """The JSON object a provider must answer with.

    ``title`` and ``note`` are required. ``date`` and ``time`` are repaired
    rather than rejected: anything unusable becomes None so the heuristic
    value is used instead.
    """

    model_config = ConfigDict(extra="ignore")

    title: str
    note: str
    date: str | None = None
    time: str | None = None

    @field_validator("title", "note", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()

    @field_validator("date", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> str | None:
        if not isinstance(value, str) or not _ISO_DATE.match(value.strip()):
            return None
        try:
            return date.fromisoformat(value.strip()).isoformat()
        except ValueError:
            return None

    @field_validator("time", mode="before")
    @classmethod
    def _clock_time(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        match = _CLOCK.match(value.strip().lower())
        if not match:
            return None
        return clock_time(int(match.group(1)), int(match.group(2) or 0))


def parse_provider_payload(text: str) -> ProviderNotePayload:
    """Decode and validate a provider completion.

    Raises:
        MalformedResultError: Invalid JSON, not an object, or missing title/note.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResultError(f"Provider response is not JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedResultError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return ProviderNotePayload.model_validate(data)
    except ValidationError as exc:
        raise MalformedResultError(f"Invalid provider payload: {exc}") from exc


class NoteParser:
    """Parse a voice note with an LLM, falling back to heuristics on any failure.

    The heuristic baseline is always computed first; it is returned as-is
    when no credential is configured or when the provider call fails.
    """

    def __init__(
        self,
        *,
        config: ProviderConfig | None = None,
        llm_client: LLMClient | None = None,
        extractor: HeuristicExtractor | None = None,
        timezone_service: TimezoneService | None = None,
    ) -> None:
        if llm_client is None:
            llm_client = LLMClient(config) if config is not None else get_llm_client()
        self.llm_client = llm_client
        self.extractor = extractor or HeuristicExtractor()
        self.timezone_service = timezone_service or get_timezone_service()

    def parse(self, text: str, *, reference: datetime | None = None) -> ParsedNote:
        if reference is None:
            reference = self.timezone_service.now()
        else:
            reference = self.timezone_service.localize(reference)

        baseline = self.extractor.extract(text, reference)
        if not self.llm_client.is_available:
            logger.info("No LLM credential configured; using heuristic parsing")
            return baseline

        provider = self.llm_client.primary_provider
        try:
            prompt = build_prompt(text, reference, self.timezone_service.default_timezone)
            response = self.llm_client.complete(prompt)
            payload = parse_provider_payload(response.text)
        except InternalInvariantFailure:
            raise
        except NoteParsingError as exc:
            logger.warning(
                "LLM parsing with %s failed; falling back to heuristics: %s", provider.value, exc
            )
            return baseline
        except Exception:
            logger.exception(
                "Unexpected error during LLM parsing with %s; falling back to heuristics",
                provider.value,
            )
            return baseline

        return self._merge_with_baseline(payload, baseline, provider, reference.date())

    def _merge_with_baseline(
        self,
        payload: ProviderNotePayload,
        baseline: ParsedNote,
        provider: LLMProvider,
        today: date,
    ) -> ParsedNote:
        due_date = payload.date
        if due_date is not None and date.fromisoformat(due_date) < today:
            logger.debug("Discarding past date %s from %s", due_date, provider.value)
            due_date = None

        return ParsedNote(
            title=payload.title,
            note=payload.note,
            date=due_date or baseline.date,
            time=payload.time or baseline.time or DEFAULT_TIME,
            ai_used=True,
            ai_provider=NoteProvider(provider.value),
        )


_parser: NoteParser | None = None
_parser_lock = threading.Lock()


def get_note_parser() -> NoteParser:
    """Get or create the process-wide NoteParser built from settings."""
    global _parser
    if _parser is None:
        with _parser_lock:
            if _parser is None:
                _parser = NoteParser()
    return _parser


def reset_note_parser() -> None:
    """Drop the process-wide parser (useful for testing)."""
    global _parser
    with _parser_lock:
        _parser = None


def parse_note(text: str) -> ParsedNote:
    """Parse one voice note. Never raises except for broken configuration."""
    return get_note_parser().parse(text)
