"""Deterministic, provider-free extraction of a task from French text."""

from __future__ import annotations

from datetime import datetime

from vocaltasks.services.dates import DateResolver
from vocaltasks.services.note import DEFAULT_TIME, NoteProvider, ParsedNote
from vocaltasks.services.summarizer import build_note, build_title
from vocaltasks.services.times import TimeResolver


class HeuristicExtractor:
    """Build the heuristic baseline ParsedNote.

    Same text and same reference instant always produce an equal result.
    """

    def __init__(
        self,
        date_resolver: DateResolver | None = None,
        time_resolver: TimeResolver | None = None,
    ) -> None:
        self.date_resolver = date_resolver or DateResolver()
        self.time_resolver = time_resolver or TimeResolver()

    def extract(self, text: str, reference: datetime) -> ParsedNote:
        return ParsedNote(
            title=build_title(text),
            note=build_note(text),
            date=self.date_resolver.resolve(text, reference),
            time=self.time_resolver.resolve(text) or DEFAULT_TIME,
            ai_used=False,
            ai_provider=NoteProvider.FALLBACK,
        )
