from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

DEFAULT_TIME = "09:00"


class NoteProvider(str, Enum):
    """Where a parsed note came from."""

    GEMINI = "gemini"
    OPENAI = "openai"
    FALLBACK = "fallback"


@dataclass
class ParsedNote:
    title: str
    note: str
    date: str | None = None
    time: str = DEFAULT_TIME
    ai_used: bool = False
    ai_provider: NoteProvider = NoteProvider.FALLBACK

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["ai_provider"] = self.ai_provider.value
        return data
