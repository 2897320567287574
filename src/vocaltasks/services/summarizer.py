import re

DEFAULT_TITLE = "Nouvelle tâche"
NOTE_PREFIX = "Intention : "
DEFAULT_NOTE = f"{NOTE_PREFIX}tâche sans description."

MAX_TITLE_WORDS = 6
MAX_NOTE_LENGTH = 150
MAX_SENTENCES = 2

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_TRAILING_PUNCTUATION = ".!?…;:, "


def build_title(text: str) -> str:
    words = text.split()[:MAX_TITLE_WORDS]
    if not words:
        return DEFAULT_TITLE
    title = " ".join(words)
    return title[0].upper() + title[1:]


def build_note(text: str) -> str:
    """Summarize the intent in at most two sentences, prefixed with the intent label.

    The summary always ends with a single period, or with "..." when the note
    would exceed MAX_NOTE_LENGTH characters.
    """
    collapsed = " ".join(text.split())
    sentences = [s for s in _SENTENCE_BOUNDARY.split(collapsed) if s]
    summary = " ".join(sentences[:MAX_SENTENCES]).rstrip(_TRAILING_PUNCTUATION)
    if not summary:
        return DEFAULT_NOTE

    summary = f"{summary}."
    # MAX_NOTE_LENGTH bounds the whole note, label included
    limit = MAX_NOTE_LENGTH - len(NOTE_PREFIX)
    if len(summary) > limit:
        summary = f"{summary[: limit - 3].rstrip()}..."
    return f"{NOTE_PREFIX}{summary}"
