"""French time-of-day resolution.

Explicit clock times are checked before day-part keywords so "ce soir à 20h"
resolves to 20:00 rather than the default evening slot.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from vocaltasks.services.normalize import normalize_text

logger = logging.getLogger(__name__)

TimeResolverFunc = Callable[[re.Match[str]], str | None]


@dataclass(frozen=True)
class TimeRule:
    name: str
    pattern: re.Pattern[str]
    resolve: TimeResolverFunc


def format_time(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def clock_time(hour: int, minute: int, meridiem: str | None = None) -> str | None:
    """Validate a clock reading and convert it to 24-hour HH:MM."""
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    return format_time(hour, minute)


_DURATION_PREFIX = re.compile(r"\b(?:dans|en|pendant)\s+$")


def _clock(match: re.Match[str]) -> str | None:
    # "dans 2 heures" is a duration, not a clock reading
    if _DURATION_PREFIX.search(match.string, 0, match.start()):
        return None
    minute = match.group("minute")
    return clock_time(int(match.group("hour")), int(minute) if minute else 0, match.group("meridiem"))


def _fixed(value: str) -> TimeResolverFunc:
    return lambda match: value


TIME_RULES: tuple[TimeRule, ...] = (
    # 14h30, 14 h, 9h du matin, 14:30, 2:30 pm
    TimeRule(
        "clock",
        re.compile(
            r"\b(?P<hour>\d{1,2})\s*(?:heures?|h|:)\s*(?P<minute>\d{2})?"
            r"(?:\s*(?P<meridiem>am|pm))?(?![a-z0-9])"
        ),
        _clock,
    ),
    # 3pm, 11 am
    TimeRule(
        "meridiem",
        re.compile(r"\b(?P<hour>\d{1,2})\s*(?P<meridiem>am|pm)\b(?P<minute>)"),
        _clock,
    ),
    TimeRule("morning", re.compile(r"\bmatin"), _fixed("09:00")),
    TimeRule("afternoon", re.compile(r"\bapres[\s-]?midi\b"), _fixed("14:00")),
    TimeRule("evening", re.compile(r"\bsoir"), _fixed("19:00")),
    TimeRule("noon", re.compile(r"\bmidi\b"), _fixed("12:00")),
)


class TimeResolver:
    """Resolve a time of day from French text."""

    def __init__(self, rules: Sequence[TimeRule] | None = None) -> None:
        self.rules: tuple[TimeRule, ...] = tuple(rules) if rules is not None else TIME_RULES

    def match(self, text: str) -> tuple[str, str] | None:
        """Return ``(rule_name, "HH:MM")`` for the winning rule, or None."""
        normalized = normalize_text(text)

        for rule in self.rules:
            for found in rule.pattern.finditer(normalized):
                resolved = rule.resolve(found)
                if resolved is not None:
                    logger.debug(
                        "Time rule %s matched %r -> %s", rule.name, found.group(0), resolved
                    )
                    return rule.name, resolved
        return None

    def resolve(self, text: str) -> str | None:
        matched = self.match(text)
        return matched[1] if matched else None
