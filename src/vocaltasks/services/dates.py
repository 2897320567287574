"""French date phrase resolution.

Rules are evaluated in order; the first rule whose pattern matches and whose
resolver produces a date wins. A resolver returning ``None`` (for example an
out-of-range day) lets evaluation fall through to the next rule. All
patterns run against normalized text (lowercase, no accents).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime

from vocaltasks.services.normalize import normalize_text
from vocaltasks.services.timezone import (
    MONDAY,
    SATURDAY,
    WEEKDAY_NAMES_FR,
    add_days,
    next_weekday,
    to_iso_date,
)

logger = logging.getLogger(__name__)

MONTHS: dict[str, int] = {
    "janvier": 1,
    "fevrier": 2,
    "mars": 3,
    "avril": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7,
    "aout": 8,
    "septembre": 9,
    "octobre": 10,
    "novembre": 11,
    "decembre": 12,
}

WEEKDAYS: dict[str, int] = {name: index for index, name in enumerate(WEEKDAY_NAMES_FR)}

DateResolverFunc = Callable[[re.Match[str], date], date | None]


@dataclass(frozen=True)
class DateRule:
    name: str
    pattern: re.Pattern[str]
    resolve: DateResolverFunc


def _future_date(year: int, month: int, day: int, reference: date) -> date | None:
    """Build a date, rolling one year forward if it is on or before ``reference``."""
    if not (1 <= day <= 31 and 1 <= month <= 12):
        return None
    try:
        candidate = date(year, month, day)
        if candidate <= reference:
            candidate = candidate.replace(year=candidate.year + 1)
    except ValueError:
        # 31 fevrier, or 29 fevrier rolled into a non-leap year
        return None
    return candidate


def _after_tomorrow(match: re.Match[str], reference: date) -> date | None:
    return add_days(reference, 2)


def _tomorrow(match: re.Match[str], reference: date) -> date | None:
    return add_days(reference, 1)


def _in_days(match: re.Match[str], reference: date) -> date | None:
    return add_days(reference, int(match.group(1)))


def _weekend(match: re.Match[str], reference: date) -> date | None:
    return next_weekday(reference, SATURDAY)


def _day_month_name(match: re.Match[str], reference: date) -> date | None:
    day = int(match.group(1))
    month = MONTHS[match.group(2)]
    return _future_date(reference.year, month, day, reference)


def _numeric_date(match: re.Match[str], reference: date) -> date | None:
    day = int(match.group(1))
    month = int(match.group(2))
    year = int(match.group(3)) if match.group(3) else reference.year
    if year < 100:
        year += 2000
    return _future_date(year, month, day, reference)


def _weekday(match: re.Match[str], reference: date) -> date | None:
    return next_weekday(reference, WEEKDAYS[match.group(1)])


def _next_week(match: re.Match[str], reference: date) -> date | None:
    return next_weekday(reference, MONDAY)


def _today(match: re.Match[str], reference: date) -> date | None:
    return reference


DATE_RULES: tuple[DateRule, ...] = (
    DateRule("after_tomorrow", re.compile(r"\bapres[\s-]?demain\b"), _after_tomorrow),
    DateRule("tomorrow", re.compile(r"\bdemain\b"), _tomorrow),
    DateRule("in_days", re.compile(r"\bdans\s+(\d{1,3})\s+jours?\b"), _in_days),
    DateRule("weekend", re.compile(r"\bweek[\s-]?ends?\b"), _weekend),
    DateRule(
        "day_month_name",
        re.compile(r"\b(\d{1,2})(?:er)?\s*(" + "|".join(MONTHS) + r")\b"),
        _day_month_name,
    ),
    DateRule(
        "numeric_date",
        re.compile(r"\b(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?\b"),
        _numeric_date,
    ),
    DateRule(
        "weekday",
        re.compile(r"\b(" + "|".join(WEEKDAYS) + r")(?:\s+prochain)?\b"),
        _weekday,
    ),
    DateRule("next_week", re.compile(r"\bsemaine\s+prochaine\b"), _next_week),
    DateRule("today", re.compile(r"\b(?:aujourd['’ ]?hui|ce jour)\b"), _today),
)


class DateResolver:
    """Resolve French date expressions to ISO dates."""

    def __init__(self, rules: Sequence[DateRule] | None = None) -> None:
        self.rules: tuple[DateRule, ...] = tuple(rules) if rules is not None else DATE_RULES

    def match(self, text: str, reference: date | datetime) -> tuple[str, str] | None:
        """Return ``(rule_name, iso_date)`` for the winning rule, or None."""
        ref = reference.date() if isinstance(reference, datetime) else reference
        normalized = normalize_text(text)

        for rule in self.rules:
            for found in rule.pattern.finditer(normalized):
                resolved = rule.resolve(found, ref)
                if resolved is not None:
                    logger.debug(
                        "Date rule %s matched %r -> %s", rule.name, found.group(0), resolved
                    )
                    return rule.name, to_iso_date(resolved)
        return None

    def resolve(self, text: str, reference: date | datetime) -> str | None:
        matched = self.match(text, reference)
        return matched[1] if matched else None
