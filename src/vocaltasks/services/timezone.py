"""Timezone handling for note parsing.

Relative expressions ("demain", "lundi prochain") are resolved against a
reference instant: the current time in the configured IANA zone. The
instant is computed fresh for every parse call and never cached.
"""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from vocaltasks.config import settings
from vocaltasks.services.errors import InternalInvariantFailure

# Indexed by date.weekday() (Monday == 0)
WEEKDAY_NAMES_FR: tuple[str, ...] = (
    "lundi",
    "mardi",
    "mercredi",
    "jeudi",
    "vendredi",
    "samedi",
    "dimanche",
)

MONDAY = 0
SATURDAY = 5


def to_iso_date(value: date | datetime) -> str:
    """Format the calendar date part as YYYY-MM-DD."""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def next_weekday(value: date, weekday: int) -> date:
    """Next date with the given weekday, strictly after ``value``.

    If ``value`` already falls on ``weekday`` the result is one week later.
    """
    diff = (weekday - value.weekday()) % 7 or 7
    return value + timedelta(days=diff)


def weekday_name_fr(value: date) -> str:
    return WEEKDAY_NAMES_FR[value.weekday()]


class TimezoneService:
    """Produces reference instants in the configured timezone."""

    def __init__(self, default_timezone: str | None = None):
        """Initialize timezone service.

        Args:
            default_timezone: IANA timezone name. Defaults to settings.app_timezone.

        Raises:
            InternalInvariantFailure: If the timezone name is unknown.
        """
        self._default_tz_name = default_timezone or settings.app_timezone
        try:
            self._default_tz = ZoneInfo(self._default_tz_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise InternalInvariantFailure(
                f"Unknown timezone {self._default_tz_name!r}"
            ) from exc

    @property
    def default_timezone(self) -> str:
        """Get the default timezone name."""
        return self._default_tz_name

    def now(self) -> datetime:
        """Current time in the configured timezone."""
        return datetime.now(self._default_tz)

    def today(self) -> date:
        return self.now().date()

    def localize(self, dt: datetime) -> datetime:
        """Attach the configured timezone to a naive datetime or convert an aware one."""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=self._default_tz)
        return dt.astimezone(self._default_tz)


# Module-level singleton
_timezone_service: TimezoneService | None = None


def get_timezone_service() -> TimezoneService:
    """Get the singleton TimezoneService built from settings."""
    global _timezone_service
    if _timezone_service is None:
        _timezone_service = TimezoneService()
    return _timezone_service


def reset_timezone_service() -> None:
    """Reset the singleton (useful for testing)."""
    global _timezone_service
    _timezone_service = None
