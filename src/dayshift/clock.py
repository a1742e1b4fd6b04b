"""Date resolution and branch naming.

All functions take their inputs explicitly (time zone, style, the instant to
evaluate) so callers and tests can pin the clock.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from .config import DayshiftSettings

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def today(tz: str, style: str = "dash", *, now: datetime | None = None) -> str:
    """Return the calendar date in ``tz`` as ``YYYY-MM-DD`` or ``YYYYMMDD``."""

    instant = now if now is not None else utc_now()
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    local = instant.astimezone(ZoneInfo(tz))
    if style == "compact":
        return local.strftime("%Y%m%d")
    return local.strftime("%Y-%m-%d")


def daily_branch_name(prefix: str, date: str) -> str:
    return f"{prefix}{date}"


def version_branch_name(prefix: str, minor: int) -> str:
    return f"{prefix}{minor}"


def version_minor(prefix: str, branch: str) -> int | None:
    """Return the minor number of ``branch`` if it is a version branch."""

    match = re.fullmatch(re.escape(prefix) + r"(\d+)", branch.strip())
    return int(match.group(1)) if match else None


def next_minor(existing: list[int], *, start: int, increment: int) -> int:
    return max(existing) + increment if existing else start


class BranchNamer:
    """Binds the naming functions to one settings object and clock."""

    def __init__(self, settings: DayshiftSettings, clock: Clock = utc_now) -> None:
        self._settings = settings
        self._clock = clock

    def today(self) -> str:
        return today(self._settings.timezone, self._settings.date_style, now=self._clock())

    def daily(self, date: str | None = None) -> str:
        return daily_branch_name(self._settings.daily_prefix, date or self.today())

    def version(self, minor: int) -> str:
        return version_branch_name(self._settings.version_prefix, minor)

    def minor_of(self, branch: str) -> int | None:
        return version_minor(self._settings.version_prefix, branch)


__all__ = [
    "BranchNamer",
    "Clock",
    "daily_branch_name",
    "next_minor",
    "today",
    "utc_now",
    "version_branch_name",
    "version_minor",
]
