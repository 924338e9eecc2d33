"""Resolve a message's Date header to the local instant used by the freshness gate.

The header's wall-clock fields are taken as if they were UTC, corrected
to true UTC with the declared zone offset, then shifted into the
runtime's local offset.  A zone ahead of GMT (``+0900``) is subtracted,
a zone behind GMT (``-0500``) is added.
"""

from __future__ import annotations

import email.utils
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .errors import FormatError


@dataclass(frozen=True)
class MessageDate:
    """Date header split into wall-clock fields and a signed zone offset."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int
    tz_hour: int = 0
    tz_minute: int = 0
    tz_before_gmt: bool = False

    @property
    def offset(self) -> timedelta:
        """Declared offset from GMT, negative when behind."""
        magnitude = timedelta(hours=self.tz_hour, minutes=self.tz_minute)
        return -magnitude if self.tz_before_gmt else magnitude


def parse_message_date(header: str) -> MessageDate:
    """Parse an RFC 2822 ``Date`` header.

    A header without a zone is treated as ``+0000``.
    """
    parsed = email.utils.parsedate_tz(header) if header else None
    if parsed is None:
        raise FormatError(f"message has an unparseable Date header: {header!r}")

    year, month, day, hour, minute, second = parsed[:6]
    offset_seconds = parsed[9] or 0
    magnitude = abs(offset_seconds)
    return MessageDate(
        year=year,
        month=month,
        day=day,
        hour=hour,
        minute=minute,
        second=second,
        tz_hour=magnitude // 3600,
        tz_minute=(magnitude % 3600) // 60,
        tz_before_gmt=offset_seconds < 0,
    )


def local_utc_offset() -> timedelta:
    """The runtime's current offset from UTC."""
    offset = datetime.now().astimezone().utcoffset()
    return offset if offset is not None else timedelta(0)


def to_local_instant(message_date: MessageDate, local_offset: timedelta) -> datetime:
    """Convert *message_date* to an aware datetime in the *local_offset* zone."""
    try:
        wall_clock = datetime(
            message_date.year,
            message_date.month,
            message_date.day,
            message_date.hour,
            message_date.minute,
            message_date.second,
        )
    except ValueError as exc:
        raise FormatError(f"message date is out of range: {message_date}") from exc

    hours = timedelta(hours=message_date.tz_hour)
    minutes = timedelta(minutes=message_date.tz_minute)
    if message_date.tz_before_gmt:
        utc = wall_clock + hours + minutes
    else:
        utc = wall_clock - hours - minutes

    return (utc + local_offset).replace(tzinfo=timezone(local_offset))


def resolve_message_instant(header: str, local_offset: timedelta | None = None) -> datetime:
    """Parse *header* and return the local instant it denotes."""
    if local_offset is None:
        local_offset = local_utc_offset()
    return to_local_instant(parse_message_date(header), local_offset)
