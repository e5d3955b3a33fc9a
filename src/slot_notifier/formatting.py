"""
Human-readable rendering of discovered slots.

All dates and times are shown in the configured time zone. When the zone
name cannot be resolved, a fixed UTC+3 offset is used instead; the fallback
is logged and never fatal.
"""

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


FALLBACK_TIMEZONE = timezone(timedelta(hours=3), "UTC+3")

RUSSIAN_WEEKDAYS = (
    "понедельник",
    "вторник",
    "среда",
    "четверг",
    "пятница",
    "суббота",
    "воскресенье",
)

SLOT_MESSAGE = (
    "🟢 Доступно окно записи\n"
    "\n"
    "Компания: {company}\n"
    "Услуга: {service}\n"
    "Сотрудник: #{staff_id}\n"
    "Дата: {date} ({weekday})\n"
    "Время: {clock} {zone}\n"
)

SLOT_MESSAGE_NO_DATE = (
    "🟢 Доступно окно записи\n"
    "\n"
    "Компания: {company}\n"
    "Услуга: {service}\n"
    "Сотрудник: #{staff_id}\n"
    "Время: {clock}\n"
)

CURRENT_SLOT_LINE = "📅 {date} ({weekday}) в {clock} - Сотрудник #{staff_id}"


class NameResolver(Protocol):
    def location_name(self, location_id) -> Optional[str]: ...

    def service_name(self, service_id) -> Optional[str]: ...


def resolve_timezone(name: str, logger: Optional[logging.Logger] = None) -> tzinfo:
    """Return the named zone, or the fixed UTC+3 fallback if it cannot be loaded."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        (logger or logging.getLogger(__name__)).warning(
            f"Failed to load timezone, using fallback timezone={name!r} fallback=UTC+3 error={e}"
        )
        return FALLBACK_TIMEZONE


def parse_slot_datetime(value: str, tz: tzinfo) -> Optional[datetime]:
    """Parse an RFC 3339 datetime into the given zone; naive values are taken as local to it."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    try:
        return parsed.astimezone(tz)
    except OverflowError:
        # Valid syntax, but the zone shift leaves the datetime range.
        return None


def russian_weekday(moment: datetime) -> str:
    return RUSSIAN_WEEKDAYS[moment.weekday()]


class SlotFormatter:
    """Renders slot notifications and "current slots" lines."""

    def __init__(
        self,
        location_id: int,
        timezone_name: str,
        names: NameResolver,
        logger: Optional[logging.Logger] = None,
    ):
        self.location_id = location_id
        self.names = names
        self._log = logger or logging.getLogger(__name__)
        self.tz = resolve_timezone(timezone_name, self._log)

    def _company_name(self) -> str:
        name = self.names.location_name(self.location_id)
        if name is None:
            self._log.debug(f"Company name not found, using ID company_id={self.location_id}")
            return f"#{self.location_id}"
        return name

    def _service_name(self, service_id: int) -> str:
        name = self.names.service_name(service_id)
        if name is None:
            self._log.debug(f"Service name not found, using ID service_id={service_id}")
            return f"#{service_id}"
        return name

    def slot_message(self, service_id: int, staff_id: int, slot_datetime: str) -> str:
        """
        Build the notification text for one new slot.

        Args:
            service_id: Service the slot belongs to
            staff_id: Staff member offering the slot
            slot_datetime: RFC 3339 datetime; any other value is shown verbatim as the time

        Returns:
            The message text
        """
        fields = {
            "company": self._company_name(),
            "service": self._service_name(service_id),
            "staff_id": staff_id,
        }

        moment = parse_slot_datetime(slot_datetime, self.tz)
        if moment is None:
            self._log.warning(f"Failed to parse datetime, using raw value datetime={slot_datetime!r}")
            return SLOT_MESSAGE_NO_DATE.format(clock=slot_datetime, **fields)

        return SLOT_MESSAGE.format(
            date=moment.strftime("%d.%m.%Y"),
            weekday=russian_weekday(moment),
            clock=moment.strftime("%H:%M"),
            zone=moment.strftime("%Z"),
            **fields,
        )

    def current_slot_line(self, staff_id: int, slot_datetime: str) -> Optional[str]:
        """One line for the current-slots listing, or None if the datetime does not parse."""
        moment = parse_slot_datetime(slot_datetime, self.tz)
        if moment is None:
            return None
        return CURRENT_SLOT_LINE.format(
            date=moment.strftime("%d.%m.%Y"),
            weekday=russian_weekday(moment),
            clock=moment.strftime("%H:%M"),
            staff_id=staff_id,
        )
