"""
Shared booking client interface for slot discovery.

The discovery loop talks to the booking platform only through the
BookingClient ABC, so tests and alternative platforms can plug in their own
client without touching the polling code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


# Sentinel upper bound accepted by the platform for "no known end date".
FAR_FUTURE_DATE = "9999-01-01"


@dataclass(frozen=True)
class SessionToken:
    """Short-lived user token obtained from the login exchange."""
    value: str
    expires_at: float  # monotonic clock seconds

    def is_valid(self, now: float) -> bool:
        return bool(self.value) and now < self.expires_at


@dataclass
class BookableTimeslot:
    """A timeslot entry. Either a full RFC 3339 datetime or a bare time is set."""
    datetime: str
    time: str
    is_bookable: bool

    @property
    def best_value(self) -> str:
        return self.datetime or self.time


@dataclass
class ClientStatus:
    """Summary of client configuration, used for startup logging."""
    auth_configured: bool
    company_id: str
    form_id: str
    notes: str = ""


class BookingClientError(Exception):
    """Base exception for booking client errors."""

    def __init__(self, message: str, platform: str = "unknown"):
        self.platform = platform
        super().__init__(f"[{platform}] {message}")


class AuthError(BookingClientError):
    """Login exchange failed: bad credentials, non-201 status or no token."""


class TransportError(BookingClientError):
    """Network failure or timeout while talking to the platform."""


class ApiStatusError(BookingClientError):
    """Listing endpoint answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int, platform: str = "unknown"):
        self.status_code = status_code
        super().__init__(message, platform=platform)


class ResponseParseError(BookingClientError):
    """Response body is not the expected JSON envelope."""


class BookingClient(ABC):
    """Abstract base class for booking platform clients."""

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Return the platform identifier (e.g., 'yclients')."""
        ...

    @abstractmethod
    def status(self) -> ClientStatus:
        """Describe the client configuration for startup logging."""
        ...

    @abstractmethod
    def list_bookable_staff(self, location_id: int, service_id: int) -> list[int]:
        """
        List staff members that can currently be booked for a service.

        Args:
            location_id: Platform location (company) identifier
            service_id: Service identifier

        Returns:
            Staff identifiers flagged bookable, in response order
        """
        ...

    @abstractmethod
    def list_bookable_dates(
        self,
        location_id: int,
        service_id: int,
        date_from: str,
        date_to: str,
        staff_id: Optional[int] = None,
    ) -> list[str]:
        """
        List bookable calendar days in [date_from, date_to].

        Args:
            location_id: Platform location identifier
            service_id: Service identifier
            date_from: First day, YYYY-MM-DD
            date_to: Last day, YYYY-MM-DD (FAR_FUTURE_DATE for open-ended)
            staff_id: Optional staff filter

        Returns:
            Bookable dates as YYYY-MM-DD strings
        """
        ...

    @abstractmethod
    def list_bookable_timeslots(
        self,
        location_id: int,
        service_id: int,
        date: str,
        staff_id: int,
    ) -> list[str]:
        """
        List bookable timeslots for one staff member on one day.

        Returns:
            Datetime strings; a bare time-of-day is returned when the record
            carries no full datetime, so callers must handle both shapes.
        """
        ...
