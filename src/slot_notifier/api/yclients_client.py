"""
YCLIENTS API client for slot discovery via the public booking widget endpoints.

Uses the same availability endpoints that the n*.yclients.com booking widget
calls from the browser, authenticated with a partner token plus a short-lived
user token obtained from the login exchange.

Discovery flow:
1. search-staff: which staff members can perform a service
2. search-dates: which days a staff member has free time
3. search-timeslots: free times for one staff member on one day
"""

import logging
import threading
import time
from typing import Any, Callable, Iterator, Optional

import requests

from .base import (
    ApiStatusError,
    AuthError,
    BookableTimeslot,
    BookingClient,
    ClientStatus,
    ResponseParseError,
    SessionToken,
    TransportError,
)


PLATFORM = "yclients"

BASE_URL = "https://platform.yclients.com"
AUTH_URL = "https://api.yclients.com/api/v1/auth"

SEARCH_STAFF_PATH = "/api/v1/b2c/booking/availability/search-staff"
SEARCH_DATES_PATH = "/api/v1/b2c/booking/availability/search-dates"
SEARCH_TIMESLOTS_PATH = "/api/v1/b2c/booking/availability/search-timeslots"

DEFAULT_TIMEOUT = 10.0  # seconds, per request

# The auth response does not always declare a lifetime; user tokens live 5 minutes.
TOKEN_LIFETIME = 300.0
TOKEN_REFRESH_MARGIN = 30.0


def truncate_for_log(text: str, limit: int) -> str:
    """Return a single-line preview of a response body for log output."""
    if len(text) > limit:
        text = text[:limit]
    return text.replace("\n", " ").replace("\r", " ").replace("\t", " ")


# --- Payload builders (shapes captured from the booking widget) ---

def _search_payload(location_id: int, service_id: int, staff_id: Optional[int], **filter_fields: Any) -> dict:
    return {
        "context": {"location_id": location_id},
        "filter": {
            **filter_fields,
            "records": [
                {
                    "staff_id": staff_id,
                    "attendance_service_items": [{"type": "service", "id": service_id}],
                }
            ],
        },
    }


def build_search_staff_payload(location_id: int, service_id: int, staff_id: Optional[int] = None) -> dict:
    """Build the JSON body for availability/search-staff."""
    return _search_payload(location_id, service_id, staff_id, datetime=None)


def build_search_dates_payload(
    location_id: int,
    service_id: int,
    date_from: str,
    date_to: str,
    staff_id: Optional[int] = None,
) -> dict:
    """Build the JSON body for availability/search-dates."""
    return _search_payload(location_id, service_id, staff_id, date_from=date_from, date_to=date_to)


def build_search_timeslots_payload(location_id: int, service_id: int, date: str, staff_id: int) -> dict:
    """Build the JSON body for availability/search-timeslots."""
    return _search_payload(location_id, service_id, staff_id, date=date)


# --- Response parsing ---

def _iter_bookable(body: Any, label: str) -> Iterator[tuple[dict, dict]]:
    """
    Yield (item, attributes) for every bookable record of a response envelope.

    The envelope is {"data": [{"type", "id", "attributes": {...}}]}. A body
    without a data array is a parse error for the whole response; a single
    malformed record is skipped so the rest of the response is still used.
    """
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        raise ResponseParseError(f"{label}: response has no data array", platform=PLATFORM)

    for item in body["data"]:
        if not isinstance(item, dict):
            continue
        attributes = item.get("attributes")
        if not isinstance(attributes, dict) or attributes.get("is_bookable") is not True:
            continue
        yield item, attributes


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def parse_staff_ids(body: Any) -> list[int]:
    """Extract bookable staff ids. The id comes as a string; non-numeric ids are skipped."""
    ids = []
    for item, _ in _iter_bookable(body, "search-staff"):
        try:
            ids.append(int(str(item.get("id")).strip()))
        except ValueError:
            continue
    return ids


def parse_dates(body: Any) -> list[str]:
    """Extract bookable dates (YYYY-MM-DD)."""
    dates = []
    for _, attributes in _iter_bookable(body, "search-dates"):
        value = attributes.get("date")
        if isinstance(value, str) and value:
            dates.append(value)
    return dates


def parse_timeslots(body: Any) -> list[str]:
    """Extract bookable timeslots, preferring the full datetime over the bare time."""
    slots = []
    for _, attributes in _iter_bookable(body, "search-timeslots"):
        slot = BookableTimeslot(
            datetime=_text(attributes.get("datetime")),
            time=_text(attributes.get("time")),
            is_bookable=True,
        )
        if slot.best_value:
            slots.append(slot.best_value)
    return slots


class YClientsClient(BookingClient):
    """Client for the YCLIENTS booking availability API."""

    def __init__(
        self,
        login: str,
        password: str,
        partner_token: str,
        company_id: str = "",
        form_id: str = "",
        base_url: str = BASE_URL,
        auth_url: str = AUTH_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.login = login
        self.password = password
        self.partner_token = partner_token
        self.company_id = company_id
        self.form_id = form_id
        self.base_url = base_url.rstrip("/")
        self.auth_url = auth_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._token: Optional[SessionToken] = None
        self._refresh_lock = threading.Lock()

    @property
    def platform_name(self) -> str:
        return PLATFORM

    def status(self) -> ClientStatus:
        """Summarise the configuration without exposing secrets."""
        return ClientStatus(
            auth_configured=bool(self.login and self.password and self.partner_token),
            company_id=self.company_id,
            form_id=self.form_id,
            notes="login/password auth with partner token",
        )

    # --- Authentication ---

    def _ensure_token(self) -> SessionToken:
        """
        Return a token that is valid right now, logging in if needed.

        Readers holding a valid snapshot never block. The check-and-refresh
        is serialised so at most one login is in flight; a caller that waited
        on the lock re-checks and reuses the token the winner obtained.
        """
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token

        with self._refresh_lock:
            token = self._token
            if token is not None and token.is_valid(self._clock()):
                return token
            token = self._login()
            self._token = token
            return token

    def _login(self) -> SessionToken:
        self._log.debug(f"Authenticating with YCLIENTS endpoint={self.auth_url}")

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/vnd.api.v2+json",
            "Authorization": f"Bearer {self.partner_token}",
        }
        try:
            response = self.session.post(
                self.auth_url,
                json={"login": self.login, "password": self.password},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"Auth request failed: {e}", platform=PLATFORM) from e

        if response.status_code != 201:
            self._log.warning(
                f"Auth request failed status={response.status_code} "
                f"body={truncate_for_log(response.text, 300)}"
            )
            raise AuthError(self._auth_failure_message(response), platform=PLATFORM)

        try:
            body = response.json()
        except ValueError as e:
            raise AuthError(f"Failed to parse auth response: {e}", platform=PLATFORM) from e

        if not isinstance(body, dict) or not body.get("success"):
            raise AuthError("Auth unsuccessful", platform=PLATFORM)
        data = body.get("data")
        user_token = data.get("user_token") if isinstance(data, dict) else None
        if not user_token:
            raise AuthError("Auth unsuccessful: no user token", platform=PLATFORM)

        lifetime = self._declared_lifetime(body)
        token = SessionToken(
            value=user_token,
            expires_at=self._clock() + lifetime - TOKEN_REFRESH_MARGIN,
        )
        self._log.info(
            f"Authenticated with YCLIENTS user_id={data.get('id')} "
            f"user_name={data.get('name')} token_lifetime={lifetime:.0f}s"
        )
        return token

    @staticmethod
    def _auth_failure_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        meta = body.get("meta") if isinstance(body, dict) else None
        if isinstance(meta, dict) and meta.get("message"):
            return f"Auth failed: {meta['message']}"
        return f"Auth failed with status {response.status_code}"

    @staticmethod
    def _declared_lifetime(body: dict) -> float:
        for source in (body.get("data"), body.get("meta"), body):
            if not isinstance(source, dict):
                continue
            value = source.get("expires_in")
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value > TOKEN_REFRESH_MARGIN:
                return float(value)
        return TOKEN_LIFETIME

    # --- Requests ---

    def _headers(self, token: Optional[SessionToken]) -> dict:
        """Build headers for availability requests."""
        authorization = f"Bearer {self.partner_token}"
        if token is not None and token.value:
            authorization = f"{authorization}, User {token.value}"
        return {
            "Authorization": authorization,
            "Content-Type": "application/json",
            "Accept": "application/json, text/plain, */*",
            "X-YCLIENTS-Application-Name": "client.booking",
            "X-YCLIENTS-Application-Action": "company",
            "X-YCLIENTS-Application-Platform": "python-client",
        }

    def _request(self, path: str, payload: dict) -> Any:
        """POST a search payload and return the decoded JSON body."""
        token = self._ensure_token()
        url = f"{self.base_url}{path}"

        self._log.debug(f"Sending request to YCLIENTS endpoint={url}")
        start = time.monotonic()
        try:
            response = self.session.post(url, json=payload, headers=self._headers(token), timeout=self.timeout)
        except requests.RequestException as e:
            elapsed = time.monotonic() - start
            self._log.error(f"YCLIENTS request failed endpoint={url} duration={elapsed:.3f}s error={e}")
            raise TransportError(f"Request to {path} failed after {elapsed:.3f}s: {e}", platform=PLATFORM) from e
        elapsed = time.monotonic() - start

        if not 200 <= response.status_code < 300:
            self._log.warning(
                f"YCLIENTS API returned non-2xx status endpoint={url} status={response.status_code} "
                f"duration={elapsed:.3f}s body={truncate_for_log(response.text, 600)}"
            )
            raise ApiStatusError(
                f"{path} failed: {response.status_code}",
                status_code=response.status_code,
                platform=PLATFORM,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ResponseParseError(f"{path} returned invalid JSON: {e}", platform=PLATFORM) from e

        self._log.debug(
            f"YCLIENTS API request successful endpoint={url} status={response.status_code} duration={elapsed:.3f}s"
        )
        return body

    def search_staff(self, payload: dict) -> Any:
        return self._request(SEARCH_STAFF_PATH, payload)

    def search_dates(self, payload: dict) -> Any:
        return self._request(SEARCH_DATES_PATH, payload)

    def search_timeslots(self, payload: dict) -> Any:
        return self._request(SEARCH_TIMESLOTS_PATH, payload)

    # --- BookingClient interface ---

    def list_bookable_staff(self, location_id: int, service_id: int) -> list[int]:
        payload = build_search_staff_payload(location_id, service_id)
        return parse_staff_ids(self.search_staff(payload))

    def list_bookable_dates(
        self,
        location_id: int,
        service_id: int,
        date_from: str,
        date_to: str,
        staff_id: Optional[int] = None,
    ) -> list[str]:
        payload = build_search_dates_payload(location_id, service_id, date_from, date_to, staff_id)
        return parse_dates(self.search_dates(payload))

    def list_bookable_timeslots(
        self,
        location_id: int,
        service_id: int,
        date: str,
        staff_id: int,
    ) -> list[str]:
        payload = build_search_timeslots_payload(location_id, service_id, date, staff_id)
        return parse_timeslots(self.search_timeslots(payload))
