import logging
from typing import Any, Callable, Dict, List

import cloudscraper
import requests

from club_booking import config
from club_booking.models import (
    ActiveSession,
    AvailabilitySnapshot,
    CreateReservationRequest,
    Member,
    RangeAvailability,
    ReservationCreated,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A request to the club API failed."""

    def __init__(self, message: str, status_code: int | None = None, payload: Dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class AuthenticationError(ApiError):
    pass


class BookingLimitError(ApiError):
    """The server refused a reservation because the caller has too many active sessions.

    ``active_sessions`` holds the reservations that count against the limit. A single
    short-notice session means a hard block rather than a limit that can be freed up.
    """

    def __init__(self, message: str, active_sessions: List[ActiveSession], status_code: int | None = None,
                 payload: Dict | None = None):
        super().__init__(message, status_code=status_code, payload=payload)
        self.active_sessions = active_sessions


def _error_body(response) -> Dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class ClubApiClient:
    """Blocking client for the court availability and reservation endpoints.

    Each request uses a fresh cloudscraper session, so one client can be shared by
    calls running concurrently in worker threads.
    """

    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        token: str | None = config.API_TOKEN,
        timeout: float | None = config.API_TIMEOUT,
        session_factory: Callable[[], requests.Session] = cloudscraper.create_scraper,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session_factory = session_factory

    def clear_token(self):
        self.token = None

    def _headers(self) -> Dict[str, str]:
        headers = dict(config.COMMON_HEADERS)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url} {kwargs.get('params') or ''}")

        try:
            session = self.session_factory()
            response = session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Error requesting {url}: {e}")
            raise ApiError(f"Request to {path} failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")

        if response.status_code == 401:
            # Session expired during use; the token is no longer trusted.
            self.clear_token()
            raise AuthenticationError("Not authenticated", status_code=401, payload=_error_body(response))

        if response.status_code >= 400:
            body = _error_body(response)
            message = body.get("error") or f"HTTP {response.status_code}"
            raise ApiError(message, status_code=response.status_code, payload=body)

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}", status_code=response.status_code) from e

    # --- Availability ---

    def get_availability(self, date_str: str) -> AvailabilitySnapshot:
        logger.info(f"Fetching availability for {date_str}")
        data = self._request("GET", config.AVAILABILITY_PATH, params={"date": date_str})
        return AvailabilitySnapshot.model_validate(data)

    def get_availability_range(self, start_date: str, num_days: int) -> Dict[str, AvailabilitySnapshot]:
        logger.info(f"Fetching availability for {num_days} days starting {start_date}")
        data = self._request("GET", config.AVAILABILITY_RANGE_PATH, params={"start": start_date, "days": num_days})
        return RangeAvailability.model_validate(data).days

    # --- Reservations ---

    def create_reservation(self, request: CreateReservationRequest) -> ReservationCreated:
        logger.info(f"Creating reservation: court {request.court_id} on {request.date} at {request.start_time}")
        try:
            data = self._request("POST", config.RESERVATIONS_PATH, json=request.to_payload())
        except AuthenticationError:
            raise
        except ApiError as e:
            sessions = e.payload.get("active_sessions")
            if sessions is None:
                raise
            active = [ActiveSession.model_validate(s) for s in sessions]
            logger.info(f"Booking limit reached with {len(active)} active session(s)")
            raise BookingLimitError(str(e), active, status_code=e.status_code, payload=e.payload) from e
        return ReservationCreated.model_validate(data)

    def cancel_reservation(self, reservation_id: int) -> str:
        logger.info(f"Cancelling reservation {reservation_id}")
        data = self._request("DELETE", f"{config.RESERVATIONS_PATH.rstrip('/')}/{reservation_id}")
        return data.get("message", "")

    # --- Members ---

    def search_members(self, query: str) -> List[Member]:
        data = self._request("GET", config.MEMBER_SEARCH_PATH, params={"q": query})
        return [Member.model_validate(m) for m in data.get("results", [])]

    def get_favourites(self) -> List[Member]:
        data = self._request("GET", config.FAVOURITES_PATH)
        return [Member.model_validate(m) for m in data.get("favourites", [])]

    def get_member(self, member_id: str) -> Member:
        data = self._request("GET", f"{config.MEMBERS_PATH}/{member_id}")
        return Member.model_validate(data)
