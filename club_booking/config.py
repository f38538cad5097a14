import logging
import os
from typing import Dict

logger = logging.getLogger(__name__)

# --- URLs & API ---
API_BASE_URL = os.environ.get("CLUB_API_BASE_URL", "http://localhost:5000").rstrip("/")
API_TOKEN = os.environ.get("CLUB_API_TOKEN")

# Unset means no explicit timeout; the HTTP library default applies.
_timeout_raw = os.environ.get("CLUB_API_TIMEOUT")
API_TIMEOUT: float | None = float(_timeout_raw) if _timeout_raw else None

AVAILABILITY_PATH = "/api/courts/availability"
AVAILABILITY_RANGE_PATH = "/api/courts/availability/range"
RESERVATIONS_PATH = "/api/reservations/"
MEMBER_SEARCH_PATH = "/api/members/search"
FAVOURITES_PATH = "/api/members/me/favourites"
MEMBERS_PATH = "/api/members"

# --- Availability cache ---
CACHE_TTL_MS = 30 * 1000
INITIAL_LOAD_DAYS = 14
# Prefetch when the viewed date is within this many days of the cache edge
PREFETCH_BUFFER_DAYS = 3
PREFETCH_BATCH_DAYS = 7

# --- Booking dialog ---
MEMBER_SEARCH_MIN_CHARS = 2

COMMON_HEADERS: Dict[str, str] = {
    "User-Agent": os.environ.get("CLUB_API_USER_AGENT", "club-booking/0.1"),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": os.environ.get("CLUB_API_ACCEPT_LANGUAGE", "de-DE,de;q=0.9,en;q=0.8"),
    "Content-Type": "application/json",
}

if not API_TOKEN:
    logger.warning("CLUB_API_TOKEN not set. Requests will be sent unauthenticated.")
