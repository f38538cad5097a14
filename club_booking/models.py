from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict

SlotStatus = Literal["reserved", "blocked", "blocked_temporary", "short_notice"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class OccupancyDetails(_Frozen):
    # Reservation details
    reservation_id: int | None = None
    booked_for_id: str | None = None
    booked_for: str | None = None
    booked_for_has_profile_picture: bool | None = None
    booked_for_profile_picture_version: int | None = None
    is_short_notice: bool | None = None
    is_own: bool | None = None
    can_cancel: bool | None = None
    # Block details
    block_id: int | None = None
    reason: str | None = None
    is_temporary: bool | None = None


class OccupiedSlot(_Frozen):
    time: str  # HH:MM
    status: SlotStatus
    details: OccupancyDetails | None = None


class CourtOccupancy(_Frozen):
    court_id: int
    court_number: int
    occupied: List[OccupiedSlot] = []


class SnapshotMetadata(_Frozen):
    generated_at: str | None = None
    timezone: str | None = None


class AvailabilitySnapshot(_Frozen):
    """Occupancy of every court for one date, as returned by the server."""

    date: str  # ISO format YYYY-MM-DD
    current_hour: int
    courts: List[CourtOccupancy] = []
    metadata: SnapshotMetadata | None = None

    def find_slot(self, court_number: int, time: str) -> OccupiedSlot | None:
        for court in self.courts:
            if court.court_number != court_number:
                continue
            for slot in court.occupied:
                if slot.time[:5] == time[:5]:
                    return slot
        return None

    def is_past(self, time: str) -> bool:
        """True if the slot starting at ``time`` lies before the server's current hour."""
        return int(time[:2]) < self.current_hour


class RangeAvailability(_Frozen):
    days: Dict[str, AvailabilitySnapshot] = {}


class ActiveSession(_Frozen):
    reservation_id: int
    date: str
    start_time: str
    court_number: int
    booked_by_id: str | None = None
    booked_by_name: str | None = None
    is_short_notice: bool = False


class Member(_Frozen):
    id: str
    firstname: str
    lastname: str
    name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.firstname} {self.lastname}"


class CreateReservationRequest(_Frozen):
    court_id: int
    date: str
    start_time: str
    booked_for_id: str | None = None

    def to_payload(self) -> Dict:
        return self.model_dump(exclude_none=True)


class Reservation(_Frozen):
    id: int
    court_id: int
    court_number: int | None = None
    date: str
    start_time: str
    end_time: str | None = None
    booked_for_id: str | None = None
    booked_for: str | None = None
    booked_by_id: str | None = None
    status: str | None = None
    is_short_notice: bool = False


class ReservationCreated(_Frozen):
    message: str = ""
    reservation: Reservation
