from unittest.mock import MagicMock

import pytest

from club_booking.api import ClubApiClient
from club_booking.availability import add_days
from club_booking.models import (
    ActiveSession,
    AvailabilitySnapshot,
    CourtOccupancy,
    Member,
    OccupancyDetails,
    OccupiedSlot,
    Reservation,
    ReservationCreated,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms


def make_snapshot(date_str, current_hour=12, booked_for="Anna Berger"):
    return AvailabilitySnapshot(
        date=date_str,
        current_hour=current_hour,
        courts=[
            CourtOccupancy(
                court_id=1,
                court_number=1,
                occupied=[
                    OccupiedSlot(
                        time="10:00",
                        status="reserved",
                        details=OccupancyDetails(reservation_id=7, booked_for=booked_for),
                    ),
                ],
            ),
            CourtOccupancy(court_id=2, court_number=2, occupied=[]),
        ],
    )


def make_range(start_date, num_days):
    return {add_days(start_date, i): make_snapshot(add_days(start_date, i)) for i in range(num_days)}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client():
    mock = MagicMock(spec=ClubApiClient)
    mock.get_availability.side_effect = lambda date_str: make_snapshot(date_str)
    mock.get_availability_range.side_effect = make_range
    return mock


@pytest.fixture
def sessions():
    return [
        ActiveSession(reservation_id=11, date="2026-03-02", start_time="09:00", court_number=1),
        ActiveSession(reservation_id=12, date="2026-03-04", start_time="18:00", court_number=3,
                      booked_by_id="m-2", booked_by_name="Max Huber"),
    ]


@pytest.fixture
def short_notice_session():
    return ActiveSession(reservation_id=21, date="2026-03-01", start_time="15:00", court_number=2,
                         is_short_notice=True)


@pytest.fixture
def members():
    return [
        Member(id="m-1", firstname="Anna", lastname="Berger"),
        Member(id="m-2", firstname="Max", lastname="Huber"),
        Member(id="m-3", firstname="Lena", lastname="Maier"),
    ]


def make_created(court_id=1, date_str="2026-03-05", start_time="10:00", booked_for_id=None):
    return ReservationCreated(
        message="Reservation created",
        reservation=Reservation(id=99, court_id=court_id, date=date_str, start_time=start_time,
                                booked_for_id=booked_for_id),
    )
