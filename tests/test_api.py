from unittest.mock import MagicMock

import pytest
import requests

from club_booking.api import ApiError, AuthenticationError, BookingLimitError, ClubApiClient
from club_booking.models import CreateReservationRequest

SNAPSHOT = {
    "date": "2026-03-05",
    "current_hour": 14,
    "courts": [
        {
            "court_id": 1,
            "court_number": 1,
            "occupied": [
                {
                    "time": "10:00",
                    "status": "reserved",
                    "details": {"reservation_id": 5, "booked_for": "Anna Berger", "can_cancel": True},
                },
                {"time": "16:00", "status": "blocked", "details": {"block_id": 2, "reason": "Training"}},
            ],
        }
    ],
    "metadata": {"generated_at": "2026-03-05T14:02:00", "timezone": "Europe/Vienna"},
}


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def api(session):
    return ClubApiClient(base_url="https://club.example/", token="secret", session_factory=lambda: session)


def test_get_availability(api, session):
    session.request.return_value = _response(body=SNAPSHOT)

    snapshot = api.get_availability("2026-03-05")

    assert snapshot.date == "2026-03-05"
    assert snapshot.find_slot(1, "16:00").details.reason == "Training"
    assert snapshot.is_past("10:00")
    assert not snapshot.is_past("14:00")

    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert method == "GET"
    assert url == "https://club.example/api/courts/availability"
    assert kwargs["params"] == {"date": "2026-03-05"}
    assert kwargs["headers"]["Authorization"] == "Bearer secret"


def test_get_availability_range(api, session):
    second = dict(SNAPSHOT, date="2026-03-06")
    session.request.return_value = _response(body={"days": {"2026-03-05": SNAPSHOT, "2026-03-06": second}})

    days = api.get_availability_range("2026-03-05", 2)

    assert sorted(days) == ["2026-03-05", "2026-03-06"]
    assert days["2026-03-06"].date == "2026-03-06"
    assert session.request.call_args.kwargs["params"] == {"start": "2026-03-05", "days": 2}


def test_no_token_sends_no_authorization(session):
    api = ClubApiClient(base_url="https://club.example", token=None, session_factory=lambda: session)
    session.request.return_value = _response(body=SNAPSHOT)

    api.get_availability("2026-03-05")

    assert "Authorization" not in session.request.call_args.kwargs["headers"]


def test_create_reservation(api, session):
    session.request.return_value = _response(
        status_code=201,
        body={
            "message": "Reservation created",
            "reservation": {"id": 42, "court_id": 1, "date": "2026-03-05", "start_time": "10:00"},
        },
    )

    created = api.create_reservation(
        CreateReservationRequest(court_id=1, date="2026-03-05", start_time="10:00", booked_for_id="m-2")
    )

    assert created.reservation.id == 42
    assert session.request.call_args.args[0] == "POST"
    assert session.request.call_args.kwargs["json"] == {
        "court_id": 1,
        "date": "2026-03-05",
        "start_time": "10:00",
        "booked_for_id": "m-2",
    }


def test_create_reservation_booking_limit(api, session):
    session.request.return_value = _response(
        status_code=409,
        body={
            "error": "Booking limit reached",
            "active_sessions": [
                {"reservation_id": 1, "date": "2026-03-02", "start_time": "09:00", "court_number": 1,
                 "is_short_notice": False},
                {"reservation_id": 2, "date": "2026-03-03", "start_time": "11:00", "court_number": 2,
                 "is_short_notice": True},
            ],
        },
    )

    with pytest.raises(BookingLimitError) as excinfo:
        api.create_reservation(CreateReservationRequest(court_id=1, date="2026-03-05", start_time="10:00"))

    assert str(excinfo.value) == "Booking limit reached"
    assert [s.reservation_id for s in excinfo.value.active_sessions] == [1, 2]
    assert excinfo.value.active_sessions[1].is_short_notice


def test_create_reservation_other_error(api, session):
    session.request.return_value = _response(status_code=400, body={"error": "Court is blocked"})

    with pytest.raises(ApiError) as excinfo:
        api.create_reservation(CreateReservationRequest(court_id=1, date="2026-03-05", start_time="10:00"))

    assert not isinstance(excinfo.value, BookingLimitError)
    assert excinfo.value.status_code == 400
    assert str(excinfo.value) == "Court is blocked"


def test_error_without_json_body(api, session):
    session.request.return_value = _response(status_code=502)

    with pytest.raises(ApiError, match="HTTP 502"):
        api.get_availability("2026-03-05")


def test_unauthorized_clears_token(api, session):
    session.request.return_value = _response(status_code=401, body={"error": "Token expired"})

    with pytest.raises(AuthenticationError):
        api.get_availability("2026-03-05")

    assert api.token is None


def test_transport_error_is_wrapped(api, session):
    session.request.side_effect = requests.exceptions.ConnectionError("connection refused")

    with pytest.raises(ApiError) as excinfo:
        api.get_availability("2026-03-05")

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)


def test_cancel_reservation(api, session):
    session.request.return_value = _response(body={"message": "Reservation cancelled"})

    assert api.cancel_reservation(11) == "Reservation cancelled"
    assert session.request.call_args.args == ("DELETE", "https://club.example/api/reservations/11")


def test_member_search_and_favourites(api, session):
    session.request.side_effect = [
        _response(body={"results": [{"id": "m-1", "firstname": "Anna", "lastname": "Berger"}], "count": 1}),
        _response(body={"favourites": [{"id": "m-2", "firstname": "Max", "lastname": "Huber"}]}),
    ]

    results = api.search_members("Ann")
    favourites = api.get_favourites()

    assert [m.display_name for m in results] == ["Anna Berger"]
    assert [m.id for m in favourites] == ["m-2"]
    assert session.request.call_args_list[0].kwargs["params"] == {"q": "Ann"}


def test_get_member(api, session):
    session.request.return_value = _response(body={"id": "m-2", "firstname": "Max", "lastname": "Huber"})

    member = api.get_member("m-2")

    assert member.display_name == "Max Huber"
    assert session.request.call_args.args == ("GET", "https://club.example/api/members/m-2")


def test_get_member_not_found(api, session):
    session.request.return_value = _response(status_code=404, body={"error": "Member not found"})

    with pytest.raises(ApiError, match="Member not found"):
        api.get_member("m-404")
