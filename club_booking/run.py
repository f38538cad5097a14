import asyncio
import logging
import sys
from datetime import date, datetime
from typing import Callable, List

from club_booking import config
from club_booking.api import ApiError, ClubApiClient
from club_booking.availability import AvailabilityService, add_days
from club_booking.booking import BookingDialog
from club_booking.booking_state import ConfirmCancelStep, ConflictStep, FormStep, Key, can_cancel
from club_booking.models import ActiveSession, AvailabilitySnapshot, OccupiedSlot, Reservation

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "reserved": "[RESERVED]    ",
    "short_notice": "[SHORT NOTICE]",
    "blocked": "[BLOCKED]     ",
    "blocked_temporary": "[TEMP BLOCK]  ",
}


def parse_date_arg(date_arg: str | None) -> str:
    """Validates a YYYY-MM-DD argument, defaulting to today."""
    if not date_arg:
        return date.today().isoformat()
    try:
        return datetime.strptime(date_arg, "%Y-%m-%d").date().isoformat()
    except ValueError:
        logger.error("Error: Date must be in YYYY-MM-DD format.")
        sys.exit(1)


def _describe_slot(slot: OccupiedSlot) -> str:
    details = slot.details
    if details is None:
        return ""
    if details.booked_for:
        return f" - {details.booked_for}{' (yours)' if details.is_own else ''}"
    if details.reason:
        return f" - {details.reason}"
    return ""


def print_availability_report(snapshot: AvailabilitySnapshot):
    """Prints the occupied slots of every court for one date to stdout."""
    print(f"\n--- Availability Report for {snapshot.date} ---")

    occupied_count = 0
    for court in sorted(snapshot.courts, key=lambda c: c.court_number):
        if not court.occupied:
            print(f"Court {court.court_number}: free all day")
            continue
        for slot in sorted(court.occupied, key=lambda s: s.time):
            occupied_count += 1
            past = " (past)" if snapshot.is_past(slot.time) else ""
            print(f"{STATUS_LABELS[slot.status]} Court {court.court_number} {slot.time[:5]}{_describe_slot(slot)}{past}")

    print(f"Summary: {occupied_count} occupied slots across {len(snapshot.courts)} courts on {snapshot.date}.")


async def load_availability(service: AvailabilityService, start_date: str, days: int) -> List[AvailabilitySnapshot]:
    """Loads the browsing window, reads each requested date and prefetches around the first."""
    await service.initial_load()

    snapshots = []
    for i in range(days):
        result = await service.get_for_date(add_days(start_date, i))
        snapshots.append(result.data)

    service.prefetch_around(start_date)
    await service.wait_for_background()
    return snapshots


def show(start_date: str | None = None, days: int = 1, client: ClubApiClient | None = None):
    start = parse_date_arg(start_date)
    service = AvailabilityService(client or ClubApiClient())
    logger.info(f"Showing availability for {days} day(s) from {start}")

    for snapshot in asyncio.run(load_availability(service, start, days)):
        print_availability_report(snapshot)


def _format_session(session: ActiveSession) -> str:
    owner = f" (for {session.booked_by_name})" if session.booked_by_name else ""
    return f"Court {session.court_number} - {session.start_time[:5]} on {session.date}{owner}"


def choose_session_to_cancel(step: ConflictStep, prompt: Callable[[str], str] = input) -> ActiveSession | None:
    """Lists the conflicting sessions and asks which cancellable one to give up."""
    if step.is_short_notice_conflict:
        print("\nYou already have an active short-notice booking. Short-notice bookings cannot be cancelled.")
    else:
        print("\nBooking limit reached. Cancel an existing booking to make this one.")

    cancellable = step.cancellable_sessions
    for session in step.sessions:
        if can_cancel(session):
            print(f"  [{cancellable.index(session) + 1}] {_format_session(session)}")
        else:
            print(f"  [-] {_format_session(session)} (short notice)")

    if not cancellable:
        return None

    answer = prompt("Number of the booking to cancel (empty to abort): ").strip()
    if not answer:
        return None
    try:
        choice = int(answer)
    except ValueError:
        logger.warning(f"Not a number: {answer}")
        return None
    if not 1 <= choice <= len(cancellable):
        logger.warning(f"No booking numbered {choice}")
        return None
    return cancellable[choice - 1]


async def _select_member(dialog: BookingDialog, member_query: str) -> bool:
    """Picks the first search hit for ``member_query``; favourites never stand in for a search."""
    if len(member_query) < config.MEMBER_SEARCH_MIN_CHARS:
        logger.error(f"Member search needs at least {config.MEMBER_SEARCH_MIN_CHARS} characters: '{member_query}'")
        return False

    await dialog.set_book_for_other(True)
    await dialog.update_search(member_query)
    if not dialog.state.is_searching or not dialog.display_results:
        logger.error(f"No member found for '{member_query}'")
        return False

    dialog.press_key(Key.DOWN)
    dialog.press_key(Key.ENTER)
    logger.info(f"Booking for {dialog.state.selected_member.display_name}")
    return True


async def _select_member_by_id(dialog: BookingDialog, member_id: str) -> bool:
    try:
        member = await asyncio.to_thread(dialog.client.get_member, member_id)
    except ApiError as e:
        logger.error(f"Member {member_id} not found: {e}")
        return False

    await dialog.set_book_for_other(True)
    dialog.select_member(member)
    logger.info(f"Booking for {member.display_name}")
    return True


async def book_slot(
    service: AvailabilityService,
    court_id: int,
    date_str: str,
    start_time: str,
    member_query: str | None = None,
    prompt: Callable[[str], str] = input,
    member_id: str | None = None,
) -> Reservation | None:
    """Books one slot, walking the user through a booking-limit conflict if one comes up."""
    dialog = BookingDialog(
        service.client,
        court_id,
        date_str,
        start_time,
        on_success=lambda reservation: service.refresh_in_background(reservation.date),
        on_cancelled=lambda session: service.refresh_in_background(session.date),
    )
    dialog.open()

    if member_id and not await _select_member_by_id(dialog, member_id):
        dialog.close()
        return None
    if member_query and not await _select_member(dialog, member_query):
        dialog.close()
        return None

    await dialog.submit()

    while dialog.is_open:
        step = dialog.step
        if isinstance(step, ConflictStep):
            session = choose_session_to_cancel(step, prompt)
            if session is None:
                dialog.close()
                break
            dialog.request_cancel(session)
            answer = prompt(f"Really cancel {_format_session(session)}? [y/N] ").strip().lower()
            if answer != "y":
                dialog.back_to_conflict()
                continue
            await dialog.confirm_cancellation()
        elif isinstance(step, ConfirmCancelStep):
            logger.error(f"Cancellation failed: {dialog.state.error}")
            dialog.close()
        elif isinstance(step, FormStep) and dialog.state.error:
            logger.error(f"Booking failed: {dialog.state.error}")
            dialog.close()
        else:
            dialog.close()

    await service.wait_for_background()
    return dialog.reservation


def book(court_id: int, date_str: str | None, start_time: str, member_query: str | None = None,
         client: ClubApiClient | None = None, member_id: str | None = None) -> bool:
    target_date = parse_date_arg(date_str)
    service = AvailabilityService(client or ClubApiClient())

    reservation = asyncio.run(book_slot(service, court_id, target_date, start_time, member_query, member_id=member_id))
    if reservation is None:
        print(f"\nNo booking made for court {court_id} on {target_date} at {start_time}.")
        return False

    print(f"\nBooked court {court_id} on {reservation.date} at {reservation.start_time[:5]}.")
    cached = service.cache.get(target_date)
    if cached:
        print_availability_report(cached.data)
    return True
