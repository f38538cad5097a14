import asyncio
import inspect
import logging
from typing import Any, Callable, Tuple

from pydantic import ValidationError

from club_booking import config
from club_booking.api import ApiError, BookingLimitError, ClubApiClient
from club_booking.booking_state import (
    Action,
    BookingFormState,
    BookingStep,
    ClearSelection,
    ConfirmCancelStep,
    ConflictStep,
    FavouritesLoaded,
    FormStep,
    Key,
    PressKey,
    Reset,
    SearchResultsLoaded,
    SelectMember,
    SetBookForOther,
    SetError,
    SetStep,
    ShowSearchResults,
    SubmittingStep,
    UpdateSearch,
    can_cancel,
    reduce,
)
from club_booking.models import ActiveSession, CreateReservationRequest, Member, Reservation

logger = logging.getLogger(__name__)


async def _notify(callback: Callable[..., Any] | None, *args):
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class BookingDialog:
    """Drives one booking of a court/time/date through submission and conflict resolution.

    ``on_success`` receives the created reservation and ``on_cancelled`` the session
    cancelled to make room for it. Both may be plain functions or coroutines. The
    dialog never touches the availability cache itself; callers refresh it from these
    callbacks.
    """

    def __init__(
        self,
        client: ClubApiClient,
        court_id: int,
        date: str,
        start_time: str,
        on_success: Callable[[Reservation], Any] | None = None,
        on_cancelled: Callable[[ActiveSession], Any] | None = None,
    ):
        self.client = client
        self.court_id = court_id
        self.date = date
        self.start_time = start_time
        self.on_success = on_success
        self.on_cancelled = on_cancelled

        self.state = BookingFormState()
        self.is_open = False
        self.reservation: Reservation | None = None
        self._request: CreateReservationRequest | None = None
        self._cancel_in_flight = False

    def dispatch(self, action: Action) -> BookingFormState:
        self.state = reduce(self.state, action)
        return self.state

    @property
    def step(self) -> BookingStep:
        return self.state.step

    @property
    def display_results(self) -> Tuple[Member, ...]:
        return self.state.display_results

    # --- Open / close ---

    def open(self):
        # Only a fresh open resets; reopening an open dialog keeps work in progress.
        if not self.is_open:
            self.dispatch(Reset())
            self.reservation = None
            self._request = None
            self._cancel_in_flight = False
        self.is_open = True

    def close(self):
        self.is_open = False

    # --- Submission ---

    def build_request(self) -> CreateReservationRequest:
        member = self.state.selected_member if self.state.book_for_other else None
        return CreateReservationRequest(
            court_id=self.court_id,
            date=self.date,
            start_time=self.start_time,
            booked_for_id=member.id if member else None,
        )

    async def submit(self) -> bool:
        """Sends the booking. Returns True once the reservation has been created."""
        if isinstance(self.state.step, SubmittingStep):
            logger.debug("Booking already in flight, ignoring submit")
            return False
        if not self.state.can_submit:
            logger.warning(f"Cannot submit booking from {type(self.state.step).__name__}")
            return False

        self._request = self.build_request()
        return await self._send(self._request)

    async def _send(self, request: CreateReservationRequest) -> bool:
        self.dispatch(SetStep(SubmittingStep()))
        try:
            created = await asyncio.to_thread(self.client.create_reservation, request)
        except BookingLimitError as e:
            if not e.active_sessions:
                self.dispatch(SetStep(FormStep(), error=str(e)))
                return False
            logger.info(f"Booking conflict with {len(e.active_sessions)} active session(s)")
            self.dispatch(SetStep(ConflictStep(tuple(e.active_sessions))))
            return False
        except (ApiError, ValidationError) as e:
            logger.error(f"Booking failed: {e}")
            self.dispatch(SetStep(FormStep(), error=str(e)))
            return False

        logger.info(f"Reservation {created.reservation.id} created")
        self.reservation = created.reservation
        self.close()
        await _notify(self.on_success, created.reservation)
        return True

    # --- Conflict resolution ---

    def request_cancel(self, session: ActiveSession) -> bool:
        step = self.state.step
        if not isinstance(step, ConflictStep):
            logger.warning("No booking conflict to resolve")
            return False
        if session not in step.sessions:
            logger.warning(f"Reservation {session.reservation_id} is not part of the conflict")
            return False
        if not can_cancel(session):
            logger.warning(f"Short-notice reservation {session.reservation_id} cannot be cancelled")
            return False

        self.dispatch(SetStep(ConfirmCancelStep(session=session, all_sessions=step.sessions)))
        return True

    def back_to_conflict(self) -> bool:
        step = self.state.step
        if not isinstance(step, ConfirmCancelStep):
            return False
        self.dispatch(SetStep(ConflictStep(step.all_sessions)))
        return True

    async def confirm_cancellation(self) -> bool:
        """Cancels the selected session and resubmits the original booking once."""
        step = self.state.step
        if not isinstance(step, ConfirmCancelStep):
            return False
        if self._cancel_in_flight:
            logger.debug("Cancellation already in flight, ignoring confirm")
            return False

        self._cancel_in_flight = True
        try:
            await asyncio.to_thread(self.client.cancel_reservation, step.session.reservation_id)
        except ApiError as e:
            logger.error(f"Cancelling reservation {step.session.reservation_id} failed: {e}")
            self.dispatch(SetError(str(e)))
            return False
        finally:
            self._cancel_in_flight = False

        # The reservation is already gone, so the retry must happen regardless
        try:
            await _notify(self.on_cancelled, step.session)
        except Exception:
            logger.exception(f"Cancellation callback for reservation {step.session.reservation_id} failed")

        request = self._request or self.build_request()
        return await self._send(request)

    # --- Member search ---

    async def set_book_for_other(self, value: bool):
        if not value:
            self.dispatch(ClearSelection())
            return

        self.dispatch(SetBookForOther(True))
        if self.state.favourites is None:
            try:
                favourites = await asyncio.to_thread(self.client.get_favourites)
            except ApiError as e:
                logger.warning(f"Failed to load favourites: {e}")
                favourites = []
            self.dispatch(FavouritesLoaded(tuple(favourites)))

    async def update_search(self, query: str):
        self.dispatch(UpdateSearch(query))
        if len(query) < config.MEMBER_SEARCH_MIN_CHARS:
            return

        try:
            results = await asyncio.to_thread(self.client.search_members, query)
        except ApiError as e:
            logger.warning(f"Member search for '{query}' failed: {e}")
            results = []
        self.dispatch(SearchResultsLoaded(query, tuple(results)))

    def focus_search(self):
        self.dispatch(ShowSearchResults(True))

    def press_key(self, key: Key):
        self.dispatch(PressKey(key))

    def select_member(self, member: Member):
        self.dispatch(SelectMember(member))

    def clear_selection(self):
        self.dispatch(ClearSelection())
