"""State of the booking dialog and the pure transition function that drives it.

The dialog moves through a small set of steps::

    form -> submitting -> (closed)
                       -> conflict -> confirmCancel -> submitting (retry)
                                   <- confirmCancel (back)

``searching`` is entered implicitly while a member search query is being typed.
Every transition goes through :func:`reduce`, which never mutates the state it is
given.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Tuple, Union

from club_booking import config
from club_booking.models import ActiveSession, Member

logger = logging.getLogger(__name__)


# --- Steps ---

@dataclass(frozen=True)
class FormStep:
    pass


@dataclass(frozen=True)
class SearchingStep:
    pass


@dataclass(frozen=True)
class SubmittingStep:
    pass


@dataclass(frozen=True)
class ConflictStep:
    sessions: Tuple[ActiveSession, ...]

    @property
    def is_short_notice_conflict(self) -> bool:
        """An active short-notice booking is a hard block, not a limit the user can free up."""
        return any(s.is_short_notice for s in self.sessions)

    @property
    def cancellable_sessions(self) -> Tuple[ActiveSession, ...]:
        return tuple(s for s in self.sessions if can_cancel(s))


@dataclass(frozen=True)
class ConfirmCancelStep:
    session: ActiveSession
    all_sessions: Tuple[ActiveSession, ...]


BookingStep = Union[FormStep, SearchingStep, SubmittingStep, ConflictStep, ConfirmCancelStep]


def can_cancel(session: ActiveSession) -> bool:
    return not session.is_short_notice


class Key(Enum):
    UP = "up"
    DOWN = "down"
    ENTER = "enter"
    ESCAPE = "escape"


@dataclass(frozen=True)
class BookingFormState:
    step: BookingStep = field(default_factory=FormStep)
    book_for_other: bool = False
    selected_member: Member | None = None
    search_query: str = ""
    highlighted_index: int = -1
    show_search_results: bool = False
    search_results: Tuple[Member, ...] | None = None
    favourites: Tuple[Member, ...] | None = None
    error: str | None = None

    @property
    def is_searching(self) -> bool:
        return len(self.search_query) >= config.MEMBER_SEARCH_MIN_CHARS

    @property
    def display_results(self) -> Tuple[Member, ...]:
        """Search results while a query is long enough to search, favourites otherwise."""
        results = self.search_results if self.is_searching else self.favourites
        return results or ()

    @property
    def can_submit(self) -> bool:
        if not isinstance(self.step, FormStep):
            return False
        return not self.book_for_other or self.selected_member is not None


# --- Actions ---

@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class SetStep:
    step: BookingStep
    error: str | None = None


@dataclass(frozen=True)
class SetError:
    error: str | None


@dataclass(frozen=True)
class SetBookForOther:
    value: bool


@dataclass(frozen=True)
class SelectMember:
    member: Member


@dataclass(frozen=True)
class ClearSelection:
    pass


@dataclass(frozen=True)
class UpdateSearch:
    query: str


@dataclass(frozen=True)
class ShowSearchResults:
    show: bool


@dataclass(frozen=True)
class SearchResultsLoaded:
    query: str
    results: Tuple[Member, ...]


@dataclass(frozen=True)
class FavouritesLoaded:
    members: Tuple[Member, ...]


@dataclass(frozen=True)
class PressKey:
    key: Key


Action = Union[
    Reset,
    SetStep,
    SetError,
    SetBookForOther,
    SelectMember,
    ClearSelection,
    UpdateSearch,
    ShowSearchResults,
    SearchResultsLoaded,
    FavouritesLoaded,
    PressKey,
]


def _entry_step(state: BookingFormState, step: BookingStep) -> BookingStep:
    # Search only toggles between form and searching; later steps are left alone.
    if isinstance(state.step, (FormStep, SearchingStep)):
        return step
    return state.step


def _select(state: BookingFormState, member: Member) -> BookingFormState:
    return replace(
        state,
        step=_entry_step(state, FormStep()),
        selected_member=member,
        search_query=member.display_name,
        show_search_results=False,
        highlighted_index=-1,
    )


def _press_key(state: BookingFormState, key: Key) -> BookingFormState:
    results = state.display_results
    if not results:
        return state

    index = state.highlighted_index
    if key is Key.DOWN:
        return replace(state, highlighted_index=index + 1 if index < len(results) - 1 else index)
    if key is Key.UP:
        return replace(state, highlighted_index=index - 1 if index > 0 else index)
    if key is Key.ENTER:
        if 0 <= index < len(results):
            return _select(state, results[index])
        return state
    if key is Key.ESCAPE:
        return replace(state, show_search_results=False)
    return state


def reduce(state: BookingFormState, action: Action) -> BookingFormState:
    """Returns the state that results from applying ``action`` to ``state``."""
    if isinstance(action, Reset):
        return BookingFormState()

    if isinstance(action, SetStep):
        return replace(state, step=action.step, error=action.error)

    if isinstance(action, SetError):
        return replace(state, error=action.error)

    if isinstance(action, SetBookForOther):
        return replace(state, book_for_other=action.value)

    if isinstance(action, SelectMember):
        return _select(state, action.member)

    if isinstance(action, ClearSelection):
        return replace(
            state,
            step=_entry_step(state, FormStep()),
            book_for_other=False,
            selected_member=None,
            search_query="",
        )

    if isinstance(action, UpdateSearch):
        searching = len(action.query) >= config.MEMBER_SEARCH_MIN_CHARS
        return replace(
            state,
            step=_entry_step(state, SearchingStep() if searching else FormStep()),
            search_query=action.query,
            selected_member=None,
            show_search_results=True,
            highlighted_index=-1,
            search_results=None,
        )

    if isinstance(action, ShowSearchResults):
        return replace(state, show_search_results=action.show)

    if isinstance(action, SearchResultsLoaded):
        if action.query != state.search_query:
            logger.debug(f"Dropping results for outdated query '{action.query}'")
            return state
        return replace(state, search_results=action.results)

    if isinstance(action, FavouritesLoaded):
        return replace(state, favourites=action.members)

    if isinstance(action, PressKey):
        return _press_key(state, action.key)

    raise TypeError(f"Unknown booking action: {action!r}")
