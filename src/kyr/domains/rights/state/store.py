"""Application state store.

A single explicitly constructed owner of UI-visible state. State changes
only through :func:`reduce`, a pure function of (state, action); the store
itself performs no I/O. Orchestrators receive the store by injection and
write through storage before dispatching.

Invariants enforced here:

* at most one current encounter, and it is always ``active``;
* encounter history is most-recent-first;
* an ended encounter never becomes ``active`` again;
* alert contact ids are unique.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable

from kyr.domains.rights.errors import EncounterAlreadyActiveError, EncounterNotActiveError
from kyr.domains.rights.models import AlertContact, Encounter, RecordingState, User
from kyr.domains.rights.state.actions import (
    Action,
    AddAlertContact,
    AddEncounter,
    RemoveAlertContact,
    SetAlertContacts,
    SetCurrentEncounter,
    SetEncounters,
    SetError,
    SetLoading,
    SetLocationEnabled,
    SetRecordingState,
    SetSelectedJurisdiction,
    SetUser,
    UpdateAlertContact,
    UpdateEncounter,
)

logger = logging.getLogger(__name__)

DEFAULT_JURISDICTION = "CA"

Listener = Callable[["AppState", Action], None]


@dataclass(frozen=True)
class AppState:
    """Snapshot of everything the UI renders."""

    user: User | None = None
    current_encounter: Encounter | None = None
    recording_state: RecordingState = RecordingState()
    alert_contacts: tuple[AlertContact, ...] = ()
    selected_jurisdiction: str = DEFAULT_JURISDICTION
    is_location_enabled: bool = False
    encounters: tuple[Encounter, ...] = ()
    is_loading: bool = False
    error: str | None = None

    def find_encounter(self, encounter_id: str) -> Encounter | None:
        for encounter in self.encounters:
            if encounter.encounter_id == encounter_id:
                return encounter
        return None

    def find_contact(self, contact_id: str) -> AlertContact | None:
        for contact in self.alert_contacts:
            if contact.id == contact_id:
                return contact
        return None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view. History is reported as a count."""
        recording = self.recording_state
        user = self.user
        return {
            "user": None if user is None else {
                "user_id": user.user_id,
                "wallet_address": user.wallet_address,
                "subscription_status": user.subscription_status,
                "preferred_language": user.preferred_language,
                "saved_jurisdictions": list(user.saved_jurisdictions),
            },
            "current_encounter": (
                self.current_encounter.to_dict() if self.current_encounter is not None else None
            ),
            "recording_state": {
                "is_recording": recording.is_recording,
                "start_time": recording.start_time.isoformat() if recording.start_time else None,
                "duration": recording.duration,
                "audio_url": recording.audio_url,
            },
            "alert_contacts": [c.to_dict() for c in self.alert_contacts],
            "selected_jurisdiction": self.selected_jurisdiction,
            "is_location_enabled": self.is_location_enabled,
            "encounter_count": len(self.encounters),
            "is_loading": self.is_loading,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------

def _merge_encounter(encounter: Encounter, changes: dict) -> Encounter:
    if not encounter.is_active and changes.get("status") == "active":
        raise EncounterNotActiveError(
            f"Encounter {encounter.encounter_id} has ended and cannot be reactivated"
        )
    if encounter.alert_sent and "alert_sent" in changes and not changes["alert_sent"]:
        raise ValueError(f"Encounter {encounter.encounter_id} has already alerted contacts")
    return encounter.apply(changes)


def reduce(state: AppState, action: Action) -> AppState:
    """Return the state that results from applying ``action`` to ``state``.

    Pure: never mutates ``state`` and performs no I/O.

    Raises:
        EncounterAlreadyActiveError: Setting a second current encounter.
        EncounterNotActiveError: Making an ended encounter current or active.
        ValueError: Malformed patches or duplicate contact ids.
        TypeError: ``action`` is not a known transition.
    """
    if isinstance(action, SetUser):
        return replace(state, user=action.user)

    if isinstance(action, SetCurrentEncounter):
        new = action.encounter
        current = state.current_encounter
        if new is not None:
            if not new.is_active:
                raise EncounterNotActiveError(
                    f"Encounter {new.encounter_id} is {new.status}, not active"
                )
            if current is not None and current.encounter_id != new.encounter_id:
                raise EncounterAlreadyActiveError(
                    f"Encounter {current.encounter_id} is already in progress"
                )
        return replace(state, current_encounter=new)

    if isinstance(action, SetRecordingState):
        return replace(state, recording_state=action.recording_state)

    if isinstance(action, SetAlertContacts):
        ids = [c.id for c in action.contacts]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate alert contact ids")
        return replace(state, alert_contacts=action.contacts)

    if isinstance(action, AddAlertContact):
        if state.find_contact(action.contact.id) is not None:
            raise ValueError(f"Alert contact {action.contact.id} already exists")
        return replace(state, alert_contacts=state.alert_contacts + (action.contact,))

    if isinstance(action, UpdateAlertContact):
        return replace(
            state,
            alert_contacts=tuple(
                c.apply(action.changes) if c.id == action.contact_id else c
                for c in state.alert_contacts
            ),
        )

    if isinstance(action, RemoveAlertContact):
        return replace(
            state,
            alert_contacts=tuple(c for c in state.alert_contacts if c.id != action.contact_id),
        )

    if isinstance(action, SetSelectedJurisdiction):
        return replace(state, selected_jurisdiction=action.code)

    if isinstance(action, SetLocationEnabled):
        return replace(state, is_location_enabled=action.enabled)

    if isinstance(action, AddEncounter):
        return replace(state, encounters=(action.encounter,) + state.encounters)

    if isinstance(action, SetEncounters):
        return replace(state, encounters=action.encounters)

    if isinstance(action, UpdateEncounter):
        changes = dict(action.changes)
        encounters = tuple(
            _merge_encounter(e, changes) if e.encounter_id == action.encounter_id else e
            for e in state.encounters
        )
        current = state.current_encounter
        if current is not None and current.encounter_id == action.encounter_id:
            current = _merge_encounter(current, changes)
        return replace(state, encounters=encounters, current_encounter=current)

    if isinstance(action, SetLoading):
        return replace(state, is_loading=action.loading)

    if isinstance(action, SetError):
        return replace(state, error=action.message)

    raise TypeError(f"Unknown action: {type(action).__name__}")


def replay(actions: Iterable[Action], initial: AppState | None = None) -> AppState:
    """Fold ``actions`` over ``initial`` (default: a fresh state)."""
    state = initial if initial is not None else AppState()
    for action in actions:
        state = reduce(state, action)
    return state


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class AppStore:
    """Single-writer owner of :class:`AppState`.

    Transitions apply synchronously in the order they are dispatched and are
    visible to readers before the caller's next ``await``. Every applied
    action is kept in a journal so a session can be replayed in tests. Once
    the journal holds ``journal_limit`` actions, the oldest one is folded into
    ``journal_base``, so ``replay(store.journal, store.journal_base)`` always
    equals ``store.state``.

    Usage::

        store = AppStore()
        store.dispatch(SetUser(User(user_id="u1")))
        store.state.user.user_id  # "u1"
    """

    def __init__(self, initial: AppState | None = None, *, journal_limit: int = 1000) -> None:
        self._initial = initial if initial is not None else AppState()
        self._state = self._initial
        self._journal_base = self._initial
        self._journal: deque[Action] = deque()
        self._journal_limit = journal_limit
        self._listeners: list[Listener] = []
        # Entries vanish once no coroutine holds or awaits the lock.
        self._encounter_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def journal(self) -> tuple[Action, ...]:
        return tuple(self._journal)

    @property
    def journal_base(self) -> AppState:
        """State the journal replays from."""
        return self._journal_base

    def dispatch(self, action: Action) -> AppState:
        """Apply one transition. On error the state is left unchanged."""
        self._state = reduce(self._state, action)
        self._journal.append(action)
        if len(self._journal) > self._journal_limit:
            self._journal_base = reduce(self._journal_base, self._journal.popleft())
        logger.debug("Applied %s", type(action).__name__)
        for listener in list(self._listeners):
            try:
                listener(self._state, action)
            except Exception:
                logger.exception("State listener failed on %s", type(action).__name__)
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(state, action)``; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def encounter_lock(self, encounter_id: str) -> asyncio.Lock:
        """Lock serializing store mutations for one encounter id."""
        lock = self._encounter_locks.get(encounter_id)
        if lock is None:
            lock = asyncio.Lock()
            self._encounter_locks[encounter_id] = lock
        return lock
