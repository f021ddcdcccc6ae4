"""Transitions accepted by the application state store.

Each transition is a frozen dataclass; ``Action`` is their union. The store
applies nothing else, so every change to UI-visible state is one of these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from kyr.domains.rights.models import AlertContact, Encounter, RecordingState, User


@dataclass(frozen=True)
class SetUser:
    user: User | None


@dataclass(frozen=True)
class SetCurrentEncounter:
    encounter: Encounter | None


@dataclass(frozen=True)
class SetRecordingState:
    """Replaces recording status wholesale; callers supply the full next state."""

    recording_state: RecordingState


@dataclass(frozen=True)
class SetAlertContacts:
    contacts: tuple[AlertContact, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "contacts", tuple(self.contacts))


@dataclass(frozen=True)
class AddAlertContact:
    contact: AlertContact


@dataclass(frozen=True)
class UpdateAlertContact:
    """Merge ``changes`` into the contact with ``contact_id``. Unknown ids are a no-op."""

    contact_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "changes", dict(self.changes))


@dataclass(frozen=True)
class RemoveAlertContact:
    contact_id: str


@dataclass(frozen=True)
class SetSelectedJurisdiction:
    code: str


@dataclass(frozen=True)
class SetLocationEnabled:
    enabled: bool


@dataclass(frozen=True)
class AddEncounter:
    """Prepend to history (history is most-recent-first)."""

    encounter: Encounter


@dataclass(frozen=True)
class SetEncounters:
    """Replace the whole history, e.g. after loading it from storage."""

    encounters: tuple[Encounter, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "encounters", tuple(self.encounters))


@dataclass(frozen=True)
class UpdateEncounter:
    """Merge ``changes`` into the history entry and, if it matches, the current encounter."""

    encounter_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "changes", dict(self.changes))


@dataclass(frozen=True)
class SetLoading:
    loading: bool


@dataclass(frozen=True)
class SetError:
    message: str | None


Action = Union[
    SetUser,
    SetCurrentEncounter,
    SetRecordingState,
    SetAlertContacts,
    AddAlertContact,
    UpdateAlertContact,
    RemoveAlertContact,
    SetSelectedJurisdiction,
    SetLocationEnabled,
    AddEncounter,
    SetEncounters,
    UpdateEncounter,
    SetLoading,
    SetError,
]
