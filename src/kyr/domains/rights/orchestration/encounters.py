"""Encounter Orchestrator: start/stop lifecycle of a recorded encounter.

Every mutation follows persist-before-commit: the gateway write happens
first and the store is only touched once it succeeded. A failed write leaves
the store exactly as it was.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from kyr.core.storage.gateway import PersistenceGateway
from kyr.domains.rights.errors import (
    EncounterAlreadyActiveError,
    EncounterNotActiveError,
    EncounterNotFoundError,
    LocationError,
    LocationRequiredError,
    NotAuthenticatedError,
)
from kyr.domains.rights.location.provider import LocationProvider
from kyr.domains.rights.models import Encounter, RecordingState
from kyr.domains.rights.state.actions import (
    AddEncounter,
    SetCurrentEncounter,
    SetEncounters,
    SetRecordingState,
    UpdateEncounter,
)
from kyr.domains.rights.state.store import AppStore

if TYPE_CHECKING:
    from kyr.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class EncounterOrchestrator:
    """Starts, ends and loads encounters for the signed-in user.

    Starting is serialized by a single lock held across the
    "is anything current?" check, the gateway write and the store commit,
    so two concurrent starts can never both succeed. Ending is serialized
    per encounter id through ``AppStore.encounter_lock``.
    """

    def __init__(
        self,
        store: AppStore,
        gateway: PersistenceGateway,
        location: LocationProvider,
        *,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._location = location
        self._audit = audit
        self._clock = clock
        self._id_factory = id_factory
        self._start_lock = asyncio.Lock()

    def _require_user(self, user_id: str) -> None:
        user = self._store.state.user
        if user is None or user.user_id != user_id:
            raise NotAuthenticatedError("Please sign in to continue")

    async def start_encounter(self, user_id: str) -> str:
        """Create, persist and commit a new current encounter.

        Returns:
            The new encounter id.

        Raises:
            NotAuthenticatedError: No signed-in user, or a different one.
            EncounterAlreadyActiveError: Another encounter is current.
            LocationRequiredError: No location could be acquired.
            StorageError: The gateway write failed; the store is unchanged.
        """
        self._require_user(user_id)

        async with self._start_lock:
            current = self._store.state.current_encounter
            if current is not None:
                raise EncounterAlreadyActiveError(
                    f"Encounter {current.encounter_id} is already in progress"
                )

            try:
                location = await self._location.locate()
            except LocationError as exc:
                raise LocationRequiredError(
                    f"Location is required to start an encounter ({exc.kind})"
                ) from exc

            encounter = Encounter(
                encounter_id=self._id_factory(),
                user_id=user_id,
                timestamp=self._clock(),
                location=location,
            )
            async with self._store.encounter_lock(encounter.encounter_id):
                await self._gateway.create_encounter(encounter)
                self._store.dispatch(AddEncounter(encounter))
                self._store.dispatch(SetCurrentEncounter(encounter))

        logger.info("Encounter %s started", encounter.encounter_id)
        if self._audit is not None:
            self._audit.log_encounter(
                "encounter_start", user_id=user_id, encounter_id=encounter.encounter_id
            )
        return encounter.encounter_id

    async def adopt_encounter(self, encounter: Encounter) -> bool:
        """Commit an already-persisted encounter (e.g. one created by an alert).

        It is prepended to history and, when nothing else is current and it
        is still active, becomes the current encounter.

        Returns:
            Whether the encounter became current.
        """
        async with self._start_lock:
            async with self._store.encounter_lock(encounter.encounter_id):
                if self._store.state.find_encounter(encounter.encounter_id) is None:
                    self._store.dispatch(AddEncounter(encounter))
                if self._store.state.current_encounter is None and encounter.is_active:
                    self._store.dispatch(SetCurrentEncounter(encounter))
                    return True
        return False

    async def end_encounter(self, encounter_id: str, summary: str | None = None) -> Encounter:
        """Fix duration (and optionally summary) and close the encounter.

        Duration comes from the store's recording state when the encounter is
        the current one. Only when the ended encounter is current is the
        pointer cleared and recording reset.

        Raises:
            EncounterNotFoundError: The id is not in history; nothing changes.
            EncounterNotActiveError: The encounter already ended.
            StorageError: The gateway write failed; the store is unchanged.
        """
        async with self._store.encounter_lock(encounter_id):
            state = self._store.state
            existing = state.find_encounter(encounter_id)
            if existing is None:
                raise EncounterNotFoundError(f"Encounter {encounter_id} not found")
            if not existing.is_active:
                raise EncounterNotActiveError(f"Encounter {encounter_id} has already ended")

            is_current = (
                state.current_encounter is not None
                and state.current_encounter.encounter_id == encounter_id
            )
            duration = state.recording_state.duration if is_current else (existing.duration or 0)

            changes: dict[str, Any] = {"duration": duration, "status": "completed"}
            if summary:
                changes["summary"] = summary

            await self._gateway.update_encounter(encounter_id, changes)

            self._store.dispatch(UpdateEncounter(encounter_id, changes))
            if is_current:
                self._store.dispatch(SetCurrentEncounter(None))
                self._store.dispatch(SetRecordingState(RecordingState.inactive()))

        logger.info("Encounter %s ended (duration=%ss)", encounter_id, duration)
        if self._audit is not None:
            self._audit.log_encounter(
                "encounter_end", user_id=existing.user_id, encounter_id=encounter_id
            )
        ended = self._store.state.find_encounter(encounter_id)
        assert ended is not None
        return ended

    async def load_history(self, user_id: str) -> tuple[Encounter, ...]:
        """Replace history with the user's stored encounters, newest first.

        Encounters with equal timestamps keep the gateway's order.
        """
        self._require_user(user_id)
        encounters = await self._gateway.get_encounters(user_id)
        ordered = tuple(sorted(encounters, key=lambda e: e.timestamp, reverse=True))
        self._store.dispatch(SetEncounters(ordered))
        logger.info("Loaded %d encounters", len(ordered))
        return ordered
