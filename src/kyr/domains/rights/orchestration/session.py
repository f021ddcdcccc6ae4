"""Application session: the actions a client triggers, wired to one store.

``RightsSession`` is the explicitly constructed replacement for an ambient
app context. It owns nothing itself: the store, gateway, location provider
and channels are injected, and every action writes through the gateway
before it touches the store. Failures are recorded in ``state.error`` and
re-raised to the caller.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from kyr.core.storage.gateway import PersistenceGateway, StorageError
from kyr.domains.rights.domain_logic.content import is_valid_jurisdiction
from kyr.domains.rights.domain_logic.narrative import (
    NarrativeResult,
    ScriptGenerator,
    SummaryGenerator,
)
from kyr.domains.rights.errors import (
    EncounterNotFoundError,
    LocationError,
    NotAuthenticatedError,
    RightsError,
)
from kyr.domains.rights.location.provider import LocationProvider
from kyr.domains.rights.models import (
    AlertContact,
    ContactDraft,
    DispatchOutcome,
    Encounter,
    Location,
    RecordingState,
    User,
)
from kyr.domains.rights.notifications.channels import ChannelSet
from kyr.domains.rights.orchestration.alerts import AlertDispatcher
from kyr.domains.rights.orchestration.encounters import EncounterOrchestrator
from kyr.domains.rights.orchestration.recording import RecordingTimer
from kyr.domains.rights.state.actions import (
    AddAlertContact,
    RemoveAlertContact,
    SetAlertContacts,
    SetCurrentEncounter,
    SetError,
    SetLoading,
    SetLocationEnabled,
    SetRecordingState,
    SetSelectedJurisdiction,
    SetUser,
    UpdateAlertContact,
    UpdateEncounter,
)
from kyr.domains.rights.state.store import AppStore

if TYPE_CHECKING:
    from kyr.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

_PREFERENCE_FIELDS = ("wallet_address", "subscription_status", "preferred_language", "saved_jurisdictions")


class RightsSession:
    """One user's session over an injected store.

    Usage::

        session = RightsSession(AppStore(), repository, location, channels)
        await session.initialize_user("u1")
        encounter_id = await session.start_encounter()
        outcome = await session.send_alert()
    """

    def __init__(
        self,
        store: AppStore,
        gateway: PersistenceGateway,
        location: LocationProvider,
        channels: ChannelSet,
        *,
        audit: AuditLogger | None = None,
        summaries: SummaryGenerator | None = None,
        scripts: ScriptGenerator | None = None,
        recording: RecordingTimer | None = None,
        default_jurisdiction: str = "CA",
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.location = location
        self.encounters = EncounterOrchestrator(store, gateway, location, audit=audit)
        self.alerts = AlertDispatcher(gateway, channels, audit=audit)
        self.recording = recording or RecordingTimer(store)
        self.summaries = summaries or SummaryGenerator()
        self.scripts = scripts or ScriptGenerator()
        self.default_jurisdiction = default_jurisdiction

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _surfacing_errors(self) -> Iterator[None]:
        try:
            yield
        except (RightsError, StorageError, ValueError) as exc:
            self.store.dispatch(SetError(str(exc)))
            raise

    def _require_user(self) -> User:
        user = self.store.state.user
        if user is None:
            self.store.dispatch(SetError("Please sign in to continue"))
            raise NotAuthenticatedError("Please sign in to continue")
        return user

    # ------------------------------------------------------------------
    # User
    # ------------------------------------------------------------------

    async def initialize_user(self, user_id: str) -> User:
        """Load (or create on first sign-in) the user, then their history and contacts."""
        self.store.dispatch(SetLoading(True))
        try:
            with self._surfacing_errors():
                user = await self.gateway.get_user(user_id)
                if user is None:
                    user = await self.gateway.create_user(
                        User(
                            user_id=user_id,
                            saved_jurisdictions=(self.store.state.selected_jurisdiction,),
                        )
                    )
                    logger.info("First sign-in for user %s", user_id)

                previous = self.store.state.user
                if previous is not None and previous.user_id != user_id:
                    self.recording.reset()
                    self.store.dispatch(SetCurrentEncounter(None))
                    self.store.dispatch(SetRecordingState(RecordingState.inactive()))

                self.store.dispatch(SetUser(user))
                jurisdiction = (
                    user.saved_jurisdictions[0] if user.saved_jurisdictions else self.default_jurisdiction
                )
                self.store.dispatch(SetSelectedJurisdiction(jurisdiction))

                await self.encounters.load_history(user_id)
                contacts = await self.gateway.get_alert_contacts(user_id)
                self.store.dispatch(SetAlertContacts(tuple(contacts)))
        finally:
            self.store.dispatch(SetLoading(False))
        return user

    async def update_user_preferences(self, changes: Mapping[str, Any]) -> User:
        user = self._require_user()
        with self._surfacing_errors():
            unknown = set(changes) - set(_PREFERENCE_FIELDS)
            if unknown:
                raise ValueError(f"Unknown preference fields: {sorted(unknown)}")
            for code in changes.get("saved_jurisdictions", ()):
                if not is_valid_jurisdiction(code):
                    raise ValueError(f"Unknown jurisdiction: {code!r}")
            # Validate before writing.
            replace(user, **dict(changes))
            updated = await self.gateway.update_user(user.user_id, changes)
            self.store.dispatch(SetUser(updated))
        logger.info("Preferences updated: %s", sorted(changes))
        return updated

    # ------------------------------------------------------------------
    # Location
    # ------------------------------------------------------------------

    async def request_location_permission(self) -> bool:
        try:
            await self.location.acquire_location()
        except LocationError as exc:
            self.store.dispatch(SetLocationEnabled(False))
            self.store.dispatch(SetError("Location access is required for emergency features"))
            logger.info("Location permission check failed: %s", exc.kind)
            return False
        self.store.dispatch(SetLocationEnabled(True))
        return True

    async def current_location(self) -> Location | None:
        """Current location with place name, or ``None`` when unavailable."""
        try:
            return await self.location.locate()
        except LocationError:
            return None

    # ------------------------------------------------------------------
    # Encounters
    # ------------------------------------------------------------------

    async def start_encounter(self) -> str:
        user = self._require_user()
        with self._surfacing_errors():
            return await self.encounters.start_encounter(user.user_id)

    async def end_encounter(
        self,
        encounter_id: str,
        summary: str | None = None,
        *,
        summarize: bool = False,
    ) -> Encounter:
        """End an encounter, optionally generating its summary first.

        The recording timer is ticked first so the persisted duration is up
        to date; it is only reset once the encounter has ended.
        """
        with self._surfacing_errors():
            state = self.store.state
            current = state.current_encounter
            is_current = current is not None and current.encounter_id == encounter_id
            if is_current:
                self.recording.tick()

            if summarize and not summary:
                existing = self.store.state.find_encounter(encounter_id)
                if existing is None:
                    raise EncounterNotFoundError(f"Encounter {encounter_id} not found")
                duration = self.store.state.recording_state.duration if is_current else existing.duration
                result = await self.summaries.generate(replace(existing, duration=duration))
                summary = result.text

            ended = await self.encounters.end_encounter(encounter_id, summary)
            if is_current:
                self.recording.reset()
            return ended

    async def load_history(self) -> tuple[Encounter, ...]:
        user = self._require_user()
        with self._surfacing_errors():
            return await self.encounters.load_history(user.user_id)

    async def generate_summary(self, encounter_id: str) -> NarrativeResult:
        encounter = self.store.state.find_encounter(encounter_id)
        if encounter is None:
            raise EncounterNotFoundError(f"Encounter {encounter_id} not found")
        return await self.summaries.generate(encounter)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def start_recording(self) -> RecordingState:
        self.recording.start_ticking()
        return self.store.state.recording_state

    async def stop_recording(self, audio_url: str | None = None) -> RecordingState:
        """Freeze the recording duration; attach ``audio_url`` to the current encounter."""
        state = self.recording.stop(audio_url)
        current = self.store.state.current_encounter
        if audio_url and current is not None:
            with self._surfacing_errors():
                async with self.store.encounter_lock(current.encounter_id):
                    await self.gateway.update_encounter(
                        current.encounter_id, {"recording_url": audio_url}
                    )
                    self.store.dispatch(
                        UpdateEncounter(current.encounter_id, {"recording_url": audio_url})
                    )
        return state

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def send_alert(self, message: str | None = None) -> DispatchOutcome:
        """Alert every contact about the user's current location.

        A precondition failure comes back as ``success=False`` and is
        mirrored into ``state.error``; partial delivery does not set an error.
        """
        user = self._require_user()
        state = self.store.state
        contacts = state.alert_contacts
        location = await self.current_location() if contacts else None
        current = state.current_encounter

        outcome = await self.alerts.dispatch_alert(
            user.user_id,
            contacts,
            location,
            current.encounter_id if current is not None else None,
            message,
        )
        if not outcome.success:
            self.store.dispatch(SetError(outcome.error_message))
            return outcome

        if outcome.encounter is not None:
            await self.encounters.adopt_encounter(outcome.encounter)
        elif outcome.encounter_id and outcome.bookkeeping_error is None:
            async with self.store.encounter_lock(outcome.encounter_id):
                if self.store.state.find_encounter(outcome.encounter_id) is not None:
                    self.store.dispatch(UpdateEncounter(outcome.encounter_id, {"alert_sent": True}))
        return outcome

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def load_alert_contacts(self) -> tuple[AlertContact, ...]:
        user = self._require_user()
        with self._surfacing_errors():
            contacts = tuple(await self.gateway.get_alert_contacts(user.user_id))
            self.store.dispatch(SetAlertContacts(contacts))
        return contacts

    async def save_alert_contact(
        self,
        name: str,
        *,
        relationship: str = "",
        phone: str | None = None,
        email: str | None = None,
    ) -> AlertContact:
        """Validate, persist and add a contact. Invalid contacts never reach storage."""
        user = self._require_user()
        with self._surfacing_errors():
            draft = ContactDraft(name=name, relationship=relationship, phone=phone, email=email)
            contact = await self.gateway.create_alert_contact(user.user_id, draft)
            self.store.dispatch(AddAlertContact(contact))
        return contact

    async def update_alert_contact(self, contact_id: str, changes: Mapping[str, Any]) -> AlertContact:
        with self._surfacing_errors():
            existing = self.store.state.find_contact(contact_id)
            if existing is not None:
                existing.apply(changes)
            updated = await self.gateway.update_alert_contact(contact_id, changes)
            self.store.dispatch(UpdateAlertContact(contact_id, changes))
        return updated

    async def delete_alert_contact(self, contact_id: str) -> bool:
        with self._surfacing_errors():
            deleted = await self.gateway.delete_alert_contact(contact_id)
            self.store.dispatch(RemoveAlertContact(contact_id))
        return deleted

    # ------------------------------------------------------------------
    # Jurisdiction and scripts
    # ------------------------------------------------------------------

    def select_jurisdiction(self, code: str) -> str:
        code = code.upper()
        if not is_valid_jurisdiction(code):
            self.store.dispatch(SetError(f"Unknown jurisdiction: {code}"))
            raise ValueError(f"Unknown jurisdiction: {code!r}")
        self.store.dispatch(SetSelectedJurisdiction(code))
        return code

    async def generate_script(
        self, scenario: str = "general", language: str | None = None
    ) -> NarrativeResult:
        """Script for the selected jurisdiction in the user's language."""
        user = self.store.state.user
        return await self.scripts.generate(
            self.store.state.selected_jurisdiction,
            language or (user.preferred_language if user else "en"),
            scenario,
            is_premium=bool(user and user.is_premium),
        )

    def clear_error(self) -> None:
        self.store.dispatch(SetError(None))
