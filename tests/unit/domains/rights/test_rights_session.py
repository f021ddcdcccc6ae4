"""Tests for RightsSession: sign-in, contacts, encounters and alerts over one store."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from kyr.core.llm.client import TextGenerationClient
from kyr.core.llm.providers.mock import MockProvider
from kyr.core.storage.gateway import StorageError
from kyr.domains.rights.domain_logic.narrative import ScriptGenerator, SummaryGenerator
from kyr.domains.rights.errors import (
    EncounterNotFoundError,
    InvalidContactError,
    LocationRequiredError,
    NotAuthenticatedError,
    PremiumRequiredError,
)
from kyr.domains.rights.models import Encounter, Location, User
from kyr.domains.rights.orchestration.session import RightsSession


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def session(store, gateway, location_provider, channels, audit_logger):
    return RightsSession(store, gateway, location_provider, channels, audit=audit_logger)


@pytest.fixture
def signed_in(session):
    _run(session.initialize_user("u1"))
    return session


class TestInitializeUser:
    def test_first_sign_in_creates_user(self, session, gateway):
        user = _run(session.initialize_user("u1"))
        assert user == User(user_id="u1", saved_jurisdictions=("CA",))
        assert gateway.users["u1"] == user
        state = session.store.state
        assert state.user == user
        assert state.selected_jurisdiction == "CA"
        assert state.is_loading is False

    def test_existing_user_loads_history_and_contacts(self, session, gateway):
        gateway.users["u1"] = User(user_id="u1", saved_jurisdictions=("NY",))
        gateway.encounters["e1"] = Encounter(
            encounter_id="e1",
            user_id="u1",
            timestamp=datetime(2026, 3, 1, tzinfo=timezone.utc),
            location=Location(latitude=40.7, longitude=-74.0),
            status="completed",
        )
        _run(session.initialize_user("u1"))
        state = session.store.state
        assert state.selected_jurisdiction == "NY"
        assert [e.encounter_id for e in state.encounters] == ["e1"]
        assert "create_user" not in gateway.call_names()

    def test_storage_failure_sets_error_and_clears_loading(self, session, gateway):
        gateway.fail_on.add("get_user")
        with pytest.raises(StorageError):
            _run(session.initialize_user("u1"))
        assert session.store.state.error == "get_user failed"
        assert session.store.state.is_loading is False
        assert session.store.state.user is None


class TestPreferences:
    def test_update(self, signed_in, gateway):
        user = _run(signed_in.update_user_preferences({"preferred_language": "es"}))
        assert user.preferred_language == "es"
        assert signed_in.store.state.user.preferred_language == "es"

    def test_invalid_language_never_reaches_storage(self, signed_in, gateway):
        with pytest.raises(ValueError):
            _run(signed_in.update_user_preferences({"preferred_language": "fr"}))
        assert "update_user" not in gateway.call_names()

    def test_unknown_jurisdiction(self, signed_in):
        with pytest.raises(ValueError, match="ZZ"):
            _run(signed_in.update_user_preferences({"saved_jurisdictions": ("ZZ",)}))

    def test_requires_sign_in(self, session):
        with pytest.raises(NotAuthenticatedError):
            _run(session.update_user_preferences({"preferred_language": "es"}))
        assert session.store.state.error == "Please sign in to continue"


class TestLocationPermission:
    def test_granted(self, session):
        assert _run(session.request_location_permission()) is True
        assert session.store.state.is_location_enabled is True

    def test_denied(self, session, position_source):
        position_source.deny()
        assert _run(session.request_location_permission()) is False
        assert session.store.state.is_location_enabled is False
        assert "Location access" in session.store.state.error

    def test_current_location_none_when_unavailable(self, session, position_source):
        position_source.deny()
        assert _run(session.current_location()) is None


class TestContacts:
    def test_save_and_list(self, signed_in):
        contact = _run(signed_in.save_alert_contact("Ana", phone="555-0100", relationship="sister"))
        assert signed_in.store.state.alert_contacts == (contact,)

    def test_invalid_contact_never_persisted(self, signed_in, gateway):
        with pytest.raises(InvalidContactError):
            _run(signed_in.save_alert_contact("Ana"))
        assert "create_alert_contact" not in gateway.call_names()
        assert signed_in.store.state.error == "Either phone or email is required"

    def test_update(self, signed_in):
        contact = _run(signed_in.save_alert_contact("Ana", phone="555-0100"))
        updated = _run(signed_in.update_alert_contact(contact.id, {"email": "ana@example.org"}))
        assert updated.email == "ana@example.org"
        assert signed_in.store.state.find_contact(contact.id).email == "ana@example.org"

    def test_update_storage_failure_keeps_store(self, signed_in, gateway):
        contact = _run(signed_in.save_alert_contact("Ana", phone="555-0100"))
        gateway.fail_on.add("update_alert_contact")
        with pytest.raises(StorageError):
            _run(signed_in.update_alert_contact(contact.id, {"name": "Anna"}))
        assert signed_in.store.state.find_contact(contact.id).name == "Ana"

    def test_delete(self, signed_in):
        contact = _run(signed_in.save_alert_contact("Ana", phone="555-0100"))
        assert _run(signed_in.delete_alert_contact(contact.id)) is True
        assert signed_in.store.state.alert_contacts == ()

    def test_reload(self, signed_in, gateway):
        _run(signed_in.save_alert_contact("Ana", phone="555-0100"))
        _run(signed_in.save_alert_contact("Ben", email="ben@example.org"))
        contacts = _run(signed_in.load_alert_contacts())
        assert [c.name for c in contacts] == ["Ana", "Ben"]


class TestEncounters:
    def test_start_requires_sign_in(self, session):
        with pytest.raises(NotAuthenticatedError):
            _run(session.start_encounter())

    def test_start_without_location_sets_error(self, signed_in, position_source):
        position_source.deny()
        with pytest.raises(LocationRequiredError):
            _run(signed_in.start_encounter())
        assert "Location is required" in signed_in.store.state.error

    def test_start_record_end(self, signed_in):
        async def scenario():
            encounter_id = await signed_in.start_encounter()
            await signed_in.start_recording()
            assert signed_in.store.state.recording_state.is_recording
            return await signed_in.end_encounter(encounter_id, "Quiet stop.")

        ended = _run(scenario())
        state = signed_in.store.state
        assert ended.status == "completed"
        assert ended.summary == "Quiet stop."
        assert state.current_encounter is None
        assert state.recording_state.is_recording is False
        assert not signed_in.recording.is_running

    def test_end_with_generated_summary(self, store, gateway, location_provider, channels):
        provider = MockProvider("A calm, brief stop.")
        session = RightsSession(
            store,
            gateway,
            location_provider,
            channels,
            summaries=SummaryGenerator(TextGenerationClient(provider, "mock")),
        )
        _run(session.initialize_user("u1"))
        encounter_id = _run(session.start_encounter())
        ended = _run(session.end_encounter(encounter_id, summarize=True))
        assert ended.summary == "A calm, brief stop."
        assert provider.call_count == 1

    def test_end_unknown_sets_error(self, signed_in):
        with pytest.raises(EncounterNotFoundError):
            _run(signed_in.end_encounter("missing"))
        assert "missing" in signed_in.store.state.error

    def test_stop_recording_attaches_audio(self, signed_in, gateway):
        async def scenario():
            encounter_id = await signed_in.start_encounter()
            await signed_in.start_recording()
            await signed_in.stop_recording("https://example.org/a.m4a")
            return encounter_id

        encounter_id = _run(scenario())
        assert gateway.encounters[encounter_id].recording_url == "https://example.org/a.m4a"
        assert signed_in.store.state.current_encounter.recording_url == "https://example.org/a.m4a"

    def test_generate_summary_unknown(self, signed_in):
        with pytest.raises(EncounterNotFoundError):
            _run(signed_in.generate_summary("missing"))


class TestSendAlert:
    def test_no_contacts_sets_error(self, signed_in, gateway):
        outcome = _run(signed_in.send_alert())
        assert outcome.success is False
        assert outcome.error == "no_contacts"
        assert signed_in.store.state.error == "No alert contacts configured"
        assert "create_encounter" not in gateway.call_names()

    def test_alert_creates_current_encounter(self, signed_in, channels):
        _run(signed_in.save_alert_contact("Ana", phone="555-0100"))
        outcome = _run(signed_in.send_alert())
        state = signed_in.store.state
        assert outcome.success is True
        assert outcome.encounter_created is True
        assert state.current_encounter.encounter_id == outcome.encounter_id
        assert state.current_encounter.alert_sent is True
        assert len(channels.sms.deliveries) == 1

    def test_alert_flags_current_encounter(self, signed_in):
        _run(signed_in.save_alert_contact("Ana", email="ana@example.org"))
        encounter_id = _run(signed_in.start_encounter())
        outcome = _run(signed_in.send_alert("Help"))
        assert outcome.encounter_id == encounter_id
        assert signed_in.store.state.current_encounter.alert_sent is True
        assert signed_in.store.state.find_encounter(encounter_id).alert_sent is True

    def test_partial_failure_does_not_set_error(self, signed_in, channels):
        _run(signed_in.save_alert_contact("Ana", phone="555-0100"))
        _run(signed_in.save_alert_contact("Ben", phone="555-0200"))
        channels.sms.failing.add("555-0200")
        outcome = _run(signed_in.send_alert())
        assert outcome.summary.failed_sends == 1
        assert signed_in.store.state.error is None

    def test_location_unavailable(self, signed_in, position_source):
        _run(signed_in.save_alert_contact("Ana", phone="555-0100"))
        position_source.deny()
        outcome = _run(signed_in.send_alert())
        assert outcome.error == "location_required"


class TestJurisdictionAndScripts:
    def test_select(self, session):
        assert session.select_jurisdiction("tx") == "TX"
        assert session.store.state.selected_jurisdiction == "TX"

    def test_select_invalid(self, session):
        with pytest.raises(ValueError):
            session.select_jurisdiction("ZZ")
        assert session.store.state.selected_jurisdiction == "CA"

    def test_general_script_fallback(self, signed_in):
        result = _run(signed_in.generate_script())
        assert result.fallback is True
        assert result.text.startswith("Your basic rights (California)")

    def test_premium_scenario_for_free_user(self, signed_in):
        with pytest.raises(PremiumRequiredError):
            _run(signed_in.generate_script("arrest"))

    def test_uses_preferred_language(self, signed_in):
        _run(signed_in.update_user_preferences({"preferred_language": "es"}))
        result = _run(signed_in.generate_script())
        assert result.text.startswith("Sus derechos básicos")

    def test_script_generator_injected(self, store, gateway, location_provider, channels):
        provider = MockProvider("Script text.")
        session = RightsSession(
            store,
            gateway,
            location_provider,
            channels,
            scripts=ScriptGenerator(TextGenerationClient(provider, "mock")),
        )
        result = _run(session.generate_script())
        assert result.text.startswith("Script text.")

    def test_clear_error(self, session):
        with pytest.raises(ValueError):
            session.select_jurisdiction("ZZ")
        session.clear_error()
        assert session.store.state.error is None
