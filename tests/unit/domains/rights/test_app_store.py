"""Tests for the state reducer and AppStore."""

from __future__ import annotations

import gc
from datetime import datetime, timezone

import pytest

from kyr.domains.rights.errors import EncounterAlreadyActiveError, EncounterNotActiveError
from kyr.domains.rights.models import AlertContact, Encounter, Location, RecordingState, User
from kyr.domains.rights.state.actions import (
    AddAlertContact,
    AddEncounter,
    RemoveAlertContact,
    SetAlertContacts,
    SetCurrentEncounter,
    SetEncounters,
    SetError,
    SetRecordingState,
    SetSelectedJurisdiction,
    SetUser,
    UpdateAlertContact,
    UpdateEncounter,
)
from kyr.domains.rights.state.store import AppState, AppStore, reduce, replay


def _encounter(encounter_id: str, **overrides) -> Encounter:
    defaults = dict(
        encounter_id=encounter_id,
        user_id="u1",
        timestamp=datetime(2026, 3, 14, 21, 0, tzinfo=timezone.utc),
        location=Location(latitude=34.0522, longitude=-118.2437),
    )
    defaults.update(overrides)
    return Encounter(**defaults)


def _contact(contact_id: str, **overrides) -> AlertContact:
    defaults = dict(id=contact_id, name=f"Contact {contact_id}", phone="555-0100")
    defaults.update(overrides)
    return AlertContact(**defaults)


class TestReducerPurity:
    def test_same_sequence_same_state(self):
        actions = [
            SetUser(User(user_id="u1")),
            AddEncounter(_encounter("e1")),
            SetCurrentEncounter(_encounter("e1")),
            SetRecordingState(RecordingState(is_recording=True, duration=3)),
            AddAlertContact(_contact("c1")),
            SetSelectedJurisdiction("NY"),
        ]
        assert replay(actions) == replay(actions)

    def test_reduce_does_not_mutate_input(self):
        state = AppState()
        reduce(state, SetUser(User(user_id="u1")))
        assert state.user is None

    def test_unknown_action_raises(self):
        with pytest.raises(TypeError, match="Unknown action"):
            reduce(AppState(), object())


class TestEncounters:
    def test_add_prepends(self):
        state = replay([AddEncounter(_encounter("e1")), AddEncounter(_encounter("e2"))])
        assert [e.encounter_id for e in state.encounters] == ["e2", "e1"]

    def test_update_touches_only_matching_entry(self):
        state = replay([AddEncounter(_encounter("e1")), AddEncounter(_encounter("e2"))])
        updated = reduce(state, UpdateEncounter("e1", {"summary": "done"}))
        assert updated.find_encounter("e1").summary == "done"
        assert updated.find_encounter("e2") == state.find_encounter("e2")

    def test_update_also_patches_current(self):
        state = replay([AddEncounter(_encounter("e1")), SetCurrentEncounter(_encounter("e1"))])
        updated = reduce(state, UpdateEncounter("e1", {"alert_sent": True}))
        assert updated.current_encounter.alert_sent is True
        assert updated.find_encounter("e1").alert_sent is True

    def test_update_unknown_id_is_noop(self):
        state = replay([AddEncounter(_encounter("e1"))])
        assert reduce(state, UpdateEncounter("missing", {"summary": "x"})) == state

    def test_set_encounters_replaces_history(self):
        state = replay([AddEncounter(_encounter("e1"))])
        state = reduce(state, SetEncounters((_encounter("e9"),)))
        assert [e.encounter_id for e in state.encounters] == ["e9"]

    def test_second_current_encounter_rejected(self):
        state = replay([SetCurrentEncounter(_encounter("e1"))])
        with pytest.raises(EncounterAlreadyActiveError):
            reduce(state, SetCurrentEncounter(_encounter("e2")))

    def test_same_current_encounter_can_be_reset(self):
        state = replay([SetCurrentEncounter(_encounter("e1"))])
        assert reduce(state, SetCurrentEncounter(_encounter("e1"))).current_encounter.encounter_id == "e1"

    def test_ended_encounter_cannot_become_current(self):
        with pytest.raises(EncounterNotActiveError):
            reduce(AppState(), SetCurrentEncounter(_encounter("e1", status="completed")))

    def test_ended_encounter_cannot_be_reactivated(self):
        state = replay([AddEncounter(_encounter("e1", status="completed"))])
        with pytest.raises(EncounterNotActiveError):
            reduce(state, UpdateEncounter("e1", {"status": "active"}))

    def test_alert_sent_cannot_be_cleared(self):
        state = replay([AddEncounter(_encounter("e1", alert_sent=True))])
        with pytest.raises(ValueError, match="already alerted"):
            reduce(state, UpdateEncounter("e1", {"alert_sent": False}))
        assert reduce(state, UpdateEncounter("e1", {"alert_sent": True})).encounters[0].alert_sent

    def test_clear_current(self):
        state = replay([SetCurrentEncounter(_encounter("e1")), SetCurrentEncounter(None)])
        assert state.current_encounter is None


class TestContacts:
    def test_add_then_remove_restores_list(self):
        base = replay([SetAlertContacts((_contact("c1"), _contact("c2")))])
        after = replay([AddAlertContact(_contact("c3")), RemoveAlertContact("c3")], base)
        assert after.alert_contacts == base.alert_contacts

    def test_duplicate_add_rejected(self):
        state = replay([AddAlertContact(_contact("c1"))])
        with pytest.raises(ValueError, match="already exists"):
            reduce(state, AddAlertContact(_contact("c1")))

    def test_duplicate_set_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            reduce(AppState(), SetAlertContacts((_contact("c1"), _contact("c1"))))

    def test_update_merges_changes(self):
        state = replay([AddAlertContact(_contact("c1")), AddAlertContact(_contact("c2"))])
        state = reduce(state, UpdateAlertContact("c2", {"email": "c2@example.org"}))
        assert state.find_contact("c2").email == "c2@example.org"
        assert state.find_contact("c1").email is None

    def test_remove_unknown_is_noop(self):
        state = replay([AddAlertContact(_contact("c1"))])
        assert reduce(state, RemoveAlertContact("missing")) == state


class TestAppStore:
    def test_dispatch_updates_state_and_journal(self):
        store = AppStore()
        store.dispatch(SetUser(User(user_id="u1")))
        store.dispatch(SetError("boom"))
        assert store.state.user.user_id == "u1"
        assert store.state.error == "boom"
        assert [type(a).__name__ for a in store.journal] == ["SetUser", "SetError"]

    def test_journal_replays_to_same_state(self):
        store = AppStore()
        store.dispatch(AddEncounter(_encounter("e1")))
        store.dispatch(SetCurrentEncounter(_encounter("e1")))
        store.dispatch(UpdateEncounter("e1", {"alert_sent": True}))
        assert replay(store.journal) == store.state

    def test_failed_dispatch_leaves_state_unchanged(self):
        store = AppStore()
        store.dispatch(SetCurrentEncounter(_encounter("e1")))
        before = store.state
        with pytest.raises(EncounterAlreadyActiveError):
            store.dispatch(SetCurrentEncounter(_encounter("e2")))
        assert store.state is before
        assert len(store.journal) == 1

    def test_listeners_and_unsubscribe(self):
        store = AppStore()
        seen = []
        unsubscribe = store.subscribe(lambda state, action: seen.append(type(action).__name__))
        store.dispatch(SetError("x"))
        unsubscribe()
        store.dispatch(SetError(None))
        assert seen == ["SetError"]

    def test_listener_failure_does_not_break_dispatch(self):
        store = AppStore()

        def broken(state, action):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.dispatch(SetError("x"))
        assert store.state.error == "x"

    def test_journal_limit(self):
        store = AppStore(journal_limit=2)
        for i in range(5):
            store.dispatch(SetError(str(i)))
        assert len(store.journal) == 2
        assert store.state.error == "4"
        assert store.journal_base.error == "2"
        assert replay(store.journal, store.journal_base) == store.state

    def test_trimmed_journal_still_replays_to_live_state(self):
        store = AppStore(journal_limit=10)
        store.dispatch(SetUser(User(user_id="u1")))
        store.dispatch(SetCurrentEncounter(_encounter("e1")))
        for i in range(50):
            store.dispatch(SetRecordingState(RecordingState(is_recording=i % 2 == 0, duration=i)))
        assert len(store.journal) == 10
        replayed = replay(store.journal, store.journal_base)
        assert replayed == store.state
        assert replayed.user.user_id == "u1"
        assert replayed.current_encounter.encounter_id == "e1"

    def test_encounter_lock_is_per_id(self):
        store = AppStore()
        assert store.encounter_lock("e1") is store.encounter_lock("e1")
        assert store.encounter_lock("e1") is not store.encounter_lock("e2")

    def test_unused_encounter_locks_are_released(self):
        store = AppStore()
        held = store.encounter_lock("kept")
        for i in range(200):
            store.encounter_lock(f"e{i}")
        gc.collect()
        assert len(store._encounter_locks) == 1
        assert store.encounter_lock("kept") is held

    def test_to_dict_reports_history_count(self):
        store = AppStore()
        store.dispatch(AddEncounter(_encounter("e1")))
        snapshot = store.state.to_dict()
        assert snapshot["encounter_count"] == 1
        assert snapshot["user"] is None
        assert snapshot["recording_state"]["is_recording"] is False
