"""Shared test fixtures for Know Your Rights tests."""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("GEOCODER", "offline")
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "")
    monkeypatch.setenv("SENDGRID_API_KEY", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from kyr.core.storage.gateway import StorageError  # noqa: E402
from kyr.domains.rights.errors import ChannelSendError  # noqa: E402
from kyr.domains.rights.location.geocoding import BoundingBoxGeocoder  # noqa: E402
from kyr.domains.rights.location.provider import LocationProvider  # noqa: E402
from kyr.domains.rights.location.sources import ReportedPositionSource  # noqa: E402
from kyr.domains.rights.models import (  # noqa: E402
    AlertContact,
    ContactDraft,
    Coordinates,
    Encounter,
    User,
)
from kyr.domains.rights.notifications.channels import ChannelSet, LoggingChannel  # noqa: E402
from kyr.domains.rights.state.store import AppStore  # noqa: E402

LOS_ANGELES = Coordinates(34.0522, -118.2437)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeGateway:
    """In-memory persistence gateway that records every call.

    Set ``fail_on`` to a method name to make that method raise
    ``StorageError``.
    """

    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.encounters: dict[str, Encounter] = {}
        self.contacts: dict[str, tuple[str, AlertContact]] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.fail_on: set[str] = set()
        self._next_contact = 0

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail_on:
            raise StorageError(f"{name} failed")

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def create_user(self, user: User) -> User:
        self._record("create_user", user)
        self.users[user.user_id] = user
        return user

    async def get_user(self, user_id: str) -> User | None:
        self._record("get_user", user_id)
        return self.users.get(user_id)

    async def update_user(self, user_id: str, changes: Mapping[str, Any]) -> User:
        self._record("update_user", user_id, dict(changes))
        updated = replace(self.users[user_id], **dict(changes))
        self.users[user_id] = updated
        return updated

    async def create_encounter(self, encounter: Encounter) -> Encounter:
        self._record("create_encounter", encounter)
        self.encounters[encounter.encounter_id] = encounter
        return encounter

    async def get_encounters(self, user_id: str) -> list[Encounter]:
        self._record("get_encounters", user_id)
        return [e for e in self.encounters.values() if e.user_id == user_id]

    async def update_encounter(self, encounter_id: str, changes: Mapping[str, Any]) -> Encounter:
        self._record("update_encounter", encounter_id, dict(changes))
        if encounter_id not in self.encounters:
            raise StorageError(f"Encounter {encounter_id} not found")
        updated = self.encounters[encounter_id].apply(changes)
        self.encounters[encounter_id] = updated
        return updated

    async def create_alert_contact(self, user_id: str, draft: ContactDraft) -> AlertContact:
        self._record("create_alert_contact", user_id, draft)
        self._next_contact += 1
        contact = draft.with_id(f"c{self._next_contact}")
        self.contacts[contact.id] = (user_id, contact)
        return contact

    async def get_alert_contacts(self, user_id: str) -> list[AlertContact]:
        self._record("get_alert_contacts", user_id)
        return [c for owner, c in self.contacts.values() if owner == user_id]

    async def update_alert_contact(self, contact_id: str, changes: Mapping[str, Any]) -> AlertContact:
        self._record("update_alert_contact", contact_id, dict(changes))
        if contact_id not in self.contacts:
            raise StorageError(f"Alert contact {contact_id} not found")
        owner, contact = self.contacts[contact_id]
        updated = contact.apply(changes)
        self.contacts[contact_id] = (owner, updated)
        return updated

    async def delete_alert_contact(self, contact_id: str) -> bool:
        self._record("delete_alert_contact", contact_id)
        return self.contacts.pop(contact_id, None) is not None


class FailingChannel(LoggingChannel):
    """Channel that fails for the given recipients and delivers to the rest."""

    def __init__(self, name: str, failing: set[str] | None = None) -> None:
        super().__init__(name)
        self.failing = failing if failing is not None else set()
        self.attempts: list[str] = []

    async def send(self, recipient: str, message: str) -> None:
        self.attempts.append(recipient)
        if recipient in self.failing or "*" in self.failing:
            raise ChannelSendError(f"{self.name} delivery to recipient failed")
        await super().send(recipient, message)


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def store() -> AppStore:
    return AppStore()


@pytest.fixture
def position_source() -> ReportedPositionSource:
    """A source that already holds a fresh Los Angeles fix."""
    source = ReportedPositionSource()
    source.report(LOS_ANGELES, accuracy_m=10.0)
    return source


@pytest.fixture
def location_provider(position_source) -> LocationProvider:
    return LocationProvider(position_source, BoundingBoxGeocoder(), timeout_s=1.0)


@pytest.fixture
def channels() -> ChannelSet:
    return ChannelSet(sms=FailingChannel("sms"), email=FailingChannel("email"))


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def rights_db():
    """Create an in-memory RightsDatabase for testing."""
    from kyr.core.storage.database import RightsDatabase

    db = RightsDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from kyr.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def rights_repository(rights_db, field_encryptor):
    """Create a RightsRepository backed by in-memory SQLite."""
    from kyr.core.storage.repository import RightsRepository

    return RightsRepository(rights_db, field_encryptor)


@pytest.fixture
def audit_logger(rights_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from kyr.core.audit.logger import AuditLogger

    return AuditLogger(rights_db)
