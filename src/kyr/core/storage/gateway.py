"""Persistence gateway protocol: the durable store the orchestrators write through."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:
    from kyr.domains.rights.models import AlertContact, ContactDraft, Encounter, User


class StorageError(Exception):
    """Raised when the persistence gateway fails.

    Callers see only this error kind; backend-specific codes are never
    surfaced.
    """

    kind = "storage_error"


@runtime_checkable
class PersistenceGateway(Protocol):
    """Abstract interface for durable user, encounter and contact records.

    Orchestrators call these methods without knowing whether the records live
    in local SQLite, a hosted database, or an in-memory fake.
    """

    async def create_user(self, user: User) -> User: ...

    async def get_user(self, user_id: str) -> User | None: ...

    async def update_user(self, user_id: str, changes: Mapping[str, Any]) -> User: ...

    async def create_encounter(self, encounter: Encounter) -> Encounter: ...

    async def get_encounters(self, user_id: str) -> list[Encounter]:
        """All encounters of a user, newest first."""
        ...

    async def update_encounter(
        self, encounter_id: str, changes: Mapping[str, Any]
    ) -> Encounter: ...

    async def create_alert_contact(self, user_id: str, draft: ContactDraft) -> AlertContact: ...

    async def get_alert_contacts(self, user_id: str) -> list[AlertContact]: ...

    async def update_alert_contact(
        self, contact_id: str, changes: Mapping[str, Any]
    ) -> AlertContact: ...

    async def delete_alert_contact(self, contact_id: str) -> bool: ...
