"""SQLite implementation of the persistence gateway.

The repository mediates between domain objects (User, Encounter,
AlertContact) and the SQLite database, using FieldEncryptor for the
sensitive columns. Every backend failure surfaces as ``StorageError``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping

from kyr.core.storage.database import DatabaseError, RightsDatabase
from kyr.core.storage.encryption import EncryptionError, FieldEncryptor
from kyr.core.storage.gateway import StorageError
from kyr.domains.rights.models import (
    AlertContact,
    ContactDraft,
    Encounter,
    Location,
    User,
    validate_encounter_changes,
)

logger = logging.getLogger(__name__)

_USER_FIELDS = ("wallet_address", "subscription_status", "preferred_language", "saved_jurisdictions")


def _to_utc_iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate backend exceptions into ``StorageError``."""
    try:
        yield
    except StorageError:
        raise
    except (sqlite3.Error, DatabaseError, EncryptionError) as exc:
        logger.error("Storage operation %s failed: %s", operation, type(exc).__name__)
        raise StorageError(f"{operation} failed") from exc


class RightsRepository:
    """CRUD repository for users, encounters and alert contacts.

    Usage::

        db = RightsDatabase(":memory:")
        db.initialize()
        repo = RightsRepository(db, FieldEncryptor(key="..."))

        user = await repo.create_user(User(user_id="u1"))
        history = await repo.get_encounters("u1")
    """

    def __init__(self, database: RightsDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def create_user(self, user: User) -> User:
        with _storage_errors("create_user"), self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO users
                   (id, wallet_address, subscription_status, preferred_language, saved_state_laws)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    user.user_id,
                    user.wallet_address,
                    user.subscription_status,
                    user.preferred_language,
                    json.dumps(list(user.saved_jurisdictions)),
                ),
            )
        logger.info("Created user %s", user.user_id)
        return user

    async def get_user(self, user_id: str) -> User | None:
        with _storage_errors("get_user"):
            row = self._db.connection.execute(
                "SELECT * FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    async def update_user(self, user_id: str, changes: Mapping[str, Any]) -> User:
        unknown = set(changes) - set(_USER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)}")

        current = await self.get_user(user_id)
        if current is None:
            raise StorageError(f"User {user_id} not found")
        updated = replace(current, **dict(changes))

        with _storage_errors("update_user"), self._db.transaction() as conn:
            conn.execute(
                """UPDATE users SET wallet_address = ?, subscription_status = ?,
                   preferred_language = ?, saved_state_laws = ?, updated_at = ?
                   WHERE id = ?""",
                (
                    updated.wallet_address,
                    updated.subscription_status,
                    updated.preferred_language,
                    json.dumps(list(updated.saved_jurisdictions)),
                    self._now_iso(),
                    user_id,
                ),
            )
        return updated

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            user_id=row["id"],
            wallet_address=row["wallet_address"],
            subscription_status=row["subscription_status"],
            preferred_language=row["preferred_language"],
            saved_jurisdictions=tuple(json.loads(row["saved_state_laws"] or "[]")),
        )

    # ------------------------------------------------------------------
    # Encounters
    # ------------------------------------------------------------------

    async def create_encounter(self, encounter: Encounter) -> Encounter:
        with _storage_errors("create_encounter"), self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO encounters
                   (id, user_id, timestamp, location_enc, recording_url, summary_enc,
                    alert_sent, duration, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    encounter.encounter_id,
                    encounter.user_id,
                    _to_utc_iso(encounter.timestamp),
                    self._enc.encrypt_json(encounter.location.to_dict()),
                    encounter.recording_url,
                    self._enc.encrypt_text(encounter.summary),
                    1 if encounter.alert_sent else 0,
                    encounter.duration,
                    encounter.status,
                ),
            )
        logger.info(
            "Saved encounter %s (user=%s, alert_sent=%s)",
            encounter.encounter_id,
            encounter.user_id,
            encounter.alert_sent,
        )
        return encounter

    async def get_encounter(self, encounter_id: str) -> Encounter | None:
        with _storage_errors("get_encounter"):
            row = self._db.connection.execute(
                "SELECT * FROM encounters WHERE id = ?", (encounter_id,)
            ).fetchone()
            return self._row_to_encounter(row) if row is not None else None

    async def get_encounters(self, user_id: str) -> list[Encounter]:
        """Return the user's encounters, newest first.

        Equal timestamps fall back to insertion order (latest insert first) so
        a single load is always stable.
        """
        with _storage_errors("get_encounters"):
            rows = self._db.connection.execute(
                """SELECT * FROM encounters WHERE user_id = ?
                   ORDER BY timestamp DESC, rowid DESC""",
                (user_id,),
            ).fetchall()
            return [self._row_to_encounter(row) for row in rows]

    async def update_encounter(
        self, encounter_id: str, changes: Mapping[str, Any]
    ) -> Encounter:
        validate_encounter_changes(changes)
        if not changes:
            existing = await self.get_encounter(encounter_id)
            if existing is None:
                raise StorageError(f"Encounter {encounter_id} not found")
            return existing

        columns: list[str] = []
        params: list[Any] = []
        for name, value in changes.items():
            column, encoded = self._encode_encounter_field(name, value)
            columns.append(f"{column} = ?")
            params.append(encoded)
        columns.append("updated_at = ?")
        params.append(self._now_iso())
        params.append(encounter_id)

        with _storage_errors("update_encounter"), self._db.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE encounters SET {', '.join(columns)} WHERE id = ?", params
            )
            if cursor.rowcount == 0:
                raise StorageError(f"Encounter {encounter_id} not found")

        updated = await self.get_encounter(encounter_id)
        assert updated is not None
        logger.info("Updated encounter %s: %s", encounter_id, sorted(changes))
        return updated

    def _encode_encounter_field(self, name: str, value: Any) -> tuple[str, Any]:
        if name == "location":
            return "location_enc", self._enc.encrypt_json(value.to_dict())
        if name == "summary":
            return "summary_enc", self._enc.encrypt_text(value)
        if name == "alert_sent":
            return "alert_sent", 1 if value else 0
        if name == "timestamp":
            return "timestamp", _to_utc_iso(value)
        return name, value

    def _row_to_encounter(self, row: sqlite3.Row) -> Encounter:
        return Encounter(
            encounter_id=row["id"],
            user_id=row["user_id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            location=Location.from_dict(self._enc.decrypt_json(row["location_enc"])),
            recording_url=row["recording_url"],
            summary=self._enc.decrypt_text(row["summary_enc"]),
            alert_sent=bool(row["alert_sent"]),
            duration=row["duration"],
            status=row["status"],
        )

    # ------------------------------------------------------------------
    # Alert contacts
    # ------------------------------------------------------------------

    async def create_alert_contact(self, user_id: str, draft: ContactDraft) -> AlertContact:
        contact = draft.with_id(self._new_id())
        with _storage_errors("create_alert_contact"), self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO alert_contacts
                   (id, user_id, name, phone_enc, email_enc, relationship)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    contact.id,
                    user_id,
                    contact.name,
                    self._enc.encrypt_text(contact.phone),
                    self._enc.encrypt_text(contact.email),
                    contact.relationship,
                ),
            )
        logger.info("Saved alert contact %s for user %s", contact.id, user_id)
        return contact

    async def get_alert_contacts(self, user_id: str) -> list[AlertContact]:
        """Return the user's contacts in the order they were added."""
        with _storage_errors("get_alert_contacts"):
            rows = self._db.connection.execute(
                "SELECT * FROM alert_contacts WHERE user_id = ? ORDER BY rowid ASC",
                (user_id,),
            ).fetchall()
            return [self._row_to_contact(row) for row in rows]

    async def update_alert_contact(
        self, contact_id: str, changes: Mapping[str, Any]
    ) -> AlertContact:
        with _storage_errors("update_alert_contact"):
            row = self._db.connection.execute(
                "SELECT * FROM alert_contacts WHERE id = ?", (contact_id,)
            ).fetchone()
            if row is None:
                raise StorageError(f"Alert contact {contact_id} not found")
            current = self._row_to_contact(row)

        updated = current.apply(changes)

        with _storage_errors("update_alert_contact"), self._db.transaction() as conn:
            conn.execute(
                """UPDATE alert_contacts SET name = ?, phone_enc = ?, email_enc = ?,
                   relationship = ?, updated_at = ? WHERE id = ?""",
                (
                    updated.name,
                    self._enc.encrypt_text(updated.phone),
                    self._enc.encrypt_text(updated.email),
                    updated.relationship,
                    self._now_iso(),
                    contact_id,
                ),
            )
        return updated

    async def delete_alert_contact(self, contact_id: str) -> bool:
        """Delete a contact. Returns False if no such contact existed."""
        with _storage_errors("delete_alert_contact"), self._db.transaction() as conn:
            cursor = conn.execute("DELETE FROM alert_contacts WHERE id = ?", (contact_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted alert contact %s", contact_id)
        return deleted

    def count_encounters(self) -> int:
        """Return total number of stored encounters."""
        with _storage_errors("count_encounters"):
            row = self._db.connection.execute("SELECT COUNT(*) FROM encounters").fetchone()
        return row[0]

    def rotate_encryption(self) -> int:
        """Re-encrypt every sensitive column under the primary key.

        Returns the number of rows rewritten.
        """
        targets = (
            ("encounters", ("location_enc", "summary_enc")),
            ("alert_contacts", ("phone_enc", "email_enc")),
        )
        rewritten = 0
        with _storage_errors("rotate_encryption"), self._db.transaction() as conn:
            for table, columns in targets:
                rows = conn.execute(f"SELECT id, {', '.join(columns)} FROM {table}").fetchall()
                for row in rows:
                    tokens = [self._enc.rotate(row[column]) for column in columns]
                    assignments = ", ".join(f"{column} = ?" for column in columns)
                    conn.execute(
                        f"UPDATE {table} SET {assignments} WHERE id = ?", (*tokens, row["id"])
                    )
                    rewritten += 1
        logger.info("Re-encrypted %d row(s) under the primary key", rewritten)
        return rewritten

    def _row_to_contact(self, row: sqlite3.Row) -> AlertContact:
        return AlertContact(
            id=row["id"],
            name=row["name"],
            relationship=row["relationship"],
            phone=self._enc.decrypt_text(row["phone_enc"]),
            email=self._enc.decrypt_text(row["email_enc"]),
        )
