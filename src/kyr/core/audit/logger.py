"""PII-free activity trail for tool calls, encounters and alert dispatches.

Rows land in the ``audit_log`` table. Nothing that identifies a contact or
a place is written: tool input is reduced to a SHA-256 of its canonical
JSON, and a dispatch keeps only its counts and a hash of the contact ids.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from kyr.core.storage.database import DatabaseError, RightsDatabase

if TYPE_CHECKING:
    from kyr.domains.rights.models import DispatchOutcome

logger = logging.getLogger(__name__)

AuditAction = Literal["tool_invocation", "encounter_start", "encounter_end", "alert_dispatch"]
AuditStatus = Literal["success", "partial", "failure"]

ENCOUNTER_ACTIONS = ("encounter_start", "encounter_end")


def _hash_input(data: Any) -> str:
    """SHA-256 hex digest of canonical JSON, or ``""`` for unserializable data."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass
class AuditEvent:
    """An event about to be written."""

    action: AuditAction
    tool_name: str = ""
    tool_input_hash: str = ""
    user_id: str | None = None
    encounter_id: str | None = None
    duration_ms: float | None = None
    status: AuditStatus = "success"
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditRecord:
    """A stored event as read back, metadata already decoded."""

    id: str
    timestamp: str
    action: str
    status: str
    tool_name: str | None = None
    tool_input_hash: str | None = None
    user_id: str | None = None
    encounter_id: str | None = None
    duration_ms: float | None = None
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> AuditRecord:
        raw = row["metadata_json"]
        return cls(
            id=row["id"],
            timestamp=row["timestamp"],
            action=row["action"],
            status=row["status"],
            tool_name=row["tool_name"],
            tool_input_hash=row["tool_input_hash"],
            user_id=row["user_id"],
            encounter_id=row["encounter_id"],
            duration_ms=row["duration_ms"],
            error_type=row["error_type"],
            metadata=json.loads(raw) if raw else {},
        )


def dispatch_status(outcome: DispatchOutcome) -> AuditStatus:
    """``failure`` if nothing was attempted, ``partial`` if any send failed."""
    if not outcome.success:
        return "failure"
    if outcome.summary.failed_sends:
        return "partial"
    return "success"


class AuditLogger:
    """Writes audit events next to the rights data.

    A failed write is logged and dropped: auditing never blocks the action
    being audited.
    """

    def __init__(self, database: RightsDatabase) -> None:
        self._db = database

    def log_event(self, event: AuditEvent) -> str:
        """Insert ``event``; return its id, or ``""`` if the write failed."""
        event_id = str(uuid.uuid4())
        metadata_json = json.dumps(event.metadata, separators=(",", ":")) if event.metadata else None
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """INSERT INTO audit_log
                       (id, timestamp, action, tool_name, tool_input_hash, user_id,
                        encounter_id, duration_ms, status, error_type, metadata_json)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        event_id,
                        datetime.now(timezone.utc).isoformat(),
                        event.action,
                        event.tool_name or None,
                        event.tool_input_hash or None,
                        event.user_id,
                        event.encounter_id,
                        event.duration_ms,
                        event.status,
                        event.error_type,
                        metadata_json,
                    ),
                )
        except (sqlite3.Error, DatabaseError):
            logger.exception("Audit write failed; %s event lost", event.action)
            return ""
        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        user_id: str | None = None,
        duration_ms: float | None = None,
        status: AuditStatus = "success",
        error_type: str | None = None,
    ) -> str:
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            user_id=user_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
        ))

    def log_encounter(self, action: str, *, user_id: str, encounter_id: str) -> str:
        if action not in ENCOUNTER_ACTIONS:
            raise ValueError(f"Not an encounter action: {action!r}")
        return self.log_event(AuditEvent(action=action, user_id=user_id, encounter_id=encounter_id))

    def log_dispatch(
        self,
        *,
        user_id: str,
        outcome: DispatchOutcome,
        contact_ids: list[str],
        duration_ms: float | None = None,
    ) -> str:
        """Record one alert dispatch by its counts, never by who was contacted."""
        return self.log_event(AuditEvent(
            action="alert_dispatch",
            user_id=user_id,
            encounter_id=outcome.encounter_id,
            duration_ms=duration_ms,
            status=dispatch_status(outcome),
            error_type=outcome.error,
            metadata={
                "alert_id": outcome.alert_id,
                "summary": asdict(outcome.summary),
                "contacts_hash": _hash_input(sorted(contact_ids)),
                "encounter_created": outcome.encounter_created,
                "bookkeeping_failed": outcome.bookkeeping_error is not None,
            },
        ))

    def get_events(
        self,
        *,
        action: str | None = None,
        user_id: str | None = None,
        encounter_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[AuditRecord]:
        """Matching events, newest first."""
        filters = {
            "action = ?": action,
            "user_id = ?": user_id,
            "encounter_id = ?": encounter_id,
            "timestamp >= ?": since,
        }
        active = {clause: value for clause, value in filters.items() if value}
        where = f" WHERE {' AND '.join(active)}" if active else ""
        rows = self._db.connection.execute(
            f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (*active.values(), limit),
        ).fetchall()
        return [AuditRecord.from_row(row) for row in rows]

    def count_events(self, *, action: str | None = None) -> int:
        query, params = "SELECT COUNT(*) FROM audit_log", ()
        if action:
            query, params = query + " WHERE action = ?", (action,)
        return self._db.connection.execute(query, params).fetchone()[0]
