"""Shared tool plumbing: JSON responses, error conversion and audit logging."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from kyr.core.storage.gateway import StorageError
from kyr.domains.rights.errors import RightsError

if TYPE_CHECKING:
    from kyr.core.audit.logger import AuditLogger
    from kyr.domains.rights.orchestration.session import RightsSession

logger = logging.getLogger(__name__)


def error_payload(exc: Exception) -> dict[str, Any]:
    """``{"status": "error", "error": kind, "message": ...}`` for a caught failure."""
    kind = getattr(exc, "kind", None) or "invalid_request"
    return {"status": "error", "error": kind, "message": str(exc)}


class ToolRunner:
    """Runs a tool body, converting known failures into error JSON.

    Domain and storage errors never escape into the MCP transport. Each call
    is written to the audit trail with its input hashed.
    """

    def __init__(self, session: RightsSession, audit: AuditLogger | None = None) -> None:
        self.session = session
        self.audit = audit

    async def run(
        self,
        tool_name: str,
        tool_input: dict[str, Any] | None,
        body: Callable[[], Awaitable[dict[str, Any]]],
    ) -> str:
        started = time.perf_counter()
        status = "success"
        error_type: str | None = None
        try:
            payload = await body()
        except (RightsError, StorageError, ValueError) as exc:
            payload = error_payload(exc)
            status = "failure"
            error_type = payload["error"]
            logger.info("Tool %s failed: %s", tool_name, error_type)

        if self.audit is not None:
            user = self.session.store.state.user
            self.audit.log_tool_call(
                tool_name,
                tool_input,
                user_id=user.user_id if user is not None else None,
                duration_ms=(time.perf_counter() - started) * 1000,
                status=status,
                error_type=error_type,
            )
        return json.dumps(payload, indent=2)
