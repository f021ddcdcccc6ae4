"""MCP tools for signing in, preferences and the state snapshot."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from kyr.domains.rights.tools.runner import ToolRunner

logger = logging.getLogger(__name__)


def register_account_tools(mcp: FastMCP, runner: ToolRunner) -> None:
    """Register account tools on the MCP server."""
    session = runner.session

    @mcp.tool
    async def sign_in(ctx: Context, user_id: str) -> str:
        """Sign in, creating the account on first use, and load history and contacts.

        Args:
            user_id: Identity issued by the authentication provider.
        """
        async def body() -> dict[str, Any]:
            user = await session.initialize_user(user_id)
            state = session.store.state
            return {
                "status": "ok",
                "user_id": user.user_id,
                "subscription_status": user.subscription_status,
                "preferred_language": user.preferred_language,
                "selected_jurisdiction": state.selected_jurisdiction,
                "encounters": len(state.encounters),
                "alert_contacts": len(state.alert_contacts),
            }

        return await runner.run("sign_in", {"user_id": user_id}, body)

    @mcp.tool
    async def update_preferences(
        ctx: Context,
        preferred_language: str = "",
        saved_jurisdictions: list[str] | None = None,
        wallet_address: str = "",
    ) -> str:
        """Update the signed-in user's preferences. Empty arguments are left unchanged.

        Args:
            preferred_language: 'en' or 'es'.
            saved_jurisdictions: State codes to keep, first one is the default.
            wallet_address: External wallet identifier.
        """
        changes: dict[str, Any] = {}
        if preferred_language:
            changes["preferred_language"] = preferred_language
        if saved_jurisdictions is not None:
            changes["saved_jurisdictions"] = tuple(code.upper() for code in saved_jurisdictions)
        if wallet_address:
            changes["wallet_address"] = wallet_address

        async def body() -> dict[str, Any]:
            if not changes:
                return {"status": "error", "error": "invalid_request", "message": "No preferences provided"}
            user = await session.update_user_preferences(changes)
            return {
                "status": "updated",
                "preferred_language": user.preferred_language,
                "saved_jurisdictions": list(user.saved_jurisdictions),
                "wallet_address": user.wallet_address,
            }

        return await runner.run("update_preferences", {k: str(v) for k, v in changes.items()}, body)

    @mcp.tool
    async def app_state(ctx: Context) -> str:
        """Snapshot of the session state as the app would render it."""
        async def body() -> dict[str, Any]:
            return {"status": "ok", "state": session.store.state.to_dict()}

        return await runner.run("app_state", None, body)
