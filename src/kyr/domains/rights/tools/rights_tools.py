"""MCP tools for jurisdiction selection, state rights info and scripts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from kyr.domains.rights.domain_logic.content import emergency_phrases, jurisdiction_info as lookup_jurisdiction

if TYPE_CHECKING:
    from kyr.domains.rights.tools.runner import ToolRunner

logger = logging.getLogger(__name__)


def register_rights_tools(mcp: FastMCP, runner: ToolRunner) -> None:
    """Register rights guidance tools on the MCP server."""
    session = runner.session

    @mcp.tool
    async def select_jurisdiction(ctx: Context, code: str) -> str:
        """Choose the state whose rights guidance to show.

        Args:
            code: Two-letter state code (e.g., 'CA').
        """
        async def body() -> dict[str, Any]:
            selected = session.select_jurisdiction(code)
            return {"status": "ok", "selected_jurisdiction": selected}

        return await runner.run("select_jurisdiction", {"code": code}, body)

    @mcp.tool
    async def jurisdiction_info(ctx: Context, code: str = "") -> str:
        """Recording laws, search rights and hotlines for a state.

        Args:
            code: Two-letter state code. Defaults to the selected jurisdiction.
        """
        async def body() -> dict[str, Any]:
            info = lookup_jurisdiction(code or session.store.state.selected_jurisdiction)
            user = session.store.state.user
            language = user.preferred_language if user else "en"
            return {"status": "ok", "state_info": info, "phrases": emergency_phrases(language)}

        return await runner.run("jurisdiction_info", {"code": code}, body)

    @mcp.tool
    async def rights_script(ctx: Context, scenario: str = "general", language: str = "") -> str:
        """What to say during a police encounter in the selected state.

        Scenarios other than 'general' require a premium subscription.

        Args:
            scenario: 'general', 'traffic', 'search' or 'arrest'.
            language: 'en' or 'es'. Defaults to the user's preferred language.
        """
        async def body() -> dict[str, Any]:
            result = await session.generate_script(scenario, language or None)
            return {
                "status": "ok",
                "jurisdiction": session.store.state.selected_jurisdiction,
                "scenario": scenario,
                "script": result.text,
                "fallback": result.fallback,
                "is_premium": scenario != "general",
            }

        return await runner.run(
            "rights_script", {"scenario": scenario, "language": language}, body
        )
