"""MCP Resources for static rights content."""

from __future__ import annotations

import json

from fastmcp import FastMCP

from kyr.domains.rights.domain_logic.content import BASIC_RIGHTS, US_STATES, emergency_phrases


def register_rights_resources(mcp: FastMCP) -> None:
    """Register rights content resources on the MCP server."""

    @mcp.resource("rights://basic-rights")
    def basic_rights_resource() -> str:
        """The four basic rights with what to say for each."""
        return json.dumps({"rights": list(BASIC_RIGHTS)}, indent=2)

    @mcp.resource("rights://states")
    def states_resource() -> str:
        """Supported jurisdictions (US states)."""
        return json.dumps(
            {"states": [{"code": code, "name": name} for code, name in US_STATES.items()]},
            indent=2,
        )

    @mcp.resource("rights://phrases/{language}")
    def phrases_resource(language: str) -> str:
        """Emergency phrases in 'en' or 'es'."""
        return json.dumps({"language": language, "phrases": emergency_phrases(language)}, indent=2)
