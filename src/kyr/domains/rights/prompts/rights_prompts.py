"""MCP prompts: pre-built interaction templates for encounter journeys."""

from __future__ import annotations

from fastmcp import FastMCP


def register_rights_prompts(mcp: FastMCP) -> None:
    """Register rights domain MCP prompts."""

    @mcp.prompt()
    def encounter_walkthrough_prompt() -> str:
        """Step-by-step guidance while being stopped by police."""
        return """I'm being stopped by police right now. Please help me step by step:

1. Start an encounter so this interaction is recorded with my location
2. Show me what I should say, using the rights script for my state
3. Remind me of my basic rights in short sentences I can read quickly
4. If I say I'm in danger, send an alert to my emergency contacts
5. When it's over, end the encounter and write a factual summary

Keep every answer short. I may be reading under stress."""

    @mcp.prompt()
    def know_your_rights_prompt(state: str = "CA") -> str:
        """Prompt template for reviewing rights before an encounter happens."""
        return f"""I'd like to prepare before I ever get stopped. For {state}, please:

1. Explain the recording laws and whether I can record police
2. Explain when police can search me or my car
3. Give me the phrases I should memorize
4. Check that my emergency contacts are set up

Use plain language and remind me this is general information, not legal advice."""
