"""MCP tools for location, encounters and recording.

The client device owns GPS: it reports fixes through ``report_location``
and the encounter and alert flows read them back.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from kyr.domains.rights.domain_logic.formatting import format_duration, format_location
from kyr.domains.rights.location.sources import ReportedPositionSource
from kyr.domains.rights.models import Coordinates

if TYPE_CHECKING:
    from kyr.domains.rights.tools.runner import ToolRunner

logger = logging.getLogger(__name__)


def register_encounter_tools(mcp: FastMCP, runner: ToolRunner) -> None:
    """Register location, encounter and recording tools on the MCP server."""
    session = runner.session

    @mcp.tool
    async def report_location(
        ctx: Context,
        latitude: float = 0.0,
        longitude: float = 0.0,
        accuracy_m: float | None = None,
        denied: bool = False,
    ) -> str:
        """Report the device's position, or that location permission was denied.

        Args:
            latitude: Latitude in decimal degrees.
            longitude: Longitude in decimal degrees.
            accuracy_m: Reported accuracy radius in meters, if known.
            denied: True when the user refused location access.
        """
        async def body() -> dict[str, Any]:
            source = session.location.source
            if not isinstance(source, ReportedPositionSource):
                return {
                    "status": "error",
                    "error": "unsupported",
                    "message": "This server does not accept device-reported locations",
                }
            if denied:
                source.deny()
            else:
                source.report(Coordinates(latitude, longitude), accuracy_m=accuracy_m)
            enabled = await session.request_location_permission()
            return {"status": "ok", "location_enabled": enabled}

        # Coordinates are not passed to the audit trail.
        return await runner.run("report_location", {"denied": denied}, body)

    @mcp.tool
    async def start_encounter(ctx: Context, record: bool = True) -> str:
        """Start a new encounter at the current location.

        Args:
            record: Also start the recording timer.
        """
        async def body() -> dict[str, Any]:
            encounter_id = await session.start_encounter()
            if record:
                await session.start_recording()
            encounter = session.store.state.current_encounter
            return {
                "status": "started",
                "encounter_id": encounter_id,
                "location": format_location(encounter.location) if encounter else None,
                "recording": session.store.state.recording_state.is_recording,
            }

        return await runner.run("start_encounter", {"record": record}, body)

    @mcp.tool
    async def end_encounter(
        ctx: Context,
        encounter_id: str = "",
        summary: str = "",
        summarize: bool = False,
    ) -> str:
        """End an encounter and fix its duration.

        Args:
            encounter_id: Encounter to end. Defaults to the current encounter.
            summary: Summary text to store with the encounter.
            summarize: Generate a summary when none is given.
        """
        async def body() -> dict[str, Any]:
            target = encounter_id
            if not target:
                current = session.store.state.current_encounter
                if current is None:
                    return {"status": "error", "error": "encounter_not_found", "message": "No encounter in progress"}
                target = current.encounter_id
            ended = await session.end_encounter(target, summary or None, summarize=summarize)
            return {
                "status": "ended",
                "encounter_id": ended.encounter_id,
                "duration": format_duration(ended.duration or 0),
                "summary": ended.summary,
                "alert_sent": ended.alert_sent,
            }

        return await runner.run(
            "end_encounter", {"encounter_id": encounter_id, "summarize": summarize}, body
        )

    @mcp.tool
    async def encounter_history(ctx: Context, limit: int = 20, refresh: bool = False) -> str:
        """List past encounters, newest first.

        Args:
            limit: Maximum number of encounters to return.
            refresh: Reload from storage before listing.
        """
        async def body() -> dict[str, Any]:
            if refresh:
                await session.load_history()
            encounters = session.store.state.encounters
            return {
                "status": "ok",
                "total": len(encounters),
                "encounters": [
                    {
                        **e.to_dict(),
                        "location_label": format_location(e.location),
                        "duration_label": format_duration(e.duration) if e.duration is not None else None,
                    }
                    for e in encounters[: max(limit, 0)]
                ],
            }

        return await runner.run("encounter_history", {"limit": limit, "refresh": refresh}, body)

    @mcp.tool
    async def start_recording(ctx: Context) -> str:
        """Start (or keep) the recording timer."""
        async def body() -> dict[str, Any]:
            state = await session.start_recording()
            return {"status": "recording", "duration": format_duration(state.duration)}

        return await runner.run("start_recording", None, body)

    @mcp.tool
    async def stop_recording(ctx: Context, audio_url: str = "") -> str:
        """Stop the recording timer, optionally attaching the audio artifact.

        Args:
            audio_url: Where the recorded audio was uploaded.
        """
        async def body() -> dict[str, Any]:
            state = await session.stop_recording(audio_url or None)
            return {
                "status": "stopped",
                "duration": format_duration(state.duration),
                "audio_url": state.audio_url,
            }

        return await runner.run("stop_recording", {"has_audio": bool(audio_url)}, body)
