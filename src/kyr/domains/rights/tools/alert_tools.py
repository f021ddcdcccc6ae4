"""MCP tools for emergency alerts and the contacts they go to."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from kyr.domains.rights.tools.runner import ToolRunner

logger = logging.getLogger(__name__)


def register_alert_tools(mcp: FastMCP, runner: ToolRunner) -> None:
    """Register alert and contact tools on the MCP server."""
    session = runner.session

    @mcp.tool
    async def send_alert(ctx: Context, message: str = "") -> str:
        """Alert every emergency contact with the current location.

        The result distinguishes an alert that could not be sent at all
        (``success: false``) from one that went out with some failed
        deliveries (``summary.failed_sends > 0``).

        Args:
            message: Custom alert text. Defaults to a generated message with
                location and time.
        """
        async def body() -> dict[str, Any]:
            outcome = await session.send_alert(message or None)
            return {"status": "ok" if outcome.success else "error", **outcome.to_dict()}

        return await runner.run("send_alert", {"custom_message": bool(message)}, body)

    @mcp.tool
    async def add_alert_contact(
        ctx: Context,
        name: str,
        phone: str = "",
        email: str = "",
        relationship: str = "",
    ) -> str:
        """Add an emergency contact. A phone number or an email is required.

        Args:
            name: Contact's name.
            phone: Phone number for SMS alerts.
            email: Email address for email alerts.
            relationship: How the contact relates to you (e.g., 'sister').
        """
        async def body() -> dict[str, Any]:
            contact = await session.save_alert_contact(
                name, relationship=relationship, phone=phone, email=email
            )
            return {"status": "saved", "contact": contact.to_dict()}

        return await runner.run(
            "add_alert_contact", {"has_phone": bool(phone), "has_email": bool(email)}, body
        )

    @mcp.tool
    async def list_alert_contacts(ctx: Context, refresh: bool = False) -> str:
        """List emergency contacts in the order they were added.

        Args:
            refresh: Reload from storage before listing.
        """
        async def body() -> dict[str, Any]:
            if refresh:
                await session.load_alert_contacts()
            contacts = session.store.state.alert_contacts
            return {"status": "ok", "contacts": [c.to_dict() for c in contacts]}

        return await runner.run("list_alert_contacts", {"refresh": refresh}, body)

    @mcp.tool
    async def update_alert_contact(
        ctx: Context,
        contact_id: str,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        relationship: str | None = None,
    ) -> str:
        """Change an emergency contact. Omitted fields stay as they are; an
        empty string clears a phone or email.

        Args:
            contact_id: Contact to change.
            name: New name.
            phone: New phone number.
            email: New email address.
            relationship: New relationship label.
        """
        changes = {
            key: value
            for key, value in (
                ("name", name),
                ("phone", phone),
                ("email", email),
                ("relationship", relationship),
            )
            if value is not None
        }

        async def body() -> dict[str, Any]:
            contact = await session.update_alert_contact(contact_id, changes)
            return {"status": "updated", "contact": contact.to_dict()}

        return await runner.run(
            "update_alert_contact", {"contact_id": contact_id, "fields": sorted(changes)}, body
        )

    @mcp.tool
    async def remove_alert_contact(ctx: Context, contact_id: str) -> str:
        """Remove an emergency contact.

        Args:
            contact_id: Contact to remove.
        """
        async def body() -> dict[str, Any]:
            deleted = await session.delete_alert_contact(contact_id)
            return {"status": "removed" if deleted else "not_found", "contact_id": contact_id}

        return await runner.run("remove_alert_contact", {"contact_id": contact_id}, body)
