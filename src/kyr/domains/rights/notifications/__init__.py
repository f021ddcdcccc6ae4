"""Notification channels used by the alert dispatcher."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationChannel(Protocol):
    """One delivery medium (SMS or email).

    ``send`` is fire-and-forget: it returns once the provider has accepted
    the message and raises ``ChannelSendError`` otherwise. No delivery
    receipt is modeled.
    """

    name: str

    async def send(self, recipient: str, message: str) -> None:
        ...
