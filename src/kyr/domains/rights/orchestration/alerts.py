"""Alert Dispatcher: notify every contact and report a partial-success summary.

``success`` on the returned outcome only says whether the dispatch was
attempted. Individual channel failures are caught, recorded per contact and
counted in ``summary.failed_sends``; they never abort the dispatch.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Sequence

from kyr.core.storage.gateway import PersistenceGateway
from kyr.domains.rights.domain_logic.formatting import build_alert_message
from kyr.domains.rights.models import (
    AlertContact,
    ChannelOutcome,
    ContactDispatchResult,
    DispatchOutcome,
    DispatchSummary,
    Encounter,
    Location,
)
from kyr.domains.rights.notifications import NotificationChannel
from kyr.domains.rights.notifications.channels import ChannelSet

if TYPE_CHECKING:
    from kyr.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

DEFAULT_USER_LABEL = "Your contact"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class AlertDispatcher:
    """Fans an emergency alert out to all contacts over SMS and email.

    Usage::

        dispatcher = AlertDispatcher(repository, build_channels(settings))
        outcome = await dispatcher.dispatch_alert("u1", contacts, location)
        if outcome.success and outcome.summary.failed_sends:
            ...  # partial delivery
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        channels: ChannelSet,
        *,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._gateway = gateway
        self._channels = channels
        self._audit = audit
        self._clock = clock
        self._id_factory = id_factory

    async def dispatch_alert(
        self,
        user_id: str,
        contacts: Sequence[AlertContact],
        location: Location | None,
        encounter_id: str | None = None,
        message: str | None = None,
        *,
        user_label: str = DEFAULT_USER_LABEL,
    ) -> DispatchOutcome:
        """Send one alert to every contact.

        Args:
            user_id: The user raising the alert.
            contacts: Recipients; each is tried on every channel it has.
            location: Where the user is. Required.
            encounter_id: Existing encounter to flag ``alert_sent``; when
                omitted a new encounter is created with the flag set.
            message: Overrides the generated alert text.
            user_label: How the user is named in the generated text.
        """
        started = time.perf_counter()

        if not contacts:
            logger.warning("Alert not dispatched: no contacts configured")
            return self._finish(
                user_id, DispatchOutcome.failed("no_contacts", "No alert contacts configured"), [], started
            )
        if location is None:
            logger.warning("Alert not dispatched: no location")
            return self._finish(
                user_id,
                DispatchOutcome.failed("location_required", "Location is required to send alerts"),
                [c.id for c in contacts],
                started,
            )

        alert_id = self._id_factory()
        now = self._clock()

        created, encounter_id, bookkeeping_error = await self._record_alert(
            user_id, location, encounter_id, now
        )

        text = message or build_alert_message(user_label, location, now)

        results = await asyncio.gather(*(self._notify(contact, text) for contact in contacts))
        summary = DispatchSummary.from_results(len(contacts), list(results))

        logger.info(
            "Alert %s dispatched to %d contacts: %d/%d sends succeeded",
            alert_id,
            summary.contacts_notified,
            summary.successful_sends,
            summary.total_attempts,
        )
        outcome = DispatchOutcome(
            success=True,
            alert_id=alert_id,
            encounter_id=encounter_id,
            summary=summary,
            results=tuple(results),
            message=text,
            encounter=created,
            encounter_created=created is not None,
            bookkeeping_error=bookkeeping_error,
        )
        return self._finish(user_id, outcome, [c.id for c in contacts], started)

    async def _record_alert(
        self,
        user_id: str,
        location: Location,
        encounter_id: str | None,
        now: datetime,
    ) -> tuple[Encounter | None, str | None, str | None]:
        """Create or flag the encounter. Failures are logged, never raised."""
        if encounter_id is None:
            encounter = Encounter(
                encounter_id=self._id_factory(),
                user_id=user_id,
                timestamp=now,
                location=location,
                alert_sent=True,
            )
            try:
                await self._gateway.create_encounter(encounter)
            except Exception as exc:
                logger.exception("Could not record encounter for alert; sending anyway")
                return None, None, f"create_encounter failed: {exc}"
            return encounter, encounter.encounter_id, None

        try:
            await self._gateway.update_encounter(encounter_id, {"alert_sent": True})
        except Exception as exc:
            logger.exception("Could not flag encounter %s as alerted; sending anyway", encounter_id)
            return None, encounter_id, f"update_encounter failed: {exc}"
        return None, encounter_id, None

    async def _notify(self, contact: AlertContact, text: str) -> ContactDispatchResult:
        attempts = []
        if contact.phone:
            attempts.append(self._attempt("sms", self._channels.sms, contact.phone, text))
        if contact.email:
            attempts.append(self._attempt("email", self._channels.email, contact.email, text))
        outcomes = await asyncio.gather(*attempts)

        sms: ChannelOutcome = "not_attempted"
        email: ChannelOutcome = "not_attempted"
        errors: list[str] = []
        for channel_name, outcome, error in outcomes:
            if channel_name == "sms":
                sms = outcome
            else:
                email = outcome
            if error:
                errors.append(f"{channel_name}: {error}")

        return ContactDispatchResult(
            contact_id=contact.id,
            sms=sms,
            email=email,
            error="; ".join(errors) or None,
        )

    @staticmethod
    async def _attempt(
        slot: str, channel: NotificationChannel, recipient: str, text: str
    ) -> tuple[str, ChannelOutcome, str | None]:
        try:
            await channel.send(recipient, text)
        except Exception as exc:
            logger.warning("%s send failed: %s", slot, type(exc).__name__)
            return slot, "failed", str(exc) or type(exc).__name__
        return slot, "sent", None

    def _finish(
        self,
        user_id: str,
        outcome: DispatchOutcome,
        contact_ids: list[str],
        started: float,
    ) -> DispatchOutcome:
        if self._audit is not None:
            self._audit.log_dispatch(
                user_id=user_id,
                outcome=outcome,
                contact_ids=contact_ids,
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        return outcome
