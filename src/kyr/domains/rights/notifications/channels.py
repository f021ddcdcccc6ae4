"""SMS and email channel implementations.

Twilio and SendGrid are reached over their REST APIs with ``httpx``. When
credentials are not configured the dispatcher gets :class:`LoggingChannel`
instead, which records the attempt without delivering anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from kyr.domains.rights.errors import ChannelSendError
from kyr.domains.rights.notifications import NotificationChannel

if TYPE_CHECKING:
    from kyr.core.config.settings import Settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com"
SENDGRID_API_BASE = "https://api.sendgrid.com"
ALERT_EMAIL_SUBJECT = "EMERGENCY ALERT"


async def _post(client: httpx.AsyncClient, channel: str, url: str, **kwargs) -> httpx.Response:
    try:
        return await client.post(url, **kwargs)
    except (httpx.TimeoutException, httpx.TransportError) as exc:
        raise ChannelSendError(f"{channel} request failed: {type(exc).__name__}") from exc


class TwilioSmsChannel:
    """SMS through Twilio's Messages API."""

    name = "sms"

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not (account_sid and auth_token and from_number):
            raise ValueError("account_sid, auth_token and from_number are required")
        self._account_sid = account_sid
        self._from_number = from_number
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=TWILIO_API_BASE,
            timeout=timeout,
            auth=(account_sid, auth_token),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(self, recipient: str, message: str) -> None:
        resp = await _post(
            self._client,
            "twilio",
            f"/2010-04-01/Accounts/{self._account_sid}/Messages.json",
            data={"To": recipient, "From": self._from_number, "Body": message},
        )
        if resp.status_code not in (200, 201):
            detail = ""
            try:
                detail = resp.json().get("message", "")
            except ValueError:
                pass
            raise ChannelSendError(f"twilio returned HTTP {resp.status_code} {detail}".strip())


class SendGridEmailChannel:
    """Email through SendGrid's v3 mail send endpoint."""

    name = "email"

    def __init__(
        self,
        *,
        api_key: str,
        from_email: str,
        subject: str = ALERT_EMAIL_SUBJECT,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not (api_key and from_email):
            raise ValueError("api_key and from_email are required")
        self._from_email = from_email
        self._subject = subject
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=SENDGRID_API_BASE,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(self, recipient: str, message: str) -> None:
        resp = await _post(
            self._client,
            "sendgrid",
            "/v3/mail/send",
            json={
                "personalizations": [{"to": [{"email": recipient}]}],
                "from": {"email": self._from_email},
                "subject": self._subject,
                "content": [{"type": "text/plain", "value": message}],
            },
        )
        # SendGrid answers 202 Accepted on success.
        if not 200 <= resp.status_code < 300:
            raise ChannelSendError(f"sendgrid returned HTTP {resp.status_code}")


class LoggingChannel:
    """Placeholder delivery: logs the attempt and reports success.

    Recipients are not logged; ``deliveries`` keeps them in memory for
    inspection.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.deliveries: list[tuple[str, str]] = []

    async def send(self, recipient: str, message: str) -> None:
        self.deliveries.append((recipient, message))
        logger.info("Alert accepted by %s placeholder channel (no delivery configured)", self.name)


@dataclass(frozen=True)
class ChannelSet:
    sms: NotificationChannel
    email: NotificationChannel

    async def aclose(self) -> None:
        """Close any HTTP clients the channels opened themselves."""
        for channel in (self.sms, self.email):
            close = getattr(channel, "aclose", None)
            if close is not None:
                await close()


def build_channels(settings: Settings) -> ChannelSet:
    """Real channels where credentials are configured, logging placeholders elsewhere."""
    if settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_from_number:
        sms: NotificationChannel = TwilioSmsChannel(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_from_number,
        )
        logger.info("SMS alerts via Twilio")
    else:
        sms = LoggingChannel("sms")
        logger.warning("Twilio not configured; SMS alerts will only be logged")

    if settings.sendgrid_api_key and settings.alert_from_email:
        email: NotificationChannel = SendGridEmailChannel(
            api_key=settings.sendgrid_api_key,
            from_email=settings.alert_from_email,
        )
        logger.info("Email alerts via SendGrid")
    else:
        email = LoggingChannel("email")
        logger.warning("SendGrid not configured; email alerts will only be logged")

    return ChannelSet(sms=sms, email=email)
