"""Error taxonomy for the rights domain.

Every error carries a stable ``kind`` string. Tools and callers switch on the
kind rather than on the exception class so the outer surface can report
failures without importing this module.
"""

from __future__ import annotations


class RightsError(Exception):
    """Base class for rights-domain failures."""

    kind = "rights_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NotAuthenticatedError(RightsError):
    """The operation needs a signed-in user and there is none."""

    kind = "not_authenticated"


class LocationRequiredError(RightsError):
    """The operation needs a location and none could be obtained."""

    kind = "location_required"


class NoContactsError(RightsError):
    """Alert dispatch was attempted with zero contacts."""

    kind = "no_contacts"


class EncounterAlreadyActiveError(RightsError):
    """A new encounter was requested while another one is still current."""

    kind = "encounter_already_active"


class EncounterNotFoundError(RightsError):
    """No encounter with the requested id is known to the store."""

    kind = "encounter_not_found"


class EncounterNotActiveError(RightsError):
    """The encounter has already ended and cannot be ended again."""

    kind = "encounter_not_active"


class InvalidContactError(RightsError):
    """An alert contact failed validation (needs a name and a phone or email)."""

    kind = "invalid_contact"


class PremiumRequiredError(RightsError):
    """The feature is reserved for premium subscribers."""

    kind = "premium_required"


class ChannelSendError(RightsError):
    """A single notification channel attempt failed."""

    kind = "channel_send_failed"


class LocationError(RightsError):
    """Device location could not be acquired.

    ``kind`` is one of ``permission_denied``, ``position_unavailable``,
    ``timeout`` or ``unsupported``.
    """

    KINDS = ("permission_denied", "position_unavailable", "timeout", "unsupported")

    def __init__(self, kind: str, message: str = "") -> None:
        if kind not in self.KINDS:
            raise ValueError(f"Unknown location error kind: {kind!r}")
        self.kind = kind
        super().__init__(message or kind)
