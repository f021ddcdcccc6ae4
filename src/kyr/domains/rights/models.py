"""Domain models for users, encounters, alert contacts and dispatch results.

All models are frozen: the state store relies on value semantics to keep its
transitions pure and its snapshots comparable.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Literal, Mapping

from kyr.domains.rights.errors import InvalidContactError

SubscriptionStatus = Literal["free", "premium"]
Language = Literal["en", "es"]
EncounterStatus = Literal["active", "completed", "cancelled"]
ChannelOutcome = Literal["not_attempted", "sent", "failed"]

SUBSCRIPTION_STATUSES = ("free", "premium")
LANGUAGES = ("en", "es")
ENCOUNTER_STATUSES = ("active", "completed", "cancelled")


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class User:
    """A signed-in user and their preferences."""

    user_id: str
    wallet_address: str | None = None
    subscription_status: SubscriptionStatus = "free"
    preferred_language: Language = "en"
    saved_jurisdictions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id is required")
        if self.subscription_status not in SUBSCRIPTION_STATUSES:
            raise ValueError(f"Unknown subscription status: {self.subscription_status!r}")
        if self.preferred_language not in LANGUAGES:
            raise ValueError(f"Unsupported language: {self.preferred_language!r}")
        object.__setattr__(self, "saved_jurisdictions", tuple(self.saved_jurisdictions))

    @property
    def is_premium(self) -> bool:
        return self.subscription_status == "premium"


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coordinates:
    """A raw device fix."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class Place:
    """Human-readable place resolved from coordinates. Either part may be missing."""

    city: str | None = None
    state: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.city is None and self.state is None


@dataclass(frozen=True)
class Location:
    """Location snapshot attached to an encounter."""

    latitude: float
    longitude: float
    city: str | None = None
    state: str | None = None

    @classmethod
    def from_coordinates(cls, coords: Coordinates, place: Place | None = None) -> Location:
        place = place or Place()
        return cls(
            latitude=coords.latitude,
            longitude=coords.longitude,
            city=place.city,
            state=place.state,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"latitude": self.latitude, "longitude": self.longitude}
        if self.city is not None:
            data["city"] = self.city
        if self.state is not None:
            data["state"] = self.state
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Location:
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            city=data.get("city"),
            state=data.get("state"),
        )


# ---------------------------------------------------------------------------
# Encounters
# ---------------------------------------------------------------------------

_IMMUTABLE_ENCOUNTER_FIELDS = frozenset({"encounter_id", "user_id"})


@dataclass(frozen=True)
class Encounter:
    """One recorded interaction.

    Lifecycle: ``active`` -> ``completed`` (duration and summary fixed).
    ``alert_sent`` is an orthogonal flag that only ever flips to True.
    """

    encounter_id: str
    user_id: str
    timestamp: datetime
    location: Location
    recording_url: str | None = None
    summary: str | None = None
    alert_sent: bool = False
    duration: int | None = None
    status: EncounterStatus = "active"

    def __post_init__(self) -> None:
        if self.status not in ENCOUNTER_STATUSES:
            raise ValueError(f"Unknown encounter status: {self.status!r}")

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def apply(self, changes: Mapping[str, Any]) -> Encounter:
        """Return a copy with ``changes`` merged in.

        Raises:
            ValueError: If ``changes`` names an unknown or immutable field.
        """
        validate_encounter_changes(changes)
        return replace(self, **dict(changes))

    def to_dict(self) -> dict[str, Any]:
        return {
            "encounter_id": self.encounter_id,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "location": self.location.to_dict(),
            "recording_url": self.recording_url,
            "summary": self.summary,
            "alert_sent": self.alert_sent,
            "duration": self.duration,
            "status": self.status,
        }


def validate_encounter_changes(changes: Mapping[str, Any]) -> None:
    """Reject patches that name unknown fields or try to rewrite identity."""
    known = {f.name for f in fields(Encounter)}
    unknown = set(changes) - known
    if unknown:
        raise ValueError(f"Unknown encounter fields: {sorted(unknown)}")
    frozen = set(changes) & _IMMUTABLE_ENCOUNTER_FIELDS
    if frozen:
        raise ValueError(f"Encounter fields cannot be changed: {sorted(frozen)}")


# ---------------------------------------------------------------------------
# Alert contacts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContactDraft:
    """A contact as entered by the user, before it has an id.

    Validation happens here so an invalid contact never reaches storage.
    """

    name: str
    relationship: str = ""
    phone: str | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", (self.name or "").strip())
        object.__setattr__(self, "relationship", (self.relationship or "").strip())
        object.__setattr__(self, "phone", _blank_to_none(self.phone))
        object.__setattr__(self, "email", _blank_to_none(self.email))
        if not self.name:
            raise InvalidContactError("Contact name is required")
        if self.phone is None and self.email is None:
            raise InvalidContactError("Either phone or email is required")

    def with_id(self, contact_id: str) -> AlertContact:
        return AlertContact(
            id=contact_id,
            name=self.name,
            relationship=self.relationship,
            phone=self.phone,
            email=self.email,
        )


@dataclass(frozen=True)
class AlertContact(ContactDraft):
    """A trusted contact that receives emergency alerts."""

    id: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.id:
            raise InvalidContactError("Contact id is required")

    def apply(self, changes: Mapping[str, Any]) -> AlertContact:
        """Return a validated copy with ``changes`` merged in."""
        if "id" in changes:
            raise ValueError("Contact id cannot be changed")
        known = {f.name for f in fields(AlertContact)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown contact fields: {sorted(unknown)}")
        return replace(self, **dict(changes))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RecordingState:
    """Transient recording status. Replaced wholesale, never patched."""

    is_recording: bool = False
    start_time: datetime | None = None
    duration: int = 0
    audio_url: str | None = None

    @classmethod
    def inactive(cls) -> RecordingState:
        return cls()


# ---------------------------------------------------------------------------
# Dispatch results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContactDispatchResult:
    """Per-contact channel outcomes of one dispatch."""

    contact_id: str
    sms: ChannelOutcome = "not_attempted"
    email: ChannelOutcome = "not_attempted"
    error: str | None = None

    @property
    def attempts(self) -> int:
        return sum(1 for o in (self.sms, self.email) if o != "not_attempted")

    @property
    def sent(self) -> int:
        return sum(1 for o in (self.sms, self.email) if o == "sent")


@dataclass(frozen=True)
class DispatchSummary:
    """Aggregate counts for one dispatch."""

    contacts_notified: int = 0
    total_attempts: int = 0
    successful_sends: int = 0
    failed_sends: int = 0

    @classmethod
    def from_results(
        cls, contact_count: int, results: list[ContactDispatchResult]
    ) -> DispatchSummary:
        total = sum(r.attempts for r in results)
        successful = sum(r.sent for r in results)
        return cls(
            contacts_notified=contact_count,
            total_attempts=total,
            successful_sends=successful,
            failed_sends=total - successful,
        )


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of an alert dispatch.

    ``success`` says whether the dispatch was attempted at all. Partial
    delivery failure is reported through ``summary.failed_sends`` and never
    turns ``success`` false.
    """

    success: bool
    alert_id: str | None = None
    encounter_id: str | None = None
    summary: DispatchSummary = field(default_factory=DispatchSummary)
    results: tuple[ContactDispatchResult, ...] = ()
    message: str | None = None
    encounter: Encounter | None = None
    encounter_created: bool = False
    bookkeeping_error: str | None = None
    error: str | None = None
    error_message: str | None = None

    @classmethod
    def failed(cls, kind: str, message: str = "") -> DispatchOutcome:
        return cls(success=False, error=kind, error_message=message or kind)

    @property
    def partially_failed(self) -> bool:
        return self.success and self.summary.failed_sends > 0

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {
                "success": False,
                "error": self.error,
                "message": self.error_message,
            }
        return {
            "success": True,
            "alert_id": self.alert_id,
            "encounter_id": self.encounter_id,
            "encounter_created": self.encounter_created,
            "summary": asdict(self.summary),
            "results": [asdict(r) for r in self.results],
            "bookkeeping_error": self.bookkeeping_error,
        }
