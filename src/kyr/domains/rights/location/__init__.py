"""Location collaborators: device geolocation and reverse geocoding."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from kyr.domains.rights.models import Coordinates, Place


@runtime_checkable
class GeolocationSource(Protocol):
    """Device position fixes.

    Implementations raise ``LocationError`` with kind ``permission_denied``,
    ``position_unavailable`` or ``unsupported``. Timeouts are applied by the
    caller.
    """

    async def get_position(
        self, *, high_accuracy: bool = True, maximum_age_s: float = 60.0
    ) -> Coordinates:
        """Return the current fix, or a cached one no older than ``maximum_age_s``."""
        ...


@runtime_checkable
class ReverseGeocoder(Protocol):
    """Resolves coordinates to a city and state. May raise on any failure."""

    async def reverse(self, latitude: float, longitude: float) -> Place:
        ...
