"""Location Provider: acquire a fix and enrich it with a place name."""

from __future__ import annotations

import asyncio
import logging

from kyr.domains.rights.errors import LocationError
from kyr.domains.rights.location import GeolocationSource, ReverseGeocoder
from kyr.domains.rights.models import Coordinates, Location, Place

logger = logging.getLogger(__name__)


class LocationProvider:
    """Wraps a geolocation source and a reverse geocoder.

    Acquisition failures are typed (``LocationError.kind``) so callers can
    offer a degraded path. Place resolution is enrichment only and never
    fails.

    Usage::

        provider = LocationProvider(ReportedPositionSource(), BoundingBoxGeocoder())
        coords = await provider.acquire_location()
        place = await provider.resolve_place(coords.latitude, coords.longitude)
    """

    def __init__(
        self,
        source: GeolocationSource,
        geocoder: ReverseGeocoder,
        *,
        timeout_s: float = 10.0,
        maximum_age_s: float = 60.0,
        high_accuracy: bool = True,
    ) -> None:
        self._source = source
        self._geocoder = geocoder
        self._timeout_s = timeout_s
        self._maximum_age_s = maximum_age_s
        self._high_accuracy = high_accuracy

    @property
    def source(self) -> GeolocationSource:
        return self._source

    async def aclose(self) -> None:
        close = getattr(self._geocoder, "aclose", None)
        if close is not None:
            await close()

    async def acquire_location(self) -> Coordinates:
        """Return the device position.

        Raises:
            LocationError: ``permission_denied``, ``position_unavailable``,
                ``timeout`` or ``unsupported``.
        """
        try:
            return await asyncio.wait_for(
                self._source.get_position(
                    high_accuracy=self._high_accuracy,
                    maximum_age_s=self._maximum_age_s,
                ),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Location request timed out after %.1fs", self._timeout_s)
            raise LocationError("timeout", "Location request timed out") from exc
        except LocationError as exc:
            logger.warning("Location unavailable: %s", exc.kind)
            raise

    async def resolve_place(self, latitude: float, longitude: float) -> Place:
        """City and state for the coordinates, or an empty place on any failure."""
        try:
            place = await self._geocoder.reverse(latitude, longitude)
        except Exception as exc:
            logger.warning("Place lookup failed (%s); continuing without place name", type(exc).__name__)
            return Place()
        return place if place is not None else Place()

    async def locate(self) -> Location:
        """Acquire a fix and merge in its resolved place."""
        coords = await self.acquire_location()
        place = await self.resolve_place(coords.latitude, coords.longitude)
        return Location.from_coordinates(coords, place)
