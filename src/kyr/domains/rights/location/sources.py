"""Geolocation sources.

The server has no GPS of its own: the client device pushes its fixes through
the ``report_location`` tool and :class:`ReportedPositionSource` serves them
back to the orchestrators.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from kyr.domains.rights.errors import LocationError
from kyr.domains.rights.models import Coordinates

logger = logging.getLogger(__name__)


class ReportedPositionSource:
    """Serves the most recent device-reported fix.

    Usage::

        source = ReportedPositionSource()
        source.report(Coordinates(34.0522, -118.2437))
        await source.get_position(maximum_age_s=60)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._fix: Coordinates | None = None
        self._fix_at: float | None = None
        self._accuracy_m: float | None = None
        self._denied = False

    def report(self, coords: Coordinates, *, accuracy_m: float | None = None) -> None:
        """Record a fix from the device. Reporting a fix implies permission."""
        self._fix = coords
        self._fix_at = self._clock()
        self._accuracy_m = accuracy_m
        self._denied = False

    def deny(self) -> None:
        """The user refused location access; forget any cached fix."""
        self._denied = True
        self._fix = None
        self._fix_at = None
        self._accuracy_m = None

    @property
    def has_fix(self) -> bool:
        return self._fix is not None

    async def get_position(
        self, *, high_accuracy: bool = True, maximum_age_s: float = 60.0
    ) -> Coordinates:
        if self._denied:
            raise LocationError("permission_denied", "Location permission was denied")
        if self._fix is None or self._fix_at is None:
            raise LocationError("position_unavailable", "No position has been reported")
        age = self._clock() - self._fix_at
        if age > maximum_age_s:
            raise LocationError(
                "position_unavailable",
                f"Last reported position is {age:.0f}s old",
            )
        if high_accuracy and self._accuracy_m is not None and self._accuracy_m > 1000:
            logger.debug("Serving low-accuracy fix (%.0fm)", self._accuracy_m)
        return self._fix


class UnsupportedGeolocationSource:
    """Source for environments without any geolocation capability."""

    async def get_position(
        self, *, high_accuracy: bool = True, maximum_age_s: float = 60.0
    ) -> Coordinates:
        raise LocationError("unsupported", "Geolocation is not supported")
