"""Reverse geocoders: Nominatim over HTTP and an offline state lookup."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from kyr.domains.rights.domain_logic.content import STATE_CODES_BY_NAME
from kyr.domains.rights.models import Place

logger = logging.getLogger(__name__)

DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org"

_CITY_KEYS = ("city", "town", "village", "hamlet", "suburb")


class GeocodingError(RuntimeError):
    """The geocoding service failed or returned something unusable."""


class NominatimGeocoder:
    """Reverse geocoding against a Nominatim instance.

    Nominatim's usage policy requires an identifying User-Agent.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_NOMINATIM_URL,
        user_agent: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not user_agent:
            raise ValueError("user_agent is required")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def reverse(self, latitude: float, longitude: float) -> Place:
        try:
            resp = await self._client.get(
                "/reverse",
                params={
                    "format": "jsonv2",
                    "lat": f"{latitude:.6f}",
                    "lon": f"{longitude:.6f}",
                    "zoom": 10,
                    "addressdetails": 1,
                },
            )
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise GeocodingError(f"Nominatim request failed: {type(exc).__name__}") from exc

        if resp.status_code != 200:
            raise GeocodingError(f"Nominatim returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise GeocodingError("Nominatim returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise GeocodingError("Nominatim returned an unexpected payload")
        if "error" in data:
            raise GeocodingError(f"Nominatim error: {data['error']}")

        return _place_from_address(data.get("address") or {})


def _place_from_address(address: dict[str, Any]) -> Place:
    city = next((address[k] for k in _CITY_KEYS if address.get(k)), None)

    state: str | None = None
    iso = address.get("ISO3166-2-lvl4") or ""
    if iso.startswith("US-"):
        state = iso[3:]
    elif address.get("state"):
        name = address["state"]
        state = STATE_CODES_BY_NAME.get(name.lower(), name)
    return Place(city=city, state=state)


# (code, min_lat, max_lat, min_lon, max_lon), checked in order.
_STATE_BOXES: tuple[tuple[str, float, float, float, float], ...] = (
    ("CA", 32.5, 42.0, -124.4, -114.1),
    ("TX", 25.8, 31.0, -106.6, -93.5),
    ("NY", 40.5, 45.0, -79.8, -71.8),
    ("DC", 38.8, 39.7, -77.1, -76.9),
    ("FL", 25.1, 31.0, -87.6, -80.0),
)


class BoundingBoxGeocoder:
    """Offline approximation: state from a handful of bounding boxes, no city.

    Coordinates outside every box resolve to an empty place.
    """

    async def reverse(self, latitude: float, longitude: float) -> Place:
        for code, min_lat, max_lat, min_lon, max_lon in _STATE_BOXES:
            if min_lat <= latitude <= max_lat and min_lon <= longitude <= max_lon:
                return Place(state=code)
        return Place()
