"""
Place search and reverse geocoding via OpenStreetMap Nominatim.

Search failures propagate to the caller. Reverse lookups are used only to
label a coordinate, so they degrade to ``None`` and the caller falls back to
a plain "Location at lat, lon" label.
"""

import logging
from typing import Optional

import httpx

from digipin import config
from digipin.models import Place
from digipin.pin import to_pin

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str = config.NOMINATIM_BASE,
        timeout: float = config.GEOCODER_TIMEOUT,
        user_agent: str = config.NOMINATIM_USER_AGENT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def search(self, query: str, limit: int = config.SEARCH_LIMIT) -> list[Place]:
        """Ranked places for a free-text query, each with its DigiPIN attached."""
        if not query or not query.strip():
            return []

        params = {"q": query.strip(), "format": "json", "addressdetails": 1, "limit": limit}
        response = self.client.get("/search", params=params)
        response.raise_for_status()
        results = response.json()

        places = []
        for r in results:
            try:
                lat = float(r["lat"])
                lon = float(r["lon"])
            except (KeyError, TypeError, ValueError):
                logger.info(f"Nominatim: skipping result without coordinates: {r.get('display_name')}")
                continue
            places.append(
                Place(
                    place_id=int(r.get("place_id", 0)),
                    display_name=r.get("display_name", ""),
                    lat=lat,
                    lon=lon,
                    digi_pin=to_pin(lat, lon),
                    place_class=r.get("class", ""),
                    place_type=r.get("type", ""),
                    importance=float(r.get("importance") or 0.0),
                    address=r.get("address") or {},
                )
            )
        logger.info(f"Nominatim: {len(places)} results for '{query}'")
        return places

    def reverse(self, lat: float, lon: float) -> Optional[dict]:
        """
        Reverse geocode a coordinate.

        Returns dict with display_name and, when Nominatim provides them,
        class and type. Returns None on any transport or HTTP error.
        """
        try:
            response = self.client.get("/reverse", params={"lat": lat, "lon": lon, "format": "json"})
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.warning(f"Nominatim reverse timeout for {lat},{lon}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Nominatim reverse error for {lat},{lon}: {e}")
            return None

        if not data or not data.get("display_name"):
            return None
        return {
            "display_name": data["display_name"],
            "class": data.get("class"),
            "type": data.get("type"),
        }
