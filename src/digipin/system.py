from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from digipin.history import HistoryStore
from digipin.models import Coordinates, Place, SelectedPlace
from digipin.pin import from_pin, to_pin

logger = logging.getLogger(__name__)


class PlaceProvider(Protocol):
    def search(self, query: str) -> List[Place]: ...

    def reverse(self, lat: float, lon: float) -> Optional[dict]: ...


class DigiPinService:
    """Resolves coordinates, pins and search text into labelled places."""

    def __init__(self, provider: PlaceProvider, history: Optional[HistoryStore] = None) -> None:
        self.provider = provider
        self.history = history if history is not None else HistoryStore()

    def search(self, query: str) -> List[Place]:
        if not query.strip():
            return []
        return self.provider.search(query)

    def generate_for_coords(self, lat: float, lon: float) -> SelectedPlace:
        location = Coordinates(lat, lon)
        display_name = f"Location at {lat:.4f}, {lon:.4f}"
        place_class = place_type = None

        try:
            details = self.provider.reverse(location.latitude, location.longitude)
        except Exception as exc:
            logger.error("Reverse geocoding failed for %s,%s: %s", lat, lon, exc)
            details = None

        if details:
            display_name = details.get("display_name") or display_name
            place_class = details.get("class")
            place_type = details.get("type")

        place = SelectedPlace(
            digi_pin=to_pin(lat, lon),
            display_name=display_name,
            lat=lat,
            lon=lon,
            place_class=place_class,
            place_type=place_type,
        )
        self.history.add(place)
        return place

    def locate_pin(self, pin: str) -> SelectedPlace:
        center = from_pin(pin)
        return self.generate_for_coords(center.latitude, center.longitude)
