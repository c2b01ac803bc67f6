from __future__ import annotations

import math
from typing import Iterable, List, Optional, Tuple

from digipin.models import Coordinates, EmergencyUnit

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.32

UNIT_TYPE_FOR_EMERGENCY = {
    "Ambulance": "Ambulance",
    "Firefighter": "Fire Truck",
    "Police": "Police",
}


class LocationIntelligenceEngine:
    """Great-circle distance and nearest-unit selection over a unit roster."""

    @staticmethod
    def haversine_km(origin: Coordinates, target: Coordinates) -> float:
        lat1, lon1 = math.radians(origin.latitude), math.radians(origin.longitude)
        lat2, lon2 = math.radians(target.latitude), math.radians(target.longitude)
        dlat = lat2 - lat1
        dlon = lon2 - lon1

        a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        # Rounding can push ``a`` just past 1 for antipodal points.
        a = min(1.0, max(0.0, a))
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return EARTH_RADIUS_KM * c

    @staticmethod
    def unit_type_for(emergency_type: str) -> Optional[str]:
        return UNIT_TYPE_FOR_EMERGENCY.get(emergency_type)

    def rank_units(
        self,
        unit_type: str,
        incident_location: Coordinates,
        units: Iterable[EmergencyUnit],
    ) -> List[Tuple[EmergencyUnit, float]]:
        ranked = [
            (unit, self.haversine_km(incident_location, unit.location))
            for unit in units
            if unit.unit_type == unit_type
        ]
        # Stable sort keeps roster order for ties.
        ranked.sort(key=lambda item: item[1])
        return ranked

    def nearest_unit(
        self,
        unit_type: str,
        incident_location: Coordinates,
        units: Iterable[EmergencyUnit],
    ) -> Optional[Tuple[EmergencyUnit, float]]:
        ranked = self.rank_units(unit_type, incident_location, units)
        return ranked[0] if ranked else None
