from __future__ import annotations

from typing import Tuple

from digipin.models import Coordinates, EmergencyUnit


def _unit(unit_id: str, unit_type: str, lat: float, lon: float, station: str) -> EmergencyUnit:
    return EmergencyUnit(unit_id=unit_id, unit_type=unit_type, location=Coordinates(lat, lon), station=station)


DEFAULT_ROSTER: Tuple[EmergencyUnit, ...] = (
    # Delhi
    _unit("AMB-DL1", "Ambulance", 28.5665, 77.2105, "AIIMS Hospital, Delhi"),
    _unit("POL-DL1", "Police", 28.6328, 77.2195, "Connaught Place Police Station"),
    _unit("ENG-DL1", "Fire Truck", 28.6324, 77.2170, "Delhi Fire Service HQ, CP"),
    _unit("AMB-DL2", "Ambulance", 28.7041, 77.1025, "Max Hospital, Pitampura"),
    _unit("POL-DL2", "Police", 28.5273, 77.2066, "Saket Police Station"),
    # Mumbai
    _unit("AMB-MH1", "Ambulance", 19.043, 72.8633, "Sion Hospital, Mumbai"),
    _unit("POL-MH1", "Police", 18.943, 72.835, "Colaba Police Station"),
    _unit("ENG-MH1", "Fire Truck", 19.076, 72.8777, "Bandra Fire Station"),
    _unit("AMB-MH2", "Ambulance", 19.119, 72.847, "Nanavati Hospital, Vile Parle"),
    _unit("POL-MH2", "Police", 19.138, 72.835, "Andheri Police Station"),
    # Bangalore
    _unit("AMB-KA1", "Ambulance", 12.9716, 77.5946, "Victoria Hospital, Bangalore"),
    _unit("POL-KA1", "Police", 12.9784, 77.5919, "Cubbon Park Police Station"),
    _unit("ENG-KA1", "Fire Truck", 12.9698, 77.5852, "High Grounds Fire Station"),
    _unit("AMB-KA2", "Ambulance", 13.035, 77.597, "MS Ramaiah Hospital"),
    # Kolkata
    _unit("AMB-WB1", "Ambulance", 22.5448, 88.3426, "SSKM Hospital, Kolkata"),
    _unit("POL-WB1", "Police", 22.5697, 88.3697, "Lalbazar Police HQ"),
    _unit("ENG-WB1", "Fire Truck", 22.564, 88.343, "Fire Service HQ, Taltala"),
)
