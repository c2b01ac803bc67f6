from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise ValueError("Coordinates must be finite numbers")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class EmergencyUnit:
    unit_id: str
    unit_type: str
    location: Coordinates
    station: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.unit_id,
            "type": self.unit_type,
            "lat": self.location.latitude,
            "lon": self.location.longitude,
            "station": self.station,
        }


class UnitStatus(str, Enum):
    DISPATCHING = "Dispatching"
    EN_ROUTE = "En Route"
    # Defined for consumers that branch on it; nothing emits it yet.
    REROUTING = "Rerouting"
    ON_SCENE = "On Scene"


LOG_TYPES = ("info", "route", "success", "warning")


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    message: str
    type: str = "info"

    def __post_init__(self) -> None:
        if self.type not in LOG_TYPES:
            raise ValueError(f"Unknown log type: {self.type}")


@dataclass(frozen=True)
class DispatchState:
    """Snapshot of a dispatch run, built by merging emitted patches in order."""

    unit: Optional[EmergencyUnit] = None
    eta: Optional[int] = None
    route: Tuple[Coordinates, ...] = ()
    logs: Tuple[LogEntry, ...] = ()
    status: Optional[UnitStatus] = None
    distance: Optional[float] = None

    def merge(self, patch: Dict[str, Any]) -> "DispatchState":
        return replace(self, **patch)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit": self.unit.to_dict() if self.unit else None,
            "eta": self.eta,
            "route": [[p.latitude, p.longitude] for p in self.route],
            "logs": [asdict(entry) for entry in self.logs],
            "status": self.status.value if self.status else None,
            "distance": self.distance,
        }


def patch_to_dict(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Render only the keys present in a patch, in wire form."""
    full = DispatchState().merge(patch).to_dict()
    return {key: full[key] for key in patch}


@dataclass(frozen=True)
class SelectedPlace:
    digi_pin: str
    display_name: str
    lat: float
    lon: float
    place_class: Optional[str] = None
    place_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectedPlace":
        return cls(
            digi_pin=data["digi_pin"],
            display_name=data["display_name"],
            lat=float(data["lat"]),
            lon=float(data["lon"]),
            place_class=data.get("place_class"),
            place_type=data.get("place_type"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Place:
    place_id: int
    display_name: str
    lat: float
    lon: float
    digi_pin: str
    place_class: str = ""
    place_type: str = ""
    importance: float = 0.0
    address: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SavedPin:
    pin_id: int
    user_id: str
    place: SelectedPlace
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.pin_id, "user_id": self.user_id, "created_at": self.created_at, **self.place.to_dict()}
