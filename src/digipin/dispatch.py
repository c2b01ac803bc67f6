"""Emergency dispatch simulation.

A run is an async generator of *patches*: dicts that are shallow-merged, in
order, onto an empty :class:`~digipin.models.DispatchState`. ``logs`` patches
always carry the full log to date. Each step emits one patch and then awaits
``clock.sleep`` before the next, so :meth:`DispatchRun.cancel` (or cancelling the
task consuming it) abandons the pending delay and stops all further output.
"""
from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Tuple

from digipin import config
from digipin.intelligence import KM_PER_DEGREE, LocationIntelligenceEngine
from digipin.models import Coordinates, DispatchState, EmergencyUnit, LogEntry, UnitStatus
from digipin.roster import DEFAULT_ROSTER

logger = logging.getLogger(__name__)

FAILURE_MARKER = "SEARCH COMPLETE"
PROTOTYPE_UNIT_ID = "PROTO-1"
PROTOTYPE_STATION = "Prototype Local Response Unit"

Patch = Dict[str, Any]


class Clock(Protocol):
    async def sleep(self, seconds: float) -> None: ...

    def now(self) -> datetime: ...


class SystemClock:
    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def now(self) -> datetime:
        return datetime.now()


class IncidentSink(Protocol):
    def record(self, requester_id: str, emergency_type: str, incident: Coordinates) -> None: ...


@dataclass(frozen=True)
class DispatchConfig:
    roster: Tuple[EmergencyUnit, ...] = DEFAULT_ROSTER
    dispatch_radius_km: float = 15.0
    call_delay: float = 1.5
    search_delay: float = 2.0
    progress_delay: float = 2.0
    progress_jitter: float = 2.5
    arrival_delay: float = 2.0
    route_offset: float = 0.01
    synthesize_prototypes: bool = True

    @classmethod
    def from_env(cls, roster: Sequence[EmergencyUnit] = DEFAULT_ROSTER) -> "DispatchConfig":
        base = cls(roster=tuple(roster), dispatch_radius_km=config.DISPATCH_RADIUS_KM)
        return base.scaled(config.PACING_SCALE)

    def scaled(self, factor: float) -> "DispatchConfig":
        return replace(
            self,
            call_delay=self.call_delay * factor,
            search_delay=self.search_delay * factor,
            progress_delay=self.progress_delay * factor,
            progress_jitter=self.progress_jitter * factor,
            arrival_delay=self.arrival_delay * factor,
        )


def initial_eta(distance_km: float) -> int:
    return math.floor(distance_km * 1.5) + 2


def _clamped(latitude: float, longitude: float) -> Coordinates:
    latitude = min(90.0, max(-90.0, latitude))
    longitude = (longitude + 180.0) % 360.0 - 180.0
    return Coordinates(latitude=latitude, longitude=longitude)


class DispatchRun:
    """One simulation run. Iterate it for patches; ``state`` tracks the merged view."""

    def __init__(self, steps: AsyncGenerator[Patch, None]) -> None:
        self._steps = steps
        self._pending: Optional[asyncio.Task] = None
        self.state = DispatchState()
        self.cancelled = False

    def __aiter__(self) -> "DispatchRun":
        return self

    async def _next_step(self) -> Optional[Patch]:
        try:
            return await self._steps.__anext__()
        except StopAsyncIteration:
            return None

    async def __anext__(self) -> Patch:
        if self.cancelled:
            raise StopAsyncIteration
        self._pending = asyncio.ensure_future(self._next_step())
        try:
            patch = await self._pending
        except asyncio.CancelledError:
            if self.cancelled:
                raise StopAsyncIteration
            raise
        finally:
            self._pending = None
        if patch is None or self.cancelled:
            raise StopAsyncIteration
        self.state = self.state.merge(patch)
        return patch

    async def cancel(self) -> None:
        """Stop the run at any point, abandoning a pending delay. No further patches follow."""
        self.cancelled = True
        pending = self._pending
        if pending is not None and not pending.done():
            pending.cancel()
            await asyncio.wait({pending})
        await self._steps.aclose()

    @property
    def failed(self) -> bool:
        return self.state.status is None and any(FAILURE_MARKER in entry.message for entry in self.state.logs)


class DispatchSimulator:
    def __init__(
        self,
        dispatch_config: Optional[DispatchConfig] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        sink: Optional[IncidentSink] = None,
    ) -> None:
        self.config = dispatch_config or DispatchConfig()
        self.clock = clock or SystemClock()
        self.rng = rng
        self.sink = sink
        self.engine = LocationIntelligenceEngine()

    def start(self, incident: Coordinates, emergency_type: str, requester_id: Optional[str] = None) -> DispatchRun:
        # Each run draws from its own generator, seeded from the injected one when given.
        rng = random.Random(self.rng.random()) if self.rng is not None else random.Random()
        return DispatchRun(self._run(incident, emergency_type, requester_id, rng))

    def _log(self, logs: List[LogEntry], message: str, log_type: str = "info") -> Tuple[LogEntry, ...]:
        logs.append(LogEntry(timestamp=self.clock.now().strftime("%H:%M:%S"), message=message, type=log_type))
        return tuple(logs)

    async def _record_incident(self, logs: List[LogEntry], requester_id: Optional[str], emergency_type: str, incident: Coordinates) -> None:
        if requester_id is None:
            self._log(logs, "User not logged in, incident will not be saved to account.")
            return
        if self.sink is None:
            self._log(logs, "Incident logging unavailable, incident will not be saved to account.")
            return
        try:
            await asyncio.to_thread(self.sink.record, requester_id, emergency_type, incident)
        except Exception as exc:
            logger.warning("Failed to log incident for %s: %s", requester_id, exc)
            self._log(logs, "Could not log incident. Continuing with dispatch.", "warning")
        else:
            self._log(logs, "Incident logged to your account.")

    def _prototype_unit(self, incident: Coordinates, unit_type: str, rng: random.Random) -> EmergencyUnit:
        radius_deg = self.config.dispatch_radius_km / KM_PER_DEGREE
        w = radius_deg * math.sqrt(rng.random())
        t = 2 * math.pi * rng.random()
        cos_lat = max(math.cos(math.radians(incident.latitude)), 1e-6)
        location = _clamped(
            incident.latitude + w * math.sin(t),
            incident.longitude + w * math.cos(t) / cos_lat,
        )
        return EmergencyUnit(unit_id=PROTOTYPE_UNIT_ID, unit_type=unit_type, location=location, station=PROTOTYPE_STATION)

    def _route(self, origin: Coordinates, incident: Coordinates) -> Tuple[Coordinates, ...]:
        offset = self.config.route_offset
        midpoint = _clamped(
            (origin.latitude + incident.latitude) / 2 + offset,
            (origin.longitude + incident.longitude) / 2 - offset,
        )
        return (origin, midpoint, incident)

    def _select_unit(self, incident: Coordinates, unit_type: Optional[str], logs: List[LogEntry], rng: random.Random) -> Tuple[Optional[EmergencyUnit], float]:
        cfg = self.config
        if unit_type is None:
            return None, 0.0

        best = self.engine.nearest_unit(unit_type, incident, cfg.roster)
        if best is not None and best[1] <= cfg.dispatch_radius_km:
            self._log(logs, "Local unit found within dispatch radius. Dispatching now.", "success")
            return best

        if not cfg.synthesize_prototypes:
            return None, 0.0

        self._log(logs, "No registered units nearby. Generating a prototype local response unit...", "warning")
        unit = self._prototype_unit(incident, unit_type, rng)
        return unit, self.engine.haversine_km(incident, unit.location)

    async def _run(self, incident: Coordinates, emergency_type: str, requester_id: Optional[str], rng: random.Random) -> AsyncIterator[Patch]:
        cfg = self.config
        logs: List[LogEntry] = []

        await self._record_incident(logs, requester_id, emergency_type, incident)
        yield {"logs": self._log(logs, f"CALL RECEIVED: {emergency_type} Request", "warning")}

        await self.clock.sleep(cfg.call_delay)
        yield {"logs": self._log(logs, "Searching for nearest unit..."), "status": UnitStatus.DISPATCHING}

        unit_type = self.engine.unit_type_for(emergency_type)
        await self.clock.sleep(cfg.search_delay)
        unit, distance = self._select_unit(incident, unit_type, logs, rng)

        if unit is None:
            logger.warning("No %s unit available for incident at %s", emergency_type, incident)
            self._log(logs, f"{FAILURE_MARKER}: no {emergency_type} units available within {cfg.dispatch_radius_km:g} km.", "warning")
            self._log(logs, "CRITICAL ERROR: Could not dispatch any unit.", "warning")
            yield {
                "logs": self._log(logs, "Please try contacting emergency services through other means immediately.", "warning"),
                "status": None,
                "unit": None,
            }
            return

        eta = initial_eta(distance)
        logger.info("Dispatching %s to %s (%.2f km, ETA %d min)", unit.unit_id, incident, distance, eta)
        message = (
            f"UNIT {unit.unit_id} ({unit.unit_type}) from {unit.station} DISPATCHED. "
            f"DISTANCE: {distance:.2f} km. INITIAL ETA: {eta} MIN."
        )
        yield {
            "unit": unit,
            "logs": self._log(logs, message),
            "route": self._route(unit.location, incident),
            "eta": eta,
            "status": UnitStatus.EN_ROUTE,
            "distance": distance,
        }

        while eta > 0:
            await self.clock.sleep(cfg.progress_delay + rng.random() * cfg.progress_jitter)
            eta = max(0, eta - rng.randint(1, 2))
            if eta > 0:
                self._log(logs, f"Unit progressing, new ETA: {eta} min.", "route")
            yield {"logs": tuple(logs), "eta": eta}

        await self.clock.sleep(cfg.arrival_delay)
        yield {"logs": self._log(logs, "UNIT HAS ARRIVED. STATUS: ON SCENE.", "success"), "eta": 0, "status": UnitStatus.ON_SCENE}
