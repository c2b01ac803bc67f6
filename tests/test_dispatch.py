import asyncio
import random
from datetime import datetime

import pytest

from digipin.dispatch import FAILURE_MARKER, PROTOTYPE_UNIT_ID, DispatchConfig, DispatchSimulator
from digipin.models import Coordinates, EmergencyUnit, UnitStatus
from digipin.roster import DEFAULT_ROSTER


class FakeClock:
    def __init__(self) -> None:
        self.sleeps = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        await asyncio.sleep(0)

    def now(self) -> datetime:
        return datetime(2024, 5, 1, 9, 30, 15)


class GatedClock(FakeClock):
    """Returns immediately for the first ``free`` sleeps, then blocks until cancelled."""

    def __init__(self, free: int) -> None:
        super().__init__()
        self.free = free
        self.pending = 0

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if len(self.sleeps) <= self.free:
            await asyncio.sleep(0)
            return
        self.pending += 1
        try:
            await asyncio.Event().wait()
        finally:
            self.pending -= 1


class RecordingSink:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = []

    def record(self, requester_id: str, emergency_type: str, incident: Coordinates) -> None:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.calls.append((requester_id, emergency_type, incident))


def _simulator(clock=None, **overrides) -> DispatchSimulator:
    return DispatchSimulator(DispatchConfig(**overrides), clock=clock or FakeClock(), rng=random.Random(42))


async def _collect(run) -> list:
    return [patch async for patch in run]


def _unit(unit_id: str) -> EmergencyUnit:
    return next(u for u in DEFAULT_ROSTER if u.unit_id == unit_id)


def test_incident_on_top_of_unit_dispatches_with_minimum_eta() -> None:
    unit = _unit("AMB-DL1")
    run = _simulator().start(unit.location, "Ambulance")

    patches = asyncio.run(_collect(run))
    first_unit = next(p for p in patches if p.get("unit") is not None)

    assert first_unit["unit"] == unit
    assert first_unit["distance"] == pytest.approx(0.0, abs=1e-9)
    assert first_unit["status"] is UnitStatus.EN_ROUTE
    assert first_unit["eta"] == 2
    assert len(first_unit["route"]) == 3
    assert first_unit["route"][0] == unit.location
    assert first_unit["route"][-1] == unit.location
    assert run.state.status is UnitStatus.ON_SCENE
    assert run.state.eta == 0


def test_run_emits_expected_sequence_and_pacing() -> None:
    clock = FakeClock()
    incident = Coordinates(28.6315, 77.2167)
    run = _simulator(clock).start(incident, "Firefighter")

    patches = asyncio.run(_collect(run))

    assert patches[0]["logs"][-1].message == "CALL RECEIVED: Firefighter Request"
    assert patches[1]["status"] is UnitStatus.DISPATCHING
    assert patches[2]["unit"].unit_id == "ENG-DL1"
    assert patches[-1]["status"] is UnitStatus.ON_SCENE

    etas = [p["eta"] for p in patches if "eta" in p]
    assert etas == sorted(etas, reverse=True)
    assert etas[-1] == 0

    assert clock.sleeps[:2] == [1.5, 2.0]
    assert clock.sleeps[-1] == 2.0
    assert all(2.0 <= s <= 4.5 for s in clock.sleeps[2:-1])

    # Each logs patch carries the full log so far.
    log_patches = [p["logs"] for p in patches if "logs" in p]
    for before, after in zip(log_patches, log_patches[1:]):
        assert after[: len(before)] == before
    assert all(entry.timestamp == "09:30:15" for entry in run.state.logs)


def test_prototype_unit_is_synthesized_when_no_unit_in_radius() -> None:
    incident = Coordinates(26.9124, 75.7873)  # Jaipur, no roster units nearby
    run = _simulator().start(incident, "Police")

    patches = asyncio.run(_collect(run))
    unit = run.state.unit

    assert unit.unit_id == PROTOTYPE_UNIT_ID
    assert unit.unit_type == "Police"
    assert run.state.distance <= 15.5
    assert run.state.status is UnitStatus.ON_SCENE
    assert len(patches) < 40
    assert any("prototype" in entry.message for entry in run.state.logs)


def test_run_fails_when_no_unit_can_be_found() -> None:
    run = _simulator(roster=(), synthesize_prototypes=False).start(Coordinates(0.0, 0.0), "Ambulance")

    patches = asyncio.run(_collect(run))

    assert patches[-1]["status"] is None
    assert patches[-1]["unit"] is None
    assert run.failed
    assert any(FAILURE_MARKER in entry.message for entry in run.state.logs)
    assert all("eta" not in p for p in patches)


def test_unknown_emergency_type_fails() -> None:
    run = _simulator().start(Coordinates(28.6, 77.2), "Coast Guard")

    asyncio.run(_collect(run))

    assert run.failed
    assert run.state.unit is None


def test_incident_is_logged_to_sink() -> None:
    sink = RecordingSink()
    incident = Coordinates(19.043, 72.8633)
    sim = DispatchSimulator(DispatchConfig(), clock=FakeClock(), rng=random.Random(1), sink=sink)

    run = sim.start(incident, "Ambulance", requester_id="user-1")
    asyncio.run(_collect(run))

    assert sink.calls == [("user-1", "Ambulance", incident)]
    assert run.state.logs[0].message == "Incident logged to your account."


def test_sink_failure_does_not_abort_run() -> None:
    sim = DispatchSimulator(DispatchConfig(), clock=FakeClock(), rng=random.Random(1), sink=RecordingSink(fail=True))

    run = sim.start(Coordinates(19.043, 72.8633), "Ambulance", requester_id="user-1")
    asyncio.run(_collect(run))

    assert run.state.logs[0].type == "warning"
    assert "Could not log incident" in run.state.logs[0].message
    assert run.state.status is UnitStatus.ON_SCENE


def test_anonymous_run_is_not_logged() -> None:
    sink = RecordingSink()
    sim = DispatchSimulator(DispatchConfig(), clock=FakeClock(), rng=random.Random(1), sink=sink)

    run = sim.start(Coordinates(19.043, 72.8633), "Ambulance")
    asyncio.run(_collect(run))

    assert sink.calls == []
    assert "not logged in" in run.state.logs[0].message


def test_cancel_after_en_route_stops_emissions() -> None:
    clock = FakeClock()
    incident = Coordinates(28.5, 77.3)

    async def scenario():
        run = _simulator(clock).start(incident, "Ambulance")
        seen = []
        async for patch in run:
            seen.append(patch)
            if patch.get("status") is UnitStatus.EN_ROUTE:
                break
        sleeps_at_cancel = len(clock.sleeps)
        await run.cancel()
        rest = [patch async for patch in run]
        return run, seen, sleeps_at_cancel, rest

    run, seen, sleeps_at_cancel, rest = asyncio.run(scenario())

    assert seen[-1]["status"] is UnitStatus.EN_ROUTE
    assert rest == []
    assert len(clock.sleeps) == sleeps_at_cancel
    assert run.cancelled
    assert run.state.status is UnitStatus.EN_ROUTE


def test_cancelling_consumer_task_abandons_pending_delay() -> None:
    clock = GatedClock(free=2)

    async def scenario():
        run = _simulator(clock).start(_unit("POL-DL1").location, "Police")
        seen = []

        async def consume():
            async for patch in run:
                seen.append(patch)

        task = asyncio.create_task(consume())
        while clock.pending == 0:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        with pytest.raises(StopAsyncIteration):
            await run.__anext__()
        return seen

    seen = asyncio.run(scenario())

    assert len(seen) == 3
    assert seen[-1]["status"] is UnitStatus.EN_ROUTE
    assert clock.pending == 0
    assert len(clock.sleeps) == 3


def test_cancel_from_another_task_abandons_pending_delay() -> None:
    clock = GatedClock(free=2)

    async def scenario():
        run = _simulator(clock).start(_unit("POL-DL1").location, "Police")
        seen = []

        async def consume():
            async for patch in run:
                seen.append(patch)

        task = asyncio.create_task(consume())
        while clock.pending == 0:
            await asyncio.sleep(0)
        await run.cancel()
        await task
        rest = [patch async for patch in run]
        return run, seen, rest

    run, seen, rest = asyncio.run(scenario())

    assert len(seen) == 3
    assert rest == []
    assert clock.pending == 0
    assert len(clock.sleeps) == 3
    assert run.cancelled
    assert run.state.status is UnitStatus.EN_ROUTE
    assert run.state.eta == 2


def test_injected_rng_seeds_each_run_separately() -> None:
    incident = Coordinates(26.9124, 75.7873)

    def prototype_location(sim: DispatchSimulator) -> Coordinates:
        run = sim.start(incident, "Police")
        asyncio.run(_collect(run))
        return run.state.unit.location

    first, second = _simulator(), _simulator()
    assert prototype_location(first) == prototype_location(second)

    # Later runs get their own seed drawn from the injected generator.
    assert prototype_location(first) != prototype_location(_simulator())


def test_runs_are_independent() -> None:
    sim = _simulator()
    first = sim.start(_unit("AMB-KA1").location, "Ambulance")
    second = sim.start(_unit("ENG-WB1").location, "Firefighter")

    async def scenario():
        await _collect(first)
        await _collect(second)

    asyncio.run(scenario())

    assert first.state.unit.unit_id == "AMB-KA1"
    assert second.state.unit.unit_id == "ENG-WB1"
    assert all("Firefighter" not in entry.message for entry in first.state.logs)


def test_paced_config_scales_every_delay() -> None:
    cfg = DispatchConfig().scaled(0)

    assert (cfg.call_delay, cfg.search_delay, cfg.progress_delay, cfg.progress_jitter, cfg.arrival_delay) == (0, 0, 0, 0, 0)
    assert cfg.dispatch_radius_km == 15.0
