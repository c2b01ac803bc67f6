from __future__ import annotations

import asyncio
import logging

from digipin import config
from digipin.dispatch import DispatchConfig, DispatchSimulator
from digipin.models import Coordinates
from digipin.pin import from_pin, to_pin


async def _simulate(incident: Coordinates, emergency_type: str) -> None:
    simulator = DispatchSimulator(DispatchConfig.from_env())
    run = simulator.start(incident, emergency_type)
    printed = 0
    async for patch in run:
        for entry in run.state.logs[printed:]:
            print(f"[{entry.timestamp}] {entry.message}")
        printed = len(run.state.logs)
        if "eta" in patch and patch["eta"] is not None:
            print(f"    status={run.state.status.value if run.state.status else '-'} eta={patch['eta']} min")


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL)
    incident = Coordinates(28.6129, 77.2295)  # India Gate, New Delhi
    pin = to_pin(incident.latitude, incident.longitude)
    center = from_pin(pin)

    print("=== DigiPIN ===")
    print(f"Location: India Gate, New Delhi ({incident.latitude}, {incident.longitude})")
    print(f"DigiPIN: {pin}")
    print(f"Cell center: {center.latitude:.6f}, {center.longitude:.6f}")

    print("\n=== Emergency dispatch ===")
    asyncio.run(_simulate(center, "Ambulance"))


if __name__ == "__main__":
    main()
