from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Form, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from digipin import config, geohash
from digipin.db import (
    SqliteIncidentSink,
    clear_personal_place,
    delete_pin,
    get_personal_places,
    init_db,
    list_pins,
    save_pin,
    set_personal_place,
)
from digipin.dispatch import DispatchConfig, DispatchRun, DispatchSimulator
from digipin.geocoding import NominatimGeocoder
from digipin.history import HistoryStore
from digipin.models import Coordinates, SelectedPlace, patch_to_dict
from digipin.pin import DigiPinError, pin_for_geohash, pin_geohash, to_pin
from digipin.system import DigiPinService

logger = logging.getLogger(__name__)

app = FastAPI(title="DigiPIN Emergency API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

history = HistoryStore()
_geocoder: Optional[NominatimGeocoder] = None


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(level=config.LOG_LEVEL)
    init_db()


@app.on_event("shutdown")
def shutdown() -> None:
    global _geocoder
    if _geocoder is not None:
        _geocoder.close()
        _geocoder = None


def get_geocoder() -> NominatimGeocoder:
    global _geocoder
    if _geocoder is None:
        _geocoder = NominatimGeocoder()
    return _geocoder


def get_history() -> HistoryStore:
    return history


def get_service(
    geocoder: NominatimGeocoder = Depends(get_geocoder),
    store: HistoryStore = Depends(get_history),
) -> DigiPinService:
    return DigiPinService(geocoder, store)


def get_incident_sink() -> SqliteIncidentSink:
    return SqliteIncidentSink()


def get_simulator(sink: SqliteIncidentSink = Depends(get_incident_sink)) -> DispatchSimulator:
    return DispatchSimulator(DispatchConfig.from_env(), sink=sink)


def coordinates_or_422(lat: float, lon: float) -> Coordinates:
    try:
        return Coordinates(lat, lon)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def geohash_or_400(pin: str) -> str:
    try:
        return pin_geohash(pin)
    except DigiPinError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def decode_or_400(pin: str) -> Coordinates:
    return geohash.decode(geohash_or_400(pin))


def place_from_form(lat: float, lon: float, display_name: str, place_class: str, place_type: str) -> SelectedPlace:
    coordinates_or_422(lat, lon)
    return SelectedPlace(
        digi_pin=to_pin(lat, lon),
        display_name=display_name or f"Location at {lat:.4f}, {lon:.4f}",
        lat=lat,
        lon=lon,
        place_class=place_class or None,
        place_type=place_type or None,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/digipin")
def encode_pin(lat: float, lon: float):
    coordinates_or_422(lat, lon)
    return {"digi_pin": to_pin(lat, lon)}


@app.get("/digipin/{pin}")
def decode_pin(pin: str):
    center = decode_or_400(pin)
    return {"latitude": center.latitude, "longitude": center.longitude}


@app.get("/digipin/{pin}/neighbours")
def pin_neighbours(pin: str):
    cells = geohash.neighbours(geohash_or_400(pin))
    return {direction: pin_for_geohash(cell) for direction, cell in cells.items()}


@app.get("/places/search")
def search_places(q: str = "", service: DigiPinService = Depends(get_service)):
    try:
        places = service.search(q)
    except httpx.HTTPError as exc:
        logger.error(f"Place search failed for '{q}': {exc}")
        raise HTTPException(status_code=502, detail="Place search failed") from exc
    return [p.to_dict() for p in places]


@app.get("/places/reverse")
def reverse_place(lat: float, lon: float, service: DigiPinService = Depends(get_service)):
    coordinates_or_422(lat, lon)
    return service.generate_for_coords(lat, lon).to_dict()


@app.get("/places/by-pin/{pin}")
def place_by_pin(pin: str, service: DigiPinService = Depends(get_service)):
    decode_or_400(pin)
    return service.locate_pin(pin).to_dict()


@app.get("/history")
def recent_lookups(store: HistoryStore = Depends(get_history)):
    return [p.to_dict() for p in store.items()]


@app.delete("/history")
def clear_history(store: HistoryStore = Depends(get_history)):
    store.clear()
    return {"ok": True}


@app.post("/users/{user_id}/pins")
def create_pin(
    user_id: str,
    lat: float = Form(...),
    lon: float = Form(...),
    display_name: str = Form(""),
    place_class: str = Form(""),
    place_type: str = Form(""),
):
    place = place_from_form(lat, lon, display_name, place_class, place_type)
    return save_pin(user_id, place).to_dict()


@app.get("/users/{user_id}/pins")
def user_pins(user_id: str):
    return [p.to_dict() for p in list_pins(user_id)]


@app.delete("/pins/{pin_id}")
def remove_pin(pin_id: int):
    if not delete_pin(pin_id):
        raise HTTPException(status_code=404, detail="Pin not found")
    return {"ok": True, "pin_id": pin_id}


@app.get("/users/{user_id}/places")
def personal_places(user_id: str):
    return {kind: place.to_dict() for kind, place in get_personal_places(user_id).items()}


@app.put("/users/{user_id}/places/{kind}")
def update_personal_place(
    user_id: str,
    kind: str,
    lat: float = Form(...),
    lon: float = Form(...),
    display_name: str = Form(""),
    place_class: str = Form(""),
    place_type: str = Form(""),
):
    place = place_from_form(lat, lon, display_name, place_class, place_type)
    try:
        set_personal_place(user_id, kind, place)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, "kind": kind, "place": place.to_dict()}


@app.delete("/users/{user_id}/places/{kind}")
def remove_personal_place(user_id: str, kind: str):
    try:
        clear_personal_place(user_id, kind)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, "kind": kind}


@app.get("/users/{user_id}/incidents")
def user_incidents(user_id: str, sink: SqliteIncidentSink = Depends(get_incident_sink)):
    return sink.list_incidents(user_id)


async def _ndjson(run: DispatchRun) -> AsyncIterator[str]:
    async for patch in run:
        yield json.dumps(patch_to_dict(patch)) + "\n"


@app.post("/dispatch")
def dispatch(
    emergency_type: str = Form(...),
    digi_pin: str = Form(""),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    x_user_id: Optional[str] = Header(default=None),
    simulator: DispatchSimulator = Depends(get_simulator),
):
    if digi_pin:
        incident = decode_or_400(digi_pin)
    elif latitude is not None and longitude is not None:
        incident = coordinates_or_422(latitude, longitude)
    else:
        raise HTTPException(status_code=422, detail="Provide digi_pin or latitude and longitude")

    dispatch_run = simulator.start(incident, emergency_type, requester_id=x_user_id)
    return StreamingResponse(_ndjson(dispatch_run), media_type="application/x-ndjson")


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    uvicorn.run(app, host=host, port=port)
