from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from digipin import config
from digipin.models import Coordinates, SavedPin, SelectedPlace

PLACE_KINDS = ("home", "work")


def _path(db_path: Optional[Path]) -> Path:
    return Path(db_path) if db_path is not None else config.DB_PATH


def init_db(db_path: Optional[Path] = None) -> None:
    with sqlite3.connect(_path(db_path)) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS pins (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                digi_pin TEXT NOT NULL,
                display_name TEXT NOT NULL,
                lat REAL NOT NULL,
                lon REAL NOT NULL,
                place_class TEXT,
                place_type TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS personal_places (
                user_id TEXT PRIMARY KEY,
                home TEXT,
                work TEXT,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS emergency_incidents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                emergency_type TEXT NOT NULL,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )


@contextmanager
def get_conn(db_path: Optional[Path] = None):
    conn = sqlite3.connect(_path(db_path))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def now_iso() -> str:
    return datetime.utcnow().isoformat()


def _row_to_pin(row: sqlite3.Row) -> SavedPin:
    place = SelectedPlace(
        digi_pin=row["digi_pin"],
        display_name=row["display_name"],
        lat=row["lat"],
        lon=row["lon"],
        place_class=row["place_class"],
        place_type=row["place_type"],
    )
    return SavedPin(pin_id=row["id"], user_id=row["user_id"], place=place, created_at=row["created_at"])


def save_pin(user_id: str, place: SelectedPlace, db_path: Optional[Path] = None) -> SavedPin:
    with get_conn(db_path) as conn:
        cur = conn.execute(
            "INSERT INTO pins (user_id,digi_pin,display_name,lat,lon,place_class,place_type,created_at) VALUES (?,?,?,?,?,?,?,?)",
            (user_id, place.digi_pin, place.display_name, place.lat, place.lon, place.place_class, place.place_type, now_iso()),
        )
        row = conn.execute("SELECT * FROM pins WHERE id=?", (cur.lastrowid,)).fetchone()
    return _row_to_pin(row)


def list_pins(user_id: str, db_path: Optional[Path] = None) -> List[SavedPin]:
    with get_conn(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM pins WHERE user_id=? ORDER BY created_at DESC, id DESC",
            (user_id,),
        ).fetchall()
    return [_row_to_pin(r) for r in rows]


def delete_pin(pin_id: int, db_path: Optional[Path] = None) -> bool:
    with get_conn(db_path) as conn:
        deleted = conn.execute("DELETE FROM pins WHERE id=?", (pin_id,)).rowcount
    return deleted > 0


def _check_kind(kind: str) -> None:
    if kind not in PLACE_KINDS:
        raise ValueError(f"Unknown personal place kind: {kind!r}")


def get_personal_places(user_id: str, db_path: Optional[Path] = None) -> Dict[str, SelectedPlace]:
    with get_conn(db_path) as conn:
        row = conn.execute("SELECT home, work FROM personal_places WHERE user_id=?", (user_id,)).fetchone()
    if not row:
        return {}
    return {kind: SelectedPlace.from_dict(json.loads(row[kind])) for kind in PLACE_KINDS if row[kind]}


def _upsert_personal_place(user_id: str, kind: str, value: Optional[str], db_path: Optional[Path]) -> None:
    _check_kind(kind)
    # Column name comes from PLACE_KINDS.
    with get_conn(db_path) as conn:
        conn.execute(
            f"""
            INSERT INTO personal_places (user_id,{kind},updated_at) VALUES (?,?,?)
            ON CONFLICT(user_id) DO UPDATE SET {kind}=excluded.{kind}, updated_at=excluded.updated_at
            """,
            (user_id, value, now_iso()),
        )


def set_personal_place(user_id: str, kind: str, place: SelectedPlace, db_path: Optional[Path] = None) -> None:
    _upsert_personal_place(user_id, kind, json.dumps(place.to_dict()), db_path)


def clear_personal_place(user_id: str, kind: str, db_path: Optional[Path] = None) -> None:
    _upsert_personal_place(user_id, kind, None, db_path)


class SqliteIncidentSink:
    """Incident sink for dispatch runs, one row per reported incident."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path

    def record(self, requester_id: str, emergency_type: str, incident: Coordinates) -> None:
        with get_conn(self.db_path) as conn:
            conn.execute(
                "INSERT INTO emergency_incidents (user_id,emergency_type,latitude,longitude,created_at) VALUES (?,?,?,?,?)",
                (requester_id, emergency_type, incident.latitude, incident.longitude, now_iso()),
            )

    def list_incidents(self, requester_id: str) -> List[dict]:
        with get_conn(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM emergency_incidents WHERE user_id=? ORDER BY id DESC",
                (requester_id,),
            ).fetchall()
        return [dict(r) for r in rows]
