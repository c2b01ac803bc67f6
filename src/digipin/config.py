import os
from pathlib import Path

DB_PATH = Path(os.getenv("DIGIPIN_DB_PATH", str(Path.cwd() / "digipin.db")))
NOMINATIM_BASE = os.getenv("NOMINATIM_BASE", "https://nominatim.openstreetmap.org")
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT", "DigiPIN App/1.2 (digipin-dev@example.com)")
GEOCODER_TIMEOUT = float(os.getenv("GEOCODER_TIMEOUT", "10"))
SEARCH_LIMIT = int(os.getenv("SEARCH_LIMIT", "5"))
DISPATCH_RADIUS_KM = float(os.getenv("DISPATCH_RADIUS_KM", "15.0"))
PACING_SCALE = float(os.getenv("PACING_SCALE", "1.0"))
HISTORY_SIZE = int(os.getenv("HISTORY_SIZE", "10"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
