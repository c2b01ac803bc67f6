"""DigiPIN text format: ``DP-`` + 9 uppercase geohash characters + 1 checksum character.

The checksum is the last base-36 digit of the sum of character codes of the
*lowercase* geohash, rendered uppercase. It only catches transcription typos and
offers no protection against deliberate tampering; changing it would change the
published pin format.
"""
from __future__ import annotations

import logging

from digipin import geohash
from digipin.models import Coordinates

logger = logging.getLogger(__name__)

PREFIX = "DP-"
GEOHASH_LENGTH = 9
PIN_LENGTH = len(PREFIX) + GEOHASH_LENGTH + 1
BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class DigiPinError(ValueError):
    """Base class for DigiPIN decoding failures."""


class InvalidFormatError(DigiPinError):
    def __init__(self, message: str = "Invalid DigiPIN format.") -> None:
        super().__init__(message)


class ChecksumMismatchError(DigiPinError):
    def __init__(self, provided: str, calculated: str) -> None:
        super().__init__("Invalid DigiPIN. Check for typos.")
        self.provided = provided
        self.calculated = calculated


def checksum(lower_geohash: str) -> str:
    return BASE36[sum(ord(ch) for ch in lower_geohash) % 36]


def pin_for_geohash(lower_geohash: str) -> str:
    return f"{PREFIX}{lower_geohash.upper()}{checksum(lower_geohash)}"


def to_pin(latitude: float, longitude: float) -> str:
    return pin_for_geohash(geohash.encode(latitude, longitude, GEOHASH_LENGTH))


def pin_geohash(pin: str) -> str:
    """Validate ``pin`` and return its lowercase geohash body."""
    normalized = pin.strip()
    if len(normalized) != PIN_LENGTH or not normalized.upper().startswith(PREFIX):
        raise InvalidFormatError()

    gh = normalized[len(PREFIX):len(PREFIX) + GEOHASH_LENGTH].lower()
    provided = normalized[-1].upper()
    calculated = checksum(gh)
    if provided != calculated:
        logger.info("Checksum mismatch for %s: provided %s, calculated %s", gh, provided, calculated)
        raise ChecksumMismatchError(provided, calculated)

    if any(ch not in geohash.BASE32 for ch in gh):
        raise InvalidFormatError("Invalid DigiPIN characters.")
    return gh


def from_pin(pin: str) -> Coordinates:
    return geohash.decode(pin_geohash(pin))
