from __future__ import annotations

from typing import Dict, List, Tuple

from digipin.models import Coordinates

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
BITS = (16, 8, 4, 2, 1)
DEFAULT_PRECISION = 9

# Neighbour/border lookup tables indexed by direction, then [even, odd] hash length.
NEIGHBOURS: Dict[str, Tuple[str, str]] = {
    "n": ("p0r21436x8zb9dcf5h7kjnmqesgutwvy", "bc01fg45238967deuvhjyznpkmstqrwx"),
    "s": ("14365h7k9dcfesgutwvyp0r2xbz8kjnm", "238967debc01fg45kmstqrwxuvhjyznp"),
    "e": ("bc01fg45238967deuvhjyznpkmstqrwx", "p0r21436x8zb9dcf5h7kjnmqesgutwvy"),
    "w": ("238967debc01fg45kmstqrwxuvhjyznp", "14365h7k9dcfesgutwvyp0r2xbz8kjnm"),
}
BORDERS: Dict[str, Tuple[str, str]] = {
    "n": ("prxz", "bcfguvyz"),
    "s": ("028b", "0145hjnp"),
    "e": ("bcfguvyz", "prxz"),
    "w": ("0145hjnp", "028b"),
}


def encode(latitude: float, longitude: float, precision: int = DEFAULT_PRECISION) -> str:
    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    is_lon = True
    bit = 0
    ch = 0
    chars: List[str] = []

    while len(chars) < precision:
        if is_lon:
            mid = (lon_range[0] + lon_range[1]) / 2
            if longitude > mid:
                ch |= BITS[bit]
                lon_range[0] = mid
            else:
                lon_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if latitude > mid:
                ch |= BITS[bit]
                lat_range[0] = mid
            else:
                lat_range[1] = mid

        is_lon = not is_lon
        if bit < 4:
            bit += 1
        else:
            chars.append(BASE32[ch])
            bit = 0
            ch = 0

    return "".join(chars)


def decode_bounds(geohash: str) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """Return the ``(lat_range, lon_range)`` cell covered by ``geohash``."""
    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    is_lon = True

    for c in geohash:
        cd = BASE32.find(c)
        if cd < 0:
            raise ValueError(f"Invalid geohash character: {c!r}")
        for mask in BITS:
            rng = lon_range if is_lon else lat_range
            mid = (rng[0] + rng[1]) / 2
            if cd & mask:
                rng[0] = mid
            else:
                rng[1] = mid
            is_lon = not is_lon

    return (lat_range[0], lat_range[1]), (lon_range[0], lon_range[1])


def decode(geohash: str) -> Coordinates:
    (lat_lo, lat_hi), (lon_lo, lon_hi) = decode_bounds(geohash)
    return Coordinates(latitude=(lat_lo + lat_hi) / 2, longitude=(lon_lo + lon_hi) / 2)


def adjacent(geohash: str, direction: str) -> str:
    geohash = geohash.lower()
    if not geohash:
        raise ValueError("Cannot find the neighbour of an empty geohash")
    if direction not in NEIGHBOURS:
        raise ValueError(f"Invalid direction: {direction!r}")

    last = geohash[-1]
    parent = geohash[:-1]
    parity = len(geohash) % 2
    if last in BORDERS[direction][parity] and parent:
        parent = adjacent(parent, direction)
    return parent + BASE32[NEIGHBOURS[direction][parity].index(last)]


def neighbours(geohash: str) -> Dict[str, str]:
    n = adjacent(geohash, "n")
    s = adjacent(geohash, "s")
    return {
        "n": n,
        "ne": adjacent(n, "e"),
        "e": adjacent(geohash, "e"),
        "se": adjacent(s, "e"),
        "s": s,
        "sw": adjacent(s, "w"),
        "w": adjacent(geohash, "w"),
        "nw": adjacent(n, "w"),
    }
