# utils.py
# Helpers: time windows, geo math, dedupe, in-memory TTL cache, serial queue

from __future__ import annotations

import asyncio
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, List

from sparehour.domain import Candidate, LngLat, TimeWindow, TravelMode

EARTH_RADIUS_M = 6_371_000

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def parse_hhmm(text: str) -> int:
    """'09:30' -> 570. Raises ValueError on anything else."""
    m = _HHMM.match((text or "").strip())
    if not m:
        raise ValueError(f"expected HH:mm, got {text!r}")
    h, mi = int(m.group(1)), int(m.group(2))
    if h > 23 or mi > 59:
        raise ValueError(f"time out of range: {text!r}")
    return h * 60 + mi


def parse_lng_lat(text: str) -> LngLat:
    """'111.28,30.69' -> LngLat. Raises ValueError on bad input."""
    parts = (text or "").split(",")
    if len(parts) != 2:
        raise ValueError(f"expected 'lng,lat', got {text!r}")
    lng, lat = float(parts[0]), float(parts[1])
    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise ValueError(f"non-finite coordinate: {text!r}")
    if not (-180 <= lng <= 180 and -90 <= lat <= 90):
        raise ValueError(f"coordinate out of range: {text!r}")
    return LngLat(lng=lng, lat=lat)


def build_window(start_hhmm: str, end_hhmm: str) -> TimeWindow:
    return TimeWindow(parse_hhmm(start_hhmm), parse_hhmm(end_hhmm))


def minutes_between(start: int, end: int) -> int:
    """Minutes from start to end (minute-of-day), wrapping past midnight."""
    return TimeWindow(start, end).available_minutes


def haversine_meters(a: LngLat, b: LngLat) -> float:
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    x = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(x)))


def suggested_radius_meters(mode: TravelMode, available_minutes: int) -> int:
    """Search radius: one-way budget of 25% of the window at mode speed."""
    one_way = clamp(math.floor(available_minutes * 0.25), 8, 60)
    return int(clamp(one_way * mode.meters_per_minute, 800, 12000))


def ideal_one_way_minutes(available_minutes: int) -> int:
    # ranking target; deliberately tighter than the 25% search radius
    return int(clamp(round(available_minutes * 0.2), 10, 30))


def dedupe(items: List[Candidate]) -> List[Candidate]:
    """Deduplicate by (location + name), first occurrence wins."""
    seen = set()
    out: List[Candidate] = []
    for it in items:
        if it.id not in seen:
            seen.add(it.id)
            out.append(it)
    return out


@dataclass
class CacheEntry:
    expires: float
    data: Any


class TTLCache:
    """Simple in-memory TTL cache (per-process). Expired entries drop on read."""

    def __init__(self, ttl_seconds: int = 600, clock: Callable[[], float] = time.time):
        self.ttl = ttl_seconds
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if not entry:
            return None
        if entry.expires < self._clock():
            self._store.pop(key, None)
            return None
        return entry.data

    def set(self, key: str, value: Any) -> None:
        self._store[key] = CacheEntry(expires=self._clock() + self.ttl, data=value)

    def __len__(self) -> int:
        return len(self._store)


class SerialQueue:
    """
    Single-slot queue: one call at a time, the next waits for the previous
    to finish (success or failure). Use as `async with queue:`.
    """

    def __init__(self):
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        await self._lock.acquire()
        return self

    async def __aexit__(self, *exc):
        self._lock.release()
        return False

    @property
    def busy(self) -> bool:
        return self._lock.locked()
