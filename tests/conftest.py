import math
from typing import Dict, List, Optional

import pytest

from sparehour.domain import LngLat, Place, Route, TravelMode
from sparehour.providers.base import NarrativeError, ProviderError
from sparehour.utils import haversine_meters

ORIGIN = LngLat(lng=111.2865, lat=30.6919)

METERS_PER_DEG_LAT = math.pi * 6_371_000 / 180


def north_of(origin: LngLat, meters: float) -> LngLat:
    return LngLat(lng=origin.lng, lat=origin.lat + meters / METERS_PER_DEG_LAT)


def place(name: str, category: str, meters: float, address: str = "", provider_distance: bool = True) -> Place:
    return Place(
        name=name,
        category=category,
        address=address,
        location=north_of(ORIGIN, meters),
        distance_meters=meters if provider_distance else None,
    )


class FakeGeo:
    """In-memory geo provider: pages over fixed lists, routes at mode speed."""

    def __init__(self, places_by_kw: Optional[Dict[str, List[Place]]] = None,
                 route_seconds: Optional[float] = None, fail: bool = False):
        self.places_by_kw = places_by_kw or {}
        self.route_seconds = route_seconds
        self.fail = fail
        self.search_calls = []
        self.route_calls = []

    async def search_nearby(self, origin, keyword, radius, page=1, page_size=15, city=None):
        self.search_calls.append((keyword, page, city))
        if self.fail:
            raise ProviderError("place/around status 0: INVALID_USER_KEY")
        items = self.places_by_kw.get(keyword, [])
        start = (page - 1) * page_size
        return items[start:start + page_size]

    async def route(self, mode: TravelMode, origin: LngLat, destination: LngLat) -> Route:
        self.route_calls.append((mode, origin, destination))
        if self.fail:
            raise ProviderError("direction status 0")
        if self.route_seconds is not None:
            seconds = self.route_seconds
        else:
            seconds = haversine_meters(origin, destination) / mode.meters_per_minute * 60
        return Route(duration_seconds=seconds, polyline=f"{origin.as_param()};{destination.as_param()}")

    async def reverse_geocode(self, location):
        return "湖北省宜昌市西陵区"

    async def render_static_map(self, origin, dest, zoom=13, size="750*300"):
        return b"\x89PNG fake"


class FakeNarrative:
    def __init__(self, replies: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if not self.replies:
            raise NarrativeError("no scripted reply left")
        return self.replies.pop(0)


class FixedRng:
    """uniform() always returns the midpoint, so novelty is exactly 1.0."""

    def uniform(self, a, b):
        return (a + b) / 2


@pytest.fixture
def origin():
    return ORIGIN
