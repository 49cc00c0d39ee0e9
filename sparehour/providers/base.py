# providers/base.py
# interfaces the pipeline consumes; concrete clients live next to this file

from typing import List, Optional, Protocol

from sparehour.domain import LngLat, Place, Route, TravelMode


class ProviderError(Exception):
    """Geo provider failed (bad status, timeout, malformed body). Fatal to the request."""


class NarrativeError(Exception):
    """Narrative provider failed; callers always fall back."""


class RateLimited(NarrativeError):
    pass


class GeoProvider(Protocol):
    async def search_nearby(
        self,
        origin: LngLat,
        keyword: str,
        radius: int,
        page: int = 1,
        page_size: int = 15,
        city: Optional[str] = None,
    ) -> List[Place]: ...

    async def route(self, mode: TravelMode, origin: LngLat, destination: LngLat) -> Route: ...

    async def reverse_geocode(self, location: LngLat) -> str: ...

    async def render_static_map(
        self,
        origin: Optional[LngLat],
        dest: Optional[LngLat],
        zoom: int = 13,
        size: str = "750*300",
    ) -> bytes: ...


class NarrativeProvider(Protocol):
    async def complete(self, prompt: str) -> str: ...
