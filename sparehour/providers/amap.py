# providers/amap.py
# AMap (Gaode) web service: place/around, direction, regeo, staticmap

import logging
from typing import List, Optional

import httpx

from sparehour.domain import LngLat, Place, Route, TravelMode
from sparehour.providers.base import ProviderError
from sparehour.utils import clamp, parse_lng_lat

log = logging.getLogger("sparehour.amap")

BASE_URL = "https://restapi.amap.com"

HEADERS = {
    "User-Agent": "SpareHour/0.1",
    "Accept": "application/json",
}

DIRECTION_PATHS = {
    TravelMode.WALK: "/v3/direction/walking",
    TravelMode.DRIVE: "/v3/direction/driving",
    TravelMode.BIKE: "/v4/direction/bicycling",
}


def _text(v) -> str:
    # AMap sends [] instead of "" for empty fields
    return v if isinstance(v, str) else ""


def parse_pois(js: dict) -> List[Place]:
    out: List[Place] = []
    for p in js.get("pois") or []:
        name = _text(p.get("name"))
        loc = _text(p.get("location"))
        if not name or not loc:
            continue
        try:
            location = parse_lng_lat(loc)
        except ValueError:
            continue
        try:
            dist = float(_text(p.get("distance")) or 0) or None
        except ValueError:
            dist = None
        out.append(Place(
            name=name,
            category=_text(p.get("type")),
            address=_text(p.get("address")) or _text(p.get("adname")) or _text(p.get("cityname")),
            location=location,
            distance_meters=dist,
        ))
    return out


def parse_route(mode: TravelMode, js: dict) -> Route:
    """Duration + polyline of the first path. Bike (v4) nests under data, others under route."""
    if mode is TravelMode.BIKE:
        if js.get("errcode") not in (None, 0):
            raise ProviderError(f"bicycling errcode {js.get('errcode')}: {js.get('errmsg')}")
        path = (((js.get("data") or {}).get("paths")) or [{}])[0]
        return Route(duration_seconds=float(path.get("duration") or 0),
                     polyline=_text(path.get("polyline")))

    if str(js.get("status")) != "1":
        raise ProviderError(f"direction status {js.get('status')}: {js.get('info')}")
    path = (((js.get("route") or {}).get("paths")) or [{}])[0]
    steps = path.get("steps") or []
    polyline = ";".join(s["polyline"] for s in steps if _text(s.get("polyline")))
    return Route(duration_seconds=float(path.get("duration") or 0), polyline=polyline)


class AmapProvider:
    def __init__(
        self,
        api_key: str,
        search_timeout: float = 8.0,
        route_timeout: float = 4.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.search_timeout = search_timeout
        self.route_timeout = route_timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=BASE_URL, timeout=timeout, headers=HEADERS,
                                 transport=self._transport)

    async def _get_json(self, path: str, params: dict, timeout: float) -> dict:
        if not self.api_key:
            raise ProviderError("Missing AMAP_WEB_SERVICE_KEY")
        try:
            async with self._client(timeout) as client:
                r = await client.get(path, params={"key": self.api_key, **params})
        except httpx.HTTPError as e:
            raise ProviderError(f"{path} request failed: {e!r}") from e
        if r.status_code != 200:
            raise ProviderError(f"{path} HTTP {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise ProviderError(f"{path} returned non-JSON body") from e

    async def search_nearby(
        self,
        origin: LngLat,
        keyword: str,
        radius: int,
        page: int = 1,
        page_size: int = 15,
        city: Optional[str] = None,
    ) -> List[Place]:
        params = {
            "location": origin.as_param(),
            "keywords": keyword,
            "radius": radius,
            "sortrule": "distance",
            "page_size": page_size,
            "page": page,
            "extensions": "base",
        }
        if city:
            params.update({"city": city, "citylimit": "true"})
        js = await self._get_json("/v3/place/around", params, self.search_timeout)
        if str(js.get("status")) != "1":
            raise ProviderError(f"place/around status {js.get('status')}: {js.get('info')}")
        places = parse_pois(js)
        log.debug("place/around kw=%s page=%s radius=%s -> %d", keyword, page, radius, len(places))
        return places

    async def route(self, mode: TravelMode, origin: LngLat, destination: LngLat) -> Route:
        params = {"origin": origin.as_param(), "destination": destination.as_param()}
        if mode is TravelMode.DRIVE:
            params.update({"strategy": 0, "extensions": "base"})
        js = await self._get_json(DIRECTION_PATHS[mode], params, self.route_timeout)
        return parse_route(mode, js)

    async def reverse_geocode(self, location: LngLat) -> str:
        js = await self._get_json("/v3/geocode/regeo", {"location": location.as_param()},
                                  self.search_timeout)
        if str(js.get("status")) != "1":
            raise ProviderError(f"regeo status {js.get('status')}: {js.get('info')}")
        return _text((js.get("regeocode") or {}).get("formatted_address"))

    async def render_static_map(
        self,
        origin: Optional[LngLat],
        dest: Optional[LngLat],
        zoom: int = 13,
        size: str = "750*300",
    ) -> bytes:
        if not self.api_key:
            raise ProviderError("Missing AMAP_WEB_SERVICE_KEY")
        center = dest or origin
        if center is None:
            raise ValueError("origin or dest required")
        markers = []
        if origin:
            markers.append(f"mid,0x2563eb,A:{origin.lng},{origin.lat}")
        if dest:
            markers.append(f"mid,0xef4444,B:{dest.lng},{dest.lat}")
        params = {
            "key": self.api_key,
            "location": center.as_param(),
            "zoom": int(clamp(zoom, 3, 18)),
            "size": size,
            "scale": 2,
            "markers": "|".join(markers),
        }
        try:
            async with self._client(self.search_timeout) as client:
                r = await client.get("/v3/staticmap", params=params)
        except httpx.HTTPError as e:
            raise ProviderError(f"staticmap request failed: {e!r}") from e
        if r.status_code != 200:
            raise ProviderError(f"staticmap HTTP {r.status_code}")
        return r.content
