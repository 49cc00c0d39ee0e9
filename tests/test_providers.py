import asyncio
import json

import httpx
import pytest

from conftest import ORIGIN
from sparehour.domain import LngLat, TravelMode
from sparehour.providers.amap import AmapProvider, parse_pois, parse_route
from sparehour.providers.base import NarrativeError, ProviderError, RateLimited
from sparehour.providers.zhipu import ZhipuProvider, extract_json

POIS = {
    "status": "1",
    "pois": [
        {"name": "星巴克", "type": "餐饮服务;咖啡厅;星巴克咖啡", "address": "东山大道", "location": "111.290,30.695",
         "distance": "420"},
        {"name": "无地址店", "type": "餐饮服务;咖啡厅", "address": [], "adname": "西陵区", "location": "111.280,30.690",
         "distance": ""},
        {"name": "坏坐标", "type": "", "location": "abc"},
        {"name": "", "location": "111.1,30.1"},
    ],
}


def test_parse_pois_handles_amap_quirks():
    places = parse_pois(POIS)
    assert [p.name for p in places] == ["星巴克", "无地址店"]
    assert places[0].distance_meters == 420
    assert places[0].location == LngLat(111.29, 30.695)
    assert places[1].address == "西陵区"
    assert places[1].distance_meters is None


def test_parse_route_walk_joins_step_polylines():
    js = {"status": "1", "route": {"paths": [{"duration": "840", "steps": [
        {"polyline": "111.1,30.1;111.2,30.2"}, {"polyline": "111.2,30.2;111.3,30.3"}, {"polyline": []}]}]}}
    r = parse_route(TravelMode.WALK, js)
    assert r.duration_seconds == 840
    assert r.polyline == "111.1,30.1;111.2,30.2;111.2,30.2;111.3,30.3"


def test_parse_route_bike_uses_v4_shape():
    js = {"errcode": 0, "data": {"paths": [{"duration": 300, "polyline": "1,2;3,4"}]}}
    r = parse_route(TravelMode.BIKE, js)
    assert r.duration_seconds == 300
    assert r.polyline == "1,2;3,4"


def test_parse_route_error_status():
    with pytest.raises(ProviderError):
        parse_route(TravelMode.DRIVE, {"status": "0", "info": "INVALID_USER_KEY"})
    with pytest.raises(ProviderError):
        parse_route(TravelMode.BIKE, {"errcode": 10001, "errmsg": "INVALID_USER_KEY"})


def test_search_nearby_request_params():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=POIS)

    amap = AmapProvider("k", transport=httpx.MockTransport(handler))
    places = asyncio.run(amap.search_nearby(ORIGIN, "咖啡", 3000, page=2, city="宜昌"))
    assert len(places) == 2
    assert seen["path"] == "/v3/place/around"
    assert seen["params"]["keywords"] == "咖啡"
    assert seen["params"]["sortrule"] == "distance"
    assert seen["params"]["page"] == "2"
    assert seen["params"]["citylimit"] == "true"
    assert seen["params"]["key"] == "k"


def test_search_without_city_has_no_city_limit():
    seen = {}

    def handler(request):
        seen.update(dict(request.url.params))
        return httpx.Response(200, json={"status": "1", "pois": []})

    amap = AmapProvider("k", transport=httpx.MockTransport(handler))
    assert asyncio.run(amap.search_nearby(ORIGIN, "公园", 800)) == []
    assert "city" not in seen and "citylimit" not in seen


def test_route_picks_endpoint_by_mode():
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.path.startswith("/v4"):
            return httpx.Response(200, json={"errcode": 0, "data": {"paths": [{"duration": 600, "polyline": ""}]}})
        return httpx.Response(200, json={"status": "1", "route": {"paths": [{"duration": 600, "steps": []}]}})

    amap = AmapProvider("k", transport=httpx.MockTransport(handler))
    dest = LngLat(111.3, 30.7)
    for mode in TravelMode:
        assert asyncio.run(amap.route(mode, ORIGIN, dest)).duration_seconds == 600
    assert paths == ["/v3/direction/walking", "/v4/direction/bicycling", "/v3/direction/driving"]


def test_http_error_is_provider_error():
    amap = AmapProvider("k", transport=httpx.MockTransport(lambda r: httpx.Response(502)))
    with pytest.raises(ProviderError):
        asyncio.run(amap.search_nearby(ORIGIN, "咖啡", 3000))


def test_missing_key_is_provider_error():
    with pytest.raises(ProviderError):
        asyncio.run(AmapProvider("").route(TravelMode.WALK, ORIGIN, ORIGIN))


def test_static_map_markers():
    seen = {}

    def handler(request):
        seen.update(dict(request.url.params))
        return httpx.Response(200, content=b"PNG")

    amap = AmapProvider("k", transport=httpx.MockTransport(handler))
    png = asyncio.run(amap.render_static_map(ORIGIN, LngLat(111.3, 30.7), zoom=30))
    assert png == b"PNG"
    assert seen["zoom"] == "18"
    assert seen["markers"].startswith("mid,0x2563eb,A:")
    assert "|mid,0xef4444,B:111.3,30.7" in seen["markers"]


def test_reverse_geocode():
    def handler(request):
        return httpx.Response(200, json={"status": "1", "regeocode": {"formatted_address": "湖北省宜昌市西陵区"}})

    amap = AmapProvider("k", transport=httpx.MockTransport(handler))
    assert asyncio.run(amap.reverse_geocode(ORIGIN)) == "湖北省宜昌市西陵区"


def chat(content: str) -> dict:
    return {"choices": [{"message": {"content": content}}]}


def test_zhipu_retries_on_429_with_backoff():
    statuses = [429, 429, 200]
    sleeps = []

    def handler(request):
        body = json.loads(request.content)
        assert body["temperature"] == 0.7
        assert request.headers["Authorization"] == "Bearer z"
        code = statuses.pop(0)
        return httpx.Response(code, json=chat(" ok ") if code == 200 else {})

    async def fake_sleep(s):
        sleeps.append(s)

    glm = ZhipuProvider("z", transport=httpx.MockTransport(handler), sleep=fake_sleep)
    assert asyncio.run(glm.complete("hi")) == "ok"
    assert sleeps == pytest.approx([1.2, 1.8])


def test_zhipu_gives_up_after_three_429():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(429)

    async def fake_sleep(s):
        pass

    glm = ZhipuProvider("z", transport=httpx.MockTransport(handler), sleep=fake_sleep)
    with pytest.raises(RateLimited):
        asyncio.run(glm.complete("hi"))
    assert len(calls) == 3


def test_zhipu_other_status_is_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(500)

    glm = ZhipuProvider("z", transport=httpx.MockTransport(handler))
    with pytest.raises(NarrativeError):
        asyncio.run(glm.complete("hi"))
    assert len(calls) == 1


def test_extract_json_from_chatty_reply():
    assert extract_json('好的！\n{"a": 1}\n希望有帮助') == {"a": 1}
    with pytest.raises(NarrativeError):
        extract_json("[1, 2]")
