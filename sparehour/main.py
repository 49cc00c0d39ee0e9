# main.py
# FastAPI app exposing POST /api/recommend, /api/egg, /api/egg-verify and GET /api/staticmap

import logging
import random
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from sparehour import __version__
from sparehour.config import Settings, load_settings
from sparehour.enrich import Enricher
from sparehour.intent import ModelIntentResolver
from sparehour.models import (
    Egg,
    EggRequest,
    EggResponse,
    EggVerify,
    RecommendRequest,
    VerifyRequest,
    VerifyResponse,
)
from sparehour.pipeline import Deps, recommend
from sparehour.providers.amap import AmapProvider
from sparehour.providers.base import ProviderError
from sparehour.providers.zhipu import ZhipuProvider
from sparehour.side_quest import INELIGIBLE_MESSAGE, SAFETY, build_side_quest, verify_arrival
from sparehour.utils import SerialQueue, TTLCache, build_window, parse_lng_lat

# logging
logging.basicConfig(level=logging.INFO)
log = logging.getLogger("sparehour")

settings: Settings = load_settings()

app = FastAPI(title="Spare Hour API", version=__version__)

# CORS origins
FRONTEND_LOCAL = "http://localhost:5173"
origins = [FRONTEND_LOCAL]
if settings.frontend_prod:
    origins.append(settings.frontend_prod)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not settings.amap_key:
    # still boot so the frontend loads; geo calls will fail with missing_env
    log.warning("Missing env AMAP_WEB_SERVICE_KEY")


def build_deps(cfg: Settings) -> Deps:
    """Wire providers plus the process-wide narrative cache and queue (built once)."""
    geo = AmapProvider(cfg.amap_key, search_timeout=cfg.search_timeout_s, route_timeout=cfg.geo_timeout_s)
    narrative = None
    if cfg.zhipu_key:
        narrative = ZhipuProvider(cfg.zhipu_key, model=cfg.zhipu_model, timeout=cfg.narrative_timeout_s)
    queue = SerialQueue()
    enricher = Enricher(narrative, TTLCache(ttl_seconds=cfg.narrative_cache_ttl_s), queue)
    intent_model = None
    if narrative is not None and cfg.intent_model_enabled:
        intent_model = ModelIntentResolver(narrative, queue)
    return Deps(geo=geo, enricher=enricher, intent_model=intent_model,
                default_city=cfg.default_city, rng=random.Random())


_deps = build_deps(settings)


def get_deps() -> Deps:
    return _deps


# global JSON error handling
# - validation -> 400 { "error": "bad_request", "detail": [...] }
# - HTTPException -> { "error": <detail> }
# - any other exception -> 500 { "error": "server_error" }
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    log.info("bad request on %s: %d errors", request.url.path, len(exc.errors()))
    return JSONResponse(status_code=400, content={"error": "bad_request", "detail": jsonable_errors(exc)})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    log.warning("HTTP %s: %s", exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    # provider detail stays in the log, the user cannot act on it
    log.warning("geo provider failed on %s: %s", request.url.path, exc)
    if not settings.amap_key:
        return JSONResponse(status_code=500, content={"error": "missing_env",
                                                      "message": "Missing AMAP_WEB_SERVICE_KEY"})
    return JSONResponse(status_code=500, content={"error": "server_error"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled exception")
    return JSONResponse(status_code=500, content={"error": "server_error"})


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


@app.post("/api/recommend")
async def recommend_route(req: RecommendRequest, deps: Deps = Depends(get_deps)):
    """
    Pick one destination whose round trip fits the free window, plus up to
    three ranked candidates. An infeasible window is a 200 with empty=true.
    """
    resp = await recommend(req, deps)
    return resp.model_dump(exclude_none=True)


@app.post("/api/egg", response_model=EggResponse, response_model_exclude_none=True)
async def egg_route(req: EggRequest, deps: Deps = Depends(get_deps)):
    window = build_window(req.startTime, req.endTime)
    dest = parse_lng_lat(req.poi.location)
    quest = build_side_quest(window, req.poi.name, req.poi.category, dest, req.playMin)
    if not quest.eligible:
        return EggResponse(eligible=False, message=INELIGIBLE_MESSAGE)

    poi = req.poi.model_dump(exclude={"location"})
    story = await deps.enricher.enrich_story(poi, req.mood, quest.tasks)
    return EggResponse(
        eligible=True,
        egg=Egg(
            title=story.title,
            story=story.story,
            tasks=story.tasks,
            verify=EggVerify(radiusMeter=quest.verification_radius_meters,
                             destLocation=req.poi.location),
            safety=SAFETY,
            source=story.source,
        ),
    )


@app.post("/api/egg-verify", response_model=VerifyResponse)
async def egg_verify_route(req: VerifyRequest):
    reached, dist = verify_arrival(req.user.to_domain(), parse_lng_lat(req.destLocation), req.radiusMeter)
    return VerifyResponse(reached=reached, distanceMeter=dist, radiusMeter=req.radiusMeter)


@app.get("/api/staticmap")
async def staticmap_route(
    origin: Optional[str] = None,
    dest: Optional[str] = None,
    zoom: int = Query(13),
    size: str = Query("750*300"),
    deps: Deps = Depends(get_deps),
):
    try:
        o = parse_lng_lat(origin) if origin else None
        d = parse_lng_lat(dest) if dest else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not o and not d:
        raise HTTPException(status_code=400, detail="origin or dest required")
    png = await deps.geo.render_static_map(o, d, zoom=zoom, size=size)
    return Response(content=png, media_type="image/png",
                    headers={"Cache-Control": "public, max-age=300"})


@app.get("/health")
def health():
    return {"ok": True}
