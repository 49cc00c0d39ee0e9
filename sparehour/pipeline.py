# pipeline.py
# recommend = intent -> gather -> score/filter -> finalize top-1 -> enrich

import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Union

from sparehour.domain import Candidate, EmptyOutcome, IntentProfile, TimeWindow, TravelMode, TripPlan
from sparehour.enrich import Enricher
from sparehour.finalize import finalize_budget
from sparehour.gather import NOTHING_NEARBY, gather_candidates
from sparehour.intent import ModelIntentResolver, resolve_intent
from sparehour.models import (
    CandidateOut,
    EmptyResponse,
    InputEcho,
    IntentOut,
    RecommendRequest,
    RecommendResponse,
    ResultOut,
)
from sparehour.providers.base import GeoProvider
from sparehour.scoring import (
    ALTERNATES,
    ChainState,
    infer_min_stay,
    one_way_floor_for,
    purity_pass,
    rank,
    run_chain,
    score_candidates,
)
from sparehour.utils import build_window, suggested_radius_meters

log = logging.getLogger("sparehour.pipeline")

NO_CITY_LABEL = "不限城市"


@dataclass
class Deps:
    geo: GeoProvider
    enricher: Enricher
    intent_model: Optional[ModelIntentResolver] = None
    default_city: str = "宜昌"
    rng: random.Random = field(default_factory=random.Random)


def window_notes(window: TimeWindow) -> List[str]:
    raw, planned = window.available_minutes, window.planning_minutes
    if raw < planned:
        return [f"时间段只有 {raw} 分钟，按最短 {planned} 分钟规划"]
    if raw > planned:
        return [f"时间段超过 {planned} 分钟，按 {planned} 分钟规划"]
    return []


def build_reasons(plan: TripPlan, mode: TravelMode, mood: str, profile: IntentProfile) -> List[str]:
    reasons = [
        f"时间闭环：去{plan.go_minutes}分 + 玩{plan.play_minutes}分 + 回{plan.back_minutes}分",
        f"交通方式：{mode.label}",
        f"偏好提示：{mood}" if mood else "随机小确幸",
    ]
    if profile.keywords and plan.destination.match_hits:
        reasons.append(f"匹配偏好：{'、'.join(profile.keywords[:3])}")
    return reasons


def trip_context(req: RecommendRequest, city: Optional[str], profile: IntentProfile,
                 plan: TripPlan, available: int) -> dict:
    dest = plan.destination
    return {
        "city": city or "",
        "mode": req.mode.value,
        "startTime": req.startTime,
        "endTime": req.endTime,
        "availableMin": available,
        "mood": req.mood,
        "intent": profile.primary_intent.value,
        "destination": {"name": dest.name, "category": dest.category, "address": dest.address},
        "goMin": plan.go_minutes,
        "backMin": plan.back_minutes,
        "playMin": plan.play_minutes,
        "alternates": [c.name for c in plan.top_alternates if c.id != dest.id],
        "relaxNotes": plan.relax_notes,
    }


def candidate_out(c: Candidate) -> CandidateOut:
    return CandidateOut(
        name=c.name,
        category=c.category,
        address=c.address,
        location=f"{c.location.lng},{c.location.lat}",
        distanceMeter=round(c.distance_meters) if c.distance_meters else None,
        oneWayMin=c.one_way_estimate,
        playMinEst=c.play_estimate,
        weight=round(c.weight, 2),
        affinity=c.affinity,
    )


async def recommend(req: RecommendRequest, deps: Deps) -> Union[RecommendResponse, EmptyResponse]:
    window = build_window(req.startTime, req.endTime)
    available = window.planning_minutes
    origin = req.origin.to_domain()
    city = deps.default_city if req.city is None else (req.city.strip() or None)

    profile = await resolve_intent(req.mood, req.categories, deps.intent_model)
    radius = suggested_radius_meters(req.mode, available)
    log.info("recommend mode=%s avail=%d radius=%dm intent=%s kws=%s",
             req.mode.value, available, radius, profile.primary_intent.value, profile.keywords)

    gathered = await gather_candidates(deps.geo, origin, profile.keywords, radius, city)
    if not gathered.candidates:
        return EmptyResponse(message=NOTHING_NEARBY)

    notes = window_notes(window)
    match_keywords = profile.keywords
    if gathered.used_fallback:
        # generic results would all fail the keyword match
        match_keywords = []
        notes.append("附近没有与偏好直接匹配的地点，已改为周边随机推荐")

    scored = score_candidates(gathered.candidates, origin, req.mode, available,
                              profile, match_keywords, deps.rng)
    scored = purity_pass(scored, profile)
    if not scored:
        return EmptyResponse(message=NOTHING_NEARBY)

    min_stay = req.minStayMin if req.minStayMin is not None else infer_min_stay(profile, available)
    state = ChainState(min_stay=min_stay, one_way_floor=one_way_floor_for(match_keywords))
    chain = run_chain(scored, state, allow_relax=req.allowRelax)
    if isinstance(chain, EmptyOutcome):
        return EmptyResponse(message=chain.message)

    ranked = rank(chain.candidates)
    plan = await finalize_budget(
        deps.geo, req.mode, origin, ranked[0], available,
        min_stay=chain.state.min_stay,
        alternates=ranked[:ALTERNATES],
        relax_notes=notes + chain.notes,
    )
    if isinstance(plan, EmptyOutcome):
        return EmptyResponse(message=plan.message)

    text = await deps.enricher.enrich_trip(trip_context(req, city, profile, plan, available))
    dest = plan.destination
    return RecommendResponse(
        city=city or NO_CITY_LABEL,
        input=InputEcho(origin=req.origin, mode=req.mode, startTime=req.startTime,
                        endTime=req.endTime, availableMin=available),
        intent=IntentOut(
            keywords=profile.keywords,
            primaryIntent=profile.primary_intent.value,
            confidence=profile.confidence,
            source=profile.source,
        ),
        relaxNotes=plan.relax_notes or None,
        candidates=[candidate_out(c) for c in plan.top_alternates],
        reportMarkdown=text.report_markdown,
        enrichSource=text.source,
        result=ResultOut(
            name=dest.name,
            category=dest.category,
            address=dest.address,
            location=f"{dest.location.lng},{dest.location.lat}",
            goMin=plan.go_minutes,
            backMin=plan.back_minutes,
            playMin=plan.play_minutes,
            polyline=plan.polyline,
            reasons=build_reasons(plan, req.mode, req.mood, profile),
            guide=text.guide,
        ),
    )
