# scoring.py
# cheap per-candidate scoring (no routing yet), intent filters, relaxation chain, ranking

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, replace
from typing import Callable, List, NamedTuple, Optional

from sparehour.domain import Candidate, EmptyOutcome, Intent, IntentProfile, LngLat, TravelMode
from sparehour.utils import clamp, haversine_meters, ideal_one_way_minutes

log = logging.getLogger("sparehour.scoring")

RANK_LIMIT = 10
ALTERNATES = 3
RELAXED_MIN_STAY = 20
STAY_MARGIN = 10

TOO_TIGHT = "时间段有点紧，往返后游玩时间不足（建议增加时长或切换交通方式）"

# ---- place category -> intent group ----

# AMap top-level type token (before the first ';')
TOP_LEVEL_GROUPS = {
    "餐饮服务": Intent.FOOD,
    "购物服务": Intent.SHOPPING,
    "风景名胜": Intent.PARK,
    "科教文化服务": Intent.CULTURE,
}

TEXT_GROUPS = [
    (Intent.SPA, re.compile(r"温泉|洗浴|汗蒸|足疗|按摩|spa", re.I)),
    (Intent.MOVIE, re.compile(r"电影|影城|影院|影剧院|cinema", re.I)),
    (Intent.CULTURE, re.compile(r"博物馆|展览馆|展馆|美术馆|图书馆|纪念馆|museum|gallery", re.I)),
    (Intent.FOOD, re.compile(r"餐|咖啡|茶|甜品|蛋糕|奶茶|火锅|烧烤|小吃|饭|面馆|酒|食|cafe|coffee|restaurant", re.I)),
    (Intent.SHOPPING, re.compile(r"商场|购物|步行街|百货|超市|mall|plaza", re.I)),
    (Intent.PARK, re.compile(r"公园|广场|江|湖|湿地|绿道|绿地|风景|景区|park", re.I)),
]

# (primary intent, place group) -> signed fit; same group is +1, unlisted mismatch is DEFAULT_MISMATCH
AFFINITY = {
    (Intent.PARK, Intent.FOOD): -0.85,
    (Intent.FOOD, Intent.PARK): -0.85,
    (Intent.SPA, Intent.FOOD): -0.6,
    (Intent.CULTURE, Intent.FOOD): -0.6,
    (Intent.MOVIE, Intent.FOOD): -0.4,
    (Intent.PARK, Intent.SHOPPING): -0.5,
    (Intent.SHOPPING, Intent.PARK): -0.4,
    (Intent.FOOD, Intent.SHOPPING): 0.2,
    (Intent.SHOPPING, Intent.FOOD): 0.1,
    (Intent.MOVIE, Intent.SHOPPING): 0.3,
    (Intent.SHOPPING, Intent.MOVIE): 0.3,
    (Intent.CULTURE, Intent.PARK): 0.3,
    (Intent.PARK, Intent.CULTURE): 0.3,
}
DEFAULT_MISMATCH = -0.3


def place_group(c: Candidate) -> Intent:
    top = (c.category or "").split(";")[0].strip()
    if top in TOP_LEVEL_GROUPS:
        return TOP_LEVEL_GROUPS[top]
    text = f"{c.category} {c.name}"
    for intent, pattern in TEXT_GROUPS:
        if pattern.search(text):
            return intent
    return Intent.OTHER


def affinity(group: Intent, primary: Intent) -> float:
    if primary is Intent.OTHER or group is Intent.OTHER:
        return 0.0
    if group is primary:
        return 1.0
    return AFFINITY.get((primary, group), DEFAULT_MISMATCH)


# ---- dwell time ----

DWELL_RULES = [
    (re.compile(r"温泉|洗浴|足疗|汗蒸|电影|影院"), 120),
    (re.compile(r"火锅|烧烤|烤肉"), 60),
    (re.compile(r"咖啡|甜品|奶茶"), 45),
    (re.compile(r"商场|步行街|购物"), 90),
    (re.compile(r"公园|江边|绿道|散步"), 30),
    (re.compile(r"博物馆|展馆|美术馆"), 60),
]

DWELL_BY_INTENT = {
    Intent.SPA: 120,
    Intent.MOVIE: 120,
    Intent.SHOPPING: 90,
    Intent.CULTURE: 60,
    Intent.FOOD: 45,
    Intent.PARK: 30,
}


def infer_min_stay(profile: IntentProfile, available_minutes: int) -> int:
    signal = " ".join(profile.keywords)
    stay = next((m for p, m in DWELL_RULES if p.search(signal)), None)
    if stay is None:
        stay = DWELL_BY_INTENT.get(profile.primary_intent, 30)
    return max(0, min(stay, available_minutes - STAY_MARGIN))


# ---- weights ----

@dataclass(frozen=True)
class WeightProfile:
    closeness: float
    novelty: float
    match: float
    k: float
    floor: float
    ceil: float


STRONG_WEIGHTS = WeightProfile(closeness=0.4, novelty=0.2, match=0.2, k=0.8, floor=0.15, ceil=1.8)
WEAK_WEIGHTS = WeightProfile(closeness=0.55, novelty=0.25, match=0.2, k=0.3, floor=0.7, ceil=1.3)


def _norm(s: str) -> str:
    return re.sub(r"\s+", "", (s or "").lower())


def count_hits(c: Candidate, keywords: List[str]) -> int:
    hay = _norm(f"{c.name}{c.address}{c.category}")
    return sum(1 for kw in keywords if _norm(kw) and _norm(kw) in hay)


def score_candidates(
    candidates: List[Candidate],
    origin: LngLat,
    mode: TravelMode,
    available_minutes: int,
    profile: IntentProfile,
    match_keywords: List[str],
    rng: random.Random,
) -> List[Candidate]:
    """
    Fill in estimates, affinity and weight. Candidates with no keyword hit
    are dropped when there are keywords to match against.
    """
    ideal = ideal_one_way_minutes(available_minutes)
    w = STRONG_WEIGHTS if profile.strong else WEAK_WEIGHTS
    out: List[Candidate] = []
    for c in candidates:
        c.match_hits = count_hits(c, match_keywords)
        if match_keywords and c.match_hits == 0:
            continue
        dist = c.distance_meters if c.distance_meters and c.distance_meters > 0 else haversine_meters(origin, c.location)
        c.one_way_estimate = max(1, round(dist / mode.meters_per_minute))
        c.play_estimate = available_minutes - 2 * c.one_way_estimate
        closeness = 1 - min(1.0, abs(c.one_way_estimate - ideal) / ideal)
        novelty = rng.uniform(0.7, 1.3)
        match = c.match_hits / len(match_keywords) if match_keywords else 0.0
        c.affinity = affinity(place_group(c), profile.primary_intent)
        factor = clamp(1 + c.affinity * w.k, w.floor, w.ceil)
        c.weight = (w.closeness * closeness + w.novelty * novelty + w.match * match) * 100 * factor
        out.append(c)
    return out


def purity_pass(candidates: List[Candidate], profile: IntentProfile) -> List[Candidate]:
    """Drop off-intent outliers, but only when a clearly on-intent option exists."""
    if not profile.strong or not any(c.affinity >= 0.7 for c in candidates):
        return candidates
    kept = [c for c in candidates if c.affinity >= -0.2]
    if len(kept) < len(candidates):
        log.info("intent purity pass dropped %d candidates", len(candidates) - len(kept))
    return kept


# ---- relaxation chain ----

@dataclass(frozen=True)
class ChainState:
    min_stay: int
    one_way_floor: int


class StepResult(NamedTuple):
    candidates: List[Candidate]
    state: ChainState
    note: Optional[str]


def meets_min_stay(c: Candidate, state: ChainState) -> bool:
    return c.play_estimate >= state.min_stay


def meets_one_way_floor(c: Candidate, state: ChainState) -> bool:
    return c.one_way_estimate >= state.one_way_floor


def relax_min_stay(candidates: List[Candidate], state: ChainState) -> StepResult:
    relaxed = min(state.min_stay, RELAXED_MIN_STAY)
    note = None
    if relaxed < state.min_stay:
        note = f"停留时间要求从 {state.min_stay} 分钟放宽到 {relaxed} 分钟"
    new = replace(state, min_stay=relaxed)
    return StepResult([c for c in candidates if meets_min_stay(c, new)], new, note)


def drop_one_way_floor(candidates: List[Candidate], state: ChainState) -> StepResult:
    note = None
    # estimates are at least 1 minute, so a floor of 1 filters nothing
    if state.one_way_floor > 1:
        note = f"附近合适地点较少，已允许单程不足 {state.one_way_floor} 分钟的近距离地点"
    new = replace(state, one_way_floor=0)
    return StepResult([c for c in candidates if meets_one_way_floor(c, new)], new, note)


class ChainStage(NamedTuple):
    name: str
    check: Callable[[Candidate, ChainState], bool]
    relax: Callable[[List[Candidate], ChainState], StepResult]


# each stage filters the survivors of the previous one and relaxes only its own constraint
RELAX_CHAIN = [
    ChainStage("min_stay", meets_min_stay, relax_min_stay),
    ChainStage("one_way_floor", meets_one_way_floor, drop_one_way_floor),
]


def one_way_floor_for(match_keywords: List[str]) -> int:
    # errands next door are fine when the user asked for something specific
    return 1 if match_keywords else 6


@dataclass
class ChainOutcome:
    candidates: List[Candidate]
    state: ChainState
    notes: List[str]


def run_chain(
    candidates: List[Candidate],
    state: ChainState,
    allow_relax: bool = True,
    stages: List[ChainStage] = RELAX_CHAIN,
) -> ChainOutcome | EmptyOutcome:
    pool = candidates
    notes: List[str] = []
    for stage in stages:
        kept = [c for c in pool if stage.check(c, state)]
        if not kept and allow_relax:
            result = stage.relax(pool, state)
            state, kept = result.state, result.candidates
            if result.note:
                log.info("relax %s: %s", stage.name, result.note)
                notes.append(result.note)
        if not kept:
            return EmptyOutcome(TOO_TIGHT)
        pool = kept
    return ChainOutcome(pool, state, notes)


def rank(candidates: List[Candidate], limit: int = RANK_LIMIT) -> List[Candidate]:
    return sorted(candidates, key=lambda c: c.weight, reverse=True)[:limit]
