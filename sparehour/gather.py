# gather.py
# nearby search fan-out: per keyword, distance-sorted, deduped, capped

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sparehour.domain import Candidate, LngLat
from sparehour.providers.base import GeoProvider
from sparehour.utils import dedupe

log = logging.getLogger("sparehour.gather")

DEFAULT_KEYWORDS = ["咖啡", "甜品", "小吃", "夜市", "公园", "江边", "商场", "电影院", "博物馆", "展馆", "景点"]

PAGES_PER_KEYWORD = 2
PAGE_SIZE = 15
RAW_CAP = 45
UNIQUE_CAP = 18

NOTHING_NEARBY = "没有找到合适的附近地点（可尝试扩大时间段或切换交通方式）"


@dataclass
class GatherResult:
    candidates: List[Candidate] = field(default_factory=list)
    keywords_used: List[str] = field(default_factory=list)
    used_fallback: bool = False


async def _collect(
    provider: GeoProvider,
    origin: LngLat,
    keywords: List[str],
    radius: int,
    city: Optional[str],
) -> List[Candidate]:
    raw: List[Candidate] = []
    for kw in keywords:
        for page in range(1, PAGES_PER_KEYWORD + 1):
            places = await provider.search_nearby(origin, kw, radius, page=page,
                                                  page_size=PAGE_SIZE, city=city)
            raw.extend(Candidate.from_place(p) for p in places)
            if len(raw) >= RAW_CAP or len(places) < PAGE_SIZE:
                break
        if len(raw) >= RAW_CAP:
            break
    return raw


async def gather_candidates(
    provider: GeoProvider,
    origin: LngLat,
    keywords: List[str],
    radius: int,
    city: Optional[str] = None,
) -> GatherResult:
    """
    Query the provider keyword by keyword. Zero hits for the intent keywords
    triggers one rerun with the generic list. Provider errors propagate.
    """
    search_kws = keywords or DEFAULT_KEYWORDS
    raw = await _collect(provider, origin, search_kws, radius, city)
    used_fallback = False
    if not raw and keywords:
        log.info("no hits for %s within %dm, retrying with generic keywords", keywords, radius)
        search_kws = DEFAULT_KEYWORDS
        raw = await _collect(provider, origin, search_kws, radius, city)
        used_fallback = True

    unique = dedupe(raw)[:UNIQUE_CAP]
    log.info("gathered raw=%d unique=%d radius=%dm", len(raw), len(unique), radius)
    return GatherResult(candidates=unique, keywords_used=search_kws, used_fallback=used_fallback)
