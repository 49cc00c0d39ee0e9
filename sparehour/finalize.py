# finalize.py
# precise routing for the single top candidate -> go/play/back split

import asyncio
import logging
from typing import List, Union

from sparehour.domain import Candidate, EmptyOutcome, LngLat, TravelMode, TripPlan
from sparehour.providers.base import GeoProvider

log = logging.getLogger("sparehour.finalize")

ROUTE_DISAGREES = "路线规划有点慢（网络波动）。请再点一次“随机一个方案”。"


def to_minutes(seconds: float) -> int:
    return max(1, round(seconds / 60))


async def finalize_budget(
    provider: GeoProvider,
    mode: TravelMode,
    origin: LngLat,
    top: Candidate,
    available_minutes: int,
    min_stay: int,
    alternates: List[Candidate],
    relax_notes: List[str],
) -> Union[TripPlan, EmptyOutcome]:
    """
    Two routing calls (there and back) for one candidate only. A negative
    play time means the estimate was badly off; report it, do not try the
    next candidate.
    """
    go, back = await asyncio.gather(
        provider.route(mode, origin, top.location),
        provider.route(mode, top.location, origin),
    )
    go_min = to_minutes(go.duration_seconds)
    back_min = to_minutes(back.duration_seconds)
    play_min = available_minutes - (go_min + back_min)

    if play_min < 0:
        log.warning("routing for %s exceeds window: go=%d back=%d avail=%d",
                    top.name, go_min, back_min, available_minutes)
        return EmptyOutcome(ROUTE_DISAGREES)

    notes = list(relax_notes)
    if play_min < min_stay:
        notes.append(
            f"实际路线较慢，可停留约 {play_min} 分钟，少于建议的 {min_stay} 分钟"
            f"（可延长时间段或切换交通方式）"
        )

    return TripPlan(
        destination=top,
        go_minutes=go_min,
        back_minutes=back_min,
        play_minutes=play_min,
        polyline=go.polyline,
        relax_notes=notes,
        top_alternates=alternates[:3],
    )
