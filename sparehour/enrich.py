# enrich.py
# best-effort narrative text (report, guide, side-quest story) with deterministic fallback

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from sparehour.domain import TravelMode
from sparehour.providers.base import NarrativeProvider
from sparehour.providers.zhipu import extract_json
from sparehour.utils import SerialQueue, TTLCache

log = logging.getLogger("sparehour.enrich")

# tasks a model may not introduce, whatever the wording
UNSAFE_TASK = re.compile(r"翻越|翻墙|攀爬|爬上|爬到|封闭区域|禁止进入|陌生人|搭讪|加微信|私信|trespass|climb|stranger", re.I)

SAFETY_RULES = "硬性安全要求：公共场所、白天触发、不引导翻找/攀爬/进入封闭区域、不涉及与陌生人见面或真实社交。"


def _strip_items(v: List[str]) -> List[str]:
    return [s.strip() for s in v]


class TripNarrative(BaseModel):
    reportMarkdown: str = Field(min_length=1)
    guide: List[str] = Field(min_length=3, max_length=6)

    check_guide = field_validator("guide")(_strip_items)


class StoryNarrative(BaseModel):
    title: str = Field(min_length=1)
    story: str = Field(min_length=1)
    tasks: List[str] = Field(min_length=2, max_length=5)

    check_tasks = field_validator("tasks")(_strip_items)


@dataclass
class TripText:
    report_markdown: str
    guide: List[str]
    source: str = "rule"


@dataclass
class StoryText:
    title: str
    story: str
    tasks: List[str] = field(default_factory=list)
    source: str = "rule"


def _mode_label(ctx: dict) -> str:
    return TravelMode(ctx["mode"]).label


def fallback_guide(ctx: dict) -> List[str]:
    return [
        f"从现在出发，{_mode_label(ctx)}约 {ctx['goMin']} 分钟可到。",
        f"建议停留约 {ctx['playMin']} 分钟，随手逛逛/拍照/吃点小东西。",
        f"返程预计 {ctx['backMin']} 分钟，整体时间正好卡在空档里。",
        "小贴士：留 10-15 分钟机动更舒服。",
    ]


def fallback_report(ctx: dict) -> str:
    dest = ctx["destination"]
    lines = [
        f"## {dest['name']}",
        "",
        f"- 时间段：{ctx['startTime']}-{ctx['endTime']}（可用 {ctx['availableMin']} 分钟）",
        f"- 交通：{_mode_label(ctx)}，去 {ctx['goMin']} 分 / 玩 {ctx['playMin']} 分 / 回 {ctx['backMin']} 分",
    ]
    if dest.get("address"):
        lines.append(f"- 地址：{dest['address']}")
    if ctx.get("mood"):
        lines.append(f"- 你的偏好：{ctx['mood']}")
    if ctx.get("alternates"):
        lines.append(f"- 备选：{'、'.join(ctx['alternates'])}")
    if ctx.get("relaxNotes"):
        lines += ["", "### 说明", *[f"- {n}" for n in ctx["relaxNotes"]]]
    return "\n".join(lines)


def fallback_story(poi: dict, tasks: List[str]) -> StoryText:
    title = f"碎片时间挑战：{poi['name']}"
    story = "\n".join([
        "你收到一条匿名线索：",
        f"“白天的{poi['name']}，藏着一枚不会被人看见的‘时间碎片’。”",
        "走到人来人往的公共区域，别靠近危险边缘，别进入封闭区域。",
        "当你完成挑战，‘宝藏’会在你的脑海里自动解锁。",
    ])
    return StoryText(title=title, story=story, tasks=list(tasks), source="rule")


def trip_prompt(ctx: dict) -> str:
    dest = ctx["destination"]
    return "\n".join([
        "你是一个“临时空闲去哪儿”的轻攻略助手。不要编造不存在的项目，务必具体可执行。",
        "输出必须是严格 JSON（不要 Markdown 代码块），格式："
        '{"reportMarkdown":"...","guide":["...","...","..."]}，guide 3-6 条，每条不超过28个字。',
        f"信息：城市={ctx.get('city') or '不限'}；地点={dest['name']}；类别={dest.get('category', '')}；"
        f"地址={dest.get('address', '')}；交通={_mode_label(ctx)}；时间段={ctx['startTime']}-{ctx['endTime']}；"
        f"去程={ctx['goMin']}分钟；返程={ctx['backMin']}分钟；可游玩={ctx['playMin']}分钟。",
        f"用户偏好：{ctx.get('mood') or '（未填写）'}；意图：{ctx.get('intent', 'other')}",
        f"备选地点：{'、'.join(ctx.get('alternates') or []) or '无'}",
    ])


def story_prompt(poi: dict, mood: str, tasks: List[str]) -> str:
    return "\n".join([
        "你是“碎片时间定向挑战”的文案生成器。",
        "目标：基于给定地点，生成一个轻悬疑/轻玄幻风格的“线索故事”，并给出 2-4 条安全任务。",
        SAFETY_RULES,
        '输出必须是严格 JSON（不要 Markdown），格式：{"title":"...","story":"...","tasks":["...","..."]}',
        f"地点：{poi['name']}（{poi.get('category', '')}） {poi.get('address', '')}",
        f"用户偏好：{mood}" if mood else "用户偏好：（未填写）",
        f"可参考任务（可改写但不要更危险）：{json.dumps(tasks, ensure_ascii=False)}",
    ])


class Enricher:
    """
    Owns nothing global: the cache and queue are passed in, built once at
    startup. Without a provider every call returns the fallback text.
    """

    def __init__(
        self,
        provider: Optional[NarrativeProvider],
        cache: TTLCache,
        queue: SerialQueue,
    ):
        self.provider = provider
        self.cache = cache
        self.queue = queue

    async def _ask(self, prompt: str) -> dict:
        # one narrative call at a time per process
        async with self.queue:
            content = await self.provider.complete(prompt)
        return extract_json(content)

    async def enrich_trip(self, ctx: dict) -> TripText:
        fallback = TripText(fallback_report(ctx), fallback_guide(ctx), "rule")
        if self.provider is None:
            return fallback
        key = "trip:" + json.dumps(ctx, sort_keys=True, ensure_ascii=False)
        hit = self.cache.get(key)
        if hit is not None:
            return TripText(hit["reportMarkdown"], hit["guide"], "model")
        try:
            parsed = TripNarrative(**await self._ask(trip_prompt(ctx)))
        except Exception as e:
            log.warning("trip narrative failed, using fallback: %s", e)
            return fallback
        self.cache.set(key, parsed.model_dump())
        return TripText(parsed.reportMarkdown, parsed.guide, "model")

    async def enrich_story(self, poi: dict, mood: str, tasks: List[str]) -> StoryText:
        fallback = fallback_story(poi, tasks)
        if self.provider is None:
            return fallback
        key = "story:" + json.dumps({"poi": poi, "mood": mood, "tasks": tasks},
                                    sort_keys=True, ensure_ascii=False)
        hit = self.cache.get(key)
        if hit is not None:
            return StoryText(hit["title"], hit["story"], hit["tasks"], "model")
        try:
            parsed = StoryNarrative(**await self._ask(story_prompt(poi, mood, tasks)))
        except Exception as e:
            log.warning("story narrative failed, using fallback: %s", e)
            return fallback
        if any(UNSAFE_TASK.search(t) for t in parsed.tasks):
            log.warning("story narrative proposed an unsafe task, using template tasks")
            return fallback
        self.cache.set(key, parsed.model_dump())
        return StoryText(parsed.title, parsed.story, parsed.tasks, "model")
