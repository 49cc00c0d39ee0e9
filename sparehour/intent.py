# intent.py
# free-text mood -> search keywords + primary intent (rules first, model optional)

import logging
import re
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from sparehour.domain import Intent, IntentProfile
from sparehour.providers.base import NarrativeError, NarrativeProvider
from sparehour.providers.zhipu import extract_json
from sparehour.utils import SerialQueue

log = logging.getLogger("sparehour.intent")

MAX_KEYWORDS = 6
SHORT_TEXT_CHARS = 8
STRONG_CONFIDENCE = 0.75
WEAK_CONFIDENCE = 0.55

# trigger -> keyword tokens; every set is checked, a mood can hit several
KEYWORD_RULES = [
    (re.compile(r"温泉|泡澡|泡汤|汗蒸|洗浴|按摩|足疗|spa|massage", re.I), ["温泉", "洗浴", "足疗"]),
    (re.compile(r"咖啡|拿铁|美式|coffee|latte|cafe", re.I), ["咖啡"]),
    (re.compile(r"甜品|甜点|蛋糕|奶茶|dessert|cake", re.I), ["甜品", "奶茶"]),
    (re.compile(r"火锅|烧烤|烤肉|串串|撸串|hotpot|bbq", re.I), ["火锅", "烧烤"]),
    (re.compile(r"小吃|夜市|美食|好吃|饿|吃饭|snack", re.I), ["小吃", "美食"]),
    (re.compile(r"公园|散步|遛弯|走走|江边|河边|湖边|绿道|草地|park|walk", re.I), ["公园", "江边", "绿道"]),
    (re.compile(r"逛街|购物|商场|买买买|shopping|mall", re.I), ["商场", "步行街"]),
    (re.compile(r"电影|影院|看片|cinema|movie|film", re.I), ["电影院"]),
    (re.compile(r"博物馆|展览|看展|展馆|美术馆|历史|museum|gallery|exhibit", re.I), ["博物馆", "展馆", "美术馆"]),
]

# priority order: first hit wins
INTENT_RULES = [
    (Intent.SPA, re.compile(r"温泉|泡澡|泡汤|汗蒸|洗浴|按摩|足疗|spa|massage", re.I)),
    (Intent.MOVIE, re.compile(r"电影|影院|影城|看片|cinema|movie|film", re.I)),
    (Intent.CULTURE, re.compile(r"博物馆|展览|看展|展馆|美术馆|图书馆|历史|museum|gallery|exhibit", re.I)),
    (Intent.PARK, re.compile(r"公园|散步|遛弯|走走|江边|河边|湖边|绿道|草地|风景|park|walk", re.I)),
    (Intent.SHOPPING, re.compile(r"逛街|购物|商场|步行街|买买买|shopping|mall", re.I)),
    (Intent.FOOD, re.compile(r"咖啡|拿铁|甜品|甜点|蛋糕|奶茶|火锅|烧烤|烤肉|串串|小吃|夜市|美食|好吃|饿|吃|喝|coffee|cafe|food|bbq", re.I)),
]


def _dedupe_tokens(tokens: List[str], limit: int = MAX_KEYWORDS) -> List[str]:
    out: List[str] = []
    for t in tokens:
        t = (t or "").strip()
        if t and t not in out:
            out.append(t)
    return out[:limit]


def heuristic_keywords(text: str) -> List[str]:
    text = (text or "").strip()
    tokens: List[str] = []
    for pattern, kws in KEYWORD_RULES:
        if pattern.search(text):
            tokens.extend(kws)
    tokens = _dedupe_tokens(tokens)
    if not tokens and text and len(text) <= SHORT_TEXT_CHARS:
        tokens = [text]
    return tokens


def infer_intent_primary(text: str, keywords: List[str]) -> tuple[Intent, bool]:
    """(primary intent, strong). Strong means a category trigger actually fired."""
    haystack = " ".join([text or "", *keywords])
    for intent, pattern in INTENT_RULES:
        if pattern.search(haystack):
            return intent, True
    return Intent.OTHER, False


def rule_profile(text: str, categories: Optional[List[str]] = None) -> IntentProfile:
    if categories:
        keywords = _dedupe_tokens(categories)
        source = "manual"
    else:
        keywords = heuristic_keywords(text)
        source = "rule"
    primary, strong = infer_intent_primary(text, keywords)
    return IntentProfile(
        keywords=keywords,
        primary_intent=primary,
        confidence=STRONG_CONFIDENCE if strong else WEAK_CONFIDENCE,
        source=source,
        strong=strong,
    )


# (rule strong?, model disagrees with rule?) -> minimum model confidence to trust it
TRUST_TABLE = {
    (False, False): 0.7,
    (False, True): 0.7,
    (True, False): 0.7,
    (True, True): 0.85,
}


def should_trust_model(rule: IntentProfile, model: IntentProfile) -> bool:
    conflict = model.primary_intent != rule.primary_intent
    return model.confidence >= TRUST_TABLE[(rule.strong, conflict)]


def merge_profiles(rule: IntentProfile, model: IntentProfile) -> IntentProfile:
    keywords = _dedupe_tokens(rule.keywords + model.keywords)
    if should_trust_model(rule, model):
        return IntentProfile(
            keywords=keywords,
            primary_intent=model.primary_intent,
            confidence=model.confidence,
            source="model",
            strong=True,
        )
    return IntentProfile(
        keywords=keywords,
        primary_intent=rule.primary_intent,
        confidence=rule.confidence,
        source=rule.source,
        strong=rule.strong,
    )


class ModelIntent(BaseModel):
    primaryIntent: Intent
    keywords: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0, le=1)


INTENT_PROMPT = (
    "你是一个出行偏好解析器。根据用户的一句话，判断他最想去的地点类型。\n"
    "primaryIntent 只能是 park/food/shopping/culture/movie/spa/other 之一；"
    "keywords 是最多6个适合地图搜索的地点类型短词（如 咖啡、公园、商场）；"
    "confidence 是0到1之间的小数。\n"
    "输出必须是严格 JSON（不要 Markdown），格式："
    '{{"primaryIntent":"...","keywords":["..."],"confidence":0.8}}\n'
    "用户的话：{mood}"
)


class ModelIntentResolver:
    def __init__(self, provider: NarrativeProvider, queue: Optional[SerialQueue] = None):
        self.provider = provider
        self.queue = queue or SerialQueue()

    async def resolve(self, text: str) -> IntentProfile:
        async with self.queue:
            content = await self.provider.complete(INTENT_PROMPT.format(mood=text))
        try:
            parsed = ModelIntent(**extract_json(content))
        except ValidationError as e:
            raise NarrativeError("intent reply failed validation") from e
        return IntentProfile(
            keywords=_dedupe_tokens(parsed.keywords),
            primary_intent=parsed.primaryIntent,
            confidence=parsed.confidence,
            source="model",
            strong=parsed.confidence >= 0.7,
        )


async def resolve_intent(
    text: str,
    categories: Optional[List[str]] = None,
    model: Optional[ModelIntentResolver] = None,
) -> IntentProfile:
    """
    Explicit categories are authoritative. Otherwise run the rule pass and,
    if a model resolver is given, let it enrich (never replace) the result.
    Never raises: any model failure silently leaves the rule result.
    """
    rule = rule_profile(text, categories)
    if categories or model is None or not (text or "").strip():
        return rule
    try:
        model_profile = await model.resolve(text)
    except Exception as e:
        log.info("intent model unavailable, using rules: %s", e)
        return rule
    merged = merge_profiles(rule, model_profile)
    log.info("intent rule=%s model=%s(%.2f) -> %s via %s",
             rule.primary_intent.value, model_profile.primary_intent.value,
             model_profile.confidence, merged.primary_intent.value, merged.source)
    return merged
