# models.py
# typed request/response models for the HTTP layer (camelCase matches the frontend)

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from sparehour.domain import LngLat, TravelMode
from sparehour.utils import parse_hhmm, parse_lng_lat


class Point(BaseModel):
    lng: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)

    def to_domain(self) -> LngLat:
        return LngLat(lng=self.lng, lat=self.lat)


def _check_hhmm(v: str) -> str:
    parse_hhmm(v)
    return v.strip()


def _check_lng_lat(v: str) -> str:
    parse_lng_lat(v)
    return v.strip()


class RecommendRequest(BaseModel):
    origin: Point
    mode: TravelMode = TravelMode.WALK
    startTime: str
    endTime: str
    mood: str = ""
    categories: Optional[List[str]] = None
    # None -> server default city, "" -> no city scope
    city: Optional[str] = None
    minStayMin: Optional[int] = Field(None, ge=0, le=600)
    allowRelax: bool = True

    check_times = field_validator("startTime", "endTime")(_check_hhmm)


class IntentOut(BaseModel):
    keywords: List[str]
    primaryIntent: str
    confidence: float
    source: Literal["rule", "manual", "model"]


class CandidateOut(BaseModel):
    name: str
    category: str
    address: str
    location: str
    distanceMeter: Optional[int] = None
    oneWayMin: int
    playMinEst: int
    weight: float
    affinity: float


class InputEcho(BaseModel):
    origin: Point
    mode: TravelMode
    startTime: str
    endTime: str
    availableMin: int


class ResultOut(BaseModel):
    name: str
    category: str
    address: str
    location: str
    goMin: int
    backMin: int
    playMin: int
    polyline: str
    reasons: List[str]
    guide: List[str]


class RecommendResponse(BaseModel):
    ok: bool = True
    empty: Literal[False] = False
    city: str
    input: InputEcho
    intent: IntentOut
    relaxNotes: Optional[List[str]] = None
    candidates: List[CandidateOut]
    reportMarkdown: Optional[str] = None
    enrichSource: Literal["rule", "model"] = "rule"
    result: ResultOut


class EmptyResponse(BaseModel):
    ok: bool = True
    empty: Literal[True] = True
    message: str


class EggPoi(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = ""
    address: str = ""
    location: str = Field(..., min_length=3)

    check_location = field_validator("location")(_check_lng_lat)


class EggRequest(BaseModel):
    mode: TravelMode = TravelMode.WALK
    startTime: str
    endTime: str
    mood: str = ""
    city: Optional[str] = None
    poi: EggPoi
    playMin: Optional[int] = Field(None, ge=0, le=24 * 60)

    check_times = field_validator("startTime", "endTime")(_check_hhmm)


class EggVerify(BaseModel):
    radiusMeter: int
    destLocation: str


class Egg(BaseModel):
    kind: str = "challenge"
    title: str
    story: str
    tasks: List[str]
    verify: EggVerify
    safety: List[str]
    source: Literal["rule", "model"] = "rule"


class EggResponse(BaseModel):
    ok: bool = True
    eligible: bool
    message: Optional[str] = None
    egg: Optional[Egg] = None


class VerifyRequest(BaseModel):
    user: Point
    destLocation: str = Field(..., min_length=3)
    radiusMeter: int = Field(140, ge=30, le=1000)

    check_location = field_validator("destLocation")(_check_lng_lat)


class VerifyResponse(BaseModel):
    ok: bool = True
    reached: bool
    distanceMeter: int
    radiusMeter: int
