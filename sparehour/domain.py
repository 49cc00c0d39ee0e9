# domain.py
# per-request working types for the recommend pipeline (never persisted)

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

MIN_PLANNING_MINUTES = 30
MAX_PLANNING_MINUTES = 600
MINUTES_PER_DAY = 24 * 60


class TravelMode(str, Enum):
    WALK = "walk"
    BIKE = "bike"
    DRIVE = "drive"

    @property
    def meters_per_minute(self) -> int:
        return {"walk": 85, "bike": 250, "drive": 550}[self.value]

    @property
    def label(self) -> str:
        return {"walk": "步行", "bike": "骑行", "drive": "驾车"}[self.value]


class Intent(str, Enum):
    PARK = "park"
    FOOD = "food"
    SHOPPING = "shopping"
    CULTURE = "culture"
    MOVIE = "movie"
    SPA = "spa"
    OTHER = "other"


@dataclass(frozen=True)
class LngLat:
    lng: float
    lat: float

    def as_param(self) -> str:
        """AMap style "lng,lat"."""
        return f"{self.lng:.6f},{self.lat:.6f}"


@dataclass(frozen=True)
class TimeWindow:
    start_minute: int
    end_minute: int

    @property
    def crosses_midnight(self) -> bool:
        return self.end_minute < self.start_minute

    @property
    def available_minutes(self) -> int:
        if self.crosses_midnight:
            return MINUTES_PER_DAY - self.start_minute + self.end_minute
        return self.end_minute - self.start_minute

    @property
    def planning_minutes(self) -> int:
        # only bounds search/ranking; the raw window is what gets echoed back
        return max(MIN_PLANNING_MINUTES, min(MAX_PLANNING_MINUTES, self.available_minutes))


@dataclass
class IntentProfile:
    keywords: List[str]
    primary_intent: Intent = Intent.OTHER
    confidence: float = 0.55
    source: str = "rule"  # rule | manual | model
    strong: bool = False


@dataclass
class Place:
    """Raw nearby-search hit as returned by a geo provider."""
    name: str
    category: str
    address: str
    location: LngLat
    distance_meters: Optional[float] = None


@dataclass
class Route:
    duration_seconds: float
    polyline: str = ""


@dataclass
class Candidate:
    id: str
    name: str
    category: str
    address: str
    location: LngLat
    distance_meters: Optional[float] = None
    one_way_estimate: int = 0
    play_estimate: int = 0
    weight: float = 0.0
    match_hits: int = 0
    affinity: float = 0.0

    @classmethod
    def from_place(cls, place: Place) -> "Candidate":
        return cls(
            id=f"{place.location.as_param()}::{place.name}",
            name=place.name,
            category=place.category,
            address=place.address,
            location=place.location,
            distance_meters=place.distance_meters,
        )


@dataclass
class TripPlan:
    destination: Candidate
    go_minutes: int
    back_minutes: int
    play_minutes: int
    polyline: str = ""
    relax_notes: List[str] = field(default_factory=list)
    top_alternates: List[Candidate] = field(default_factory=list)


@dataclass
class EmptyOutcome:
    """Infeasible request; a normal answer, not an error."""
    message: str


@dataclass
class SideQuest:
    eligible: bool
    tasks: List[str] = field(default_factory=list)
    verification_radius_meters: int = 140
    destination_location: Optional[LngLat] = None
