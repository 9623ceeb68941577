"""
Domain records for the event log, weight vector, learner statistics and ranking.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class EventType(str, Enum):
    OFFER_SHOWN = "offer_shown"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_DECLINED = "offer_declined"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    PICKUP_SCANNED = "pickup_scanned"
    DELIVERED = "delivered"
    DETENTION = "detention"
    LATE = "late"
    THUMB_UP = "thumb_up"
    THUMB_DOWN = "thumb_down"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


UNKNOWN_LANE_SIDE = "unknown"


def lane_key(origin: Optional[str], dest: Optional[str]) -> Optional[str]:
    """Normalized "origin → dest" key; None when neither side is known."""
    o = (origin or "").strip().lower()
    d = (dest or "").strip().lower()
    if not o and not d:
        return None
    return f"{o or UNKNOWN_LANE_SIDE} → {d or UNKNOWN_LANE_SIDE}"


@dataclass(frozen=True)
class Event:
    event_type: EventType
    driver_id: str
    occurred_at: datetime
    load_id: Optional[str] = None
    lane_origin: Optional[str] = None
    lane_dest: Optional[str] = None
    region: Optional[str] = None
    equipment: Optional[str] = None
    miles: Optional[float] = None
    pay_total_usd: Optional[float] = None
    max_distance: Optional[float] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: Optional[str] = None
    seq: Optional[int] = None
    recorded_at: Optional[datetime] = None

    @property
    def lane_key(self) -> Optional[str]:
        return lane_key(self.lane_origin, self.lane_dest)


@dataclass(frozen=True)
class Weight:
    name: str
    value: float


@dataclass(frozen=True)
class WeightVector:
    """A whole weight vector as committed by one learner run."""
    values: Dict[str, float] = field(default_factory=dict)
    run_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    def is_empty(self) -> bool:
        return not self.values

    def get(self, name: str, default: Optional[float] = None) -> Optional[float]:
        return self.values.get(name, default)

    def as_list(self) -> List[Weight]:
        """Weights ordered by name."""
        return [Weight(name, self.values[name]) for name in sorted(self.values)]

    def __len__(self) -> int:
        return len(self.values)


@dataclass
class DriverStat:
    """Per-driver aggregates derived from the event log."""
    driver_id: str
    offers_shown: int = 0
    accepted: int = 0
    declined: int = 0
    timed_out: int = 0
    assigned: int = 0
    unassigned: int = 0
    pickups: int = 0
    delivered: int = 0
    delivered_on_time: int = 0
    detention: int = 0
    late: int = 0
    thumbs_up: int = 0
    thumbs_down: int = 0
    sample_count: int = 0
    last_event_at: Optional[str] = None

    @property
    def acceptance_rate(self) -> Optional[float]:
        decided = self.accepted + self.declined + self.timed_out
        return self.accepted / decided if decided else None

    @property
    def on_time_rate(self) -> Optional[float]:
        return self.delivered_on_time / self.delivered if self.delivered else None

    @property
    def detention_rate(self) -> Optional[float]:
        if not self.delivered:
            return None
        return min(1.0, self.detention / self.delivered)

    @property
    def sentiment(self) -> float:
        return (self.thumbs_up - self.thumbs_down) / max(1, self.thumbs_up + self.thumbs_down)

    @property
    def fit_score(self) -> float:
        """Laplace-smoothed thumbs score, 0 when there is no feedback."""
        total = self.thumbs_up + self.thumbs_down
        if not total:
            return 0.0
        return round((self.thumbs_up + 1) / (total + 2), 5)

    @property
    def smoothed_acceptance(self) -> Optional[float]:
        decided = self.accepted + self.declined + self.timed_out
        return (self.accepted + 1) / (decided + 2) if decided else None

    @property
    def smoothed_on_time(self) -> Optional[float]:
        return (self.delivered_on_time + 1) / (self.delivered + 2) if self.delivered else None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update({
            "acceptance_rate": self.acceptance_rate,
            "on_time_rate": self.on_time_rate,
            "detention_rate": self.detention_rate,
            "sentiment": self.sentiment,
            "fit_score": self.fit_score,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriverStat":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


@dataclass
class LaneStat:
    driver_id: str
    lane_key: str
    positive: int = 0
    negative: int = 0

    @property
    def affinity(self) -> float:
        return (self.positive - self.negative) / max(1, self.positive + self.negative)


@dataclass(frozen=True)
class StatsSnapshot:
    """Learner statistics cache as read by the scorer."""
    drivers: Dict[str, DriverStat] = field(default_factory=dict)
    lanes: Dict[tuple, float] = field(default_factory=dict)  # (driver_id, lane_key) -> affinity


@dataclass
class Candidate:
    driver_id: str
    full_name: str
    score: float
    reason: str
    breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "driver_id": self.driver_id,
            "full_name": self.full_name,
            "score": self.score,
            "reason": self.reason,
        }


@dataclass
class LearnerRun:
    run_id: str
    trigger: str
    started_at: str
    finished_at: Optional[str] = None
    ok: bool = False
    events_processed: int = 0
    drivers: int = 0
    notes: Optional[str] = None


# Driver activity is resolved once into one of these variants; the scorer
# never probes raw fields.
@dataclass(frozen=True)
class BooleanActive:
    value: bool

    def is_eligible(self) -> bool:
        return self.value


@dataclass(frozen=True)
class StatusActive:
    status: str
    active: bool

    def is_eligible(self) -> bool:
        return self.active


@dataclass(frozen=True)
class UnknownActive:
    def is_eligible(self) -> bool:
        return True


Activity = Union[BooleanActive, StatusActive, UnknownActive]


@dataclass(frozen=True)
class DriverRecord:
    driver_id: str
    full_name: str
    activity: Activity = field(default_factory=UnknownActive)
    equipment: Optional[str] = None
    home_region: Optional[str] = None
    preferred_regions: tuple = ()
    max_distance: Optional[float] = None

    @property
    def eligible(self) -> bool:
        return self.activity.is_eligible()


@dataclass(frozen=True)
class LoadRecord:
    load_id: str
    lane_origin: Optional[str] = None
    lane_dest: Optional[str] = None
    region: Optional[str] = None
    equipment: Optional[str] = None
    miles: Optional[float] = None
    pay_total_usd: Optional[float] = None

    @property
    def lane_key(self) -> Optional[str]:
        return lane_key(self.lane_origin, self.lane_dest)
