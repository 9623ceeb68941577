"""
Request and response models for the fit scoring API.
Field-level checks live here; domain validation stays in fleetfit.core.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any

from ..core.schema import EventType


class EventRequest(BaseModel):
    event_type: str
    driver_id: str
    load_id: Optional[str] = None
    occurred_at: Optional[str] = None
    lane_origin: Optional[str] = None
    lane_dest: Optional[str] = None
    region: Optional[str] = None
    equipment: Optional[str] = None
    miles: Optional[float] = None
    pay_total_usd: Optional[float] = None
    max_distance: Optional[float] = None
    payload: Optional[Dict[str, Any]] = None

    @field_validator('event_type')
    @classmethod
    def event_type_must_be_known(cls, v):
        if v not in EventType.values():
            raise ValueError(f'event_type must be one of: {EventType.values()}')
        return v

    @field_validator('driver_id')
    @classmethod
    def driver_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('driver_id cannot be empty')
        return v


class EventResponse(BaseModel):
    ok: bool
    event_id: str
    driver_stats: Optional[Dict[str, Any]] = None


class WeightItem(BaseModel):
    name: str
    value: float


class WeightsMeta(BaseModel):
    run_id: Optional[str] = None
    updated_at: Optional[str] = None
    count: int


class LearnerRunResponse(BaseModel):
    ok: bool
    run_id: Optional[str] = None
    weights: List[WeightItem]


class LearnerRunRecord(BaseModel):
    run_id: str
    trigger: str
    started_at: str
    finished_at: Optional[str] = None
    ok: bool
    events_processed: int
    drivers: int
    notes: Optional[str] = None


class LearningSummary(BaseModel):
    drivers_with_signals: int
    total_events: int
    avg_fit_score: float
    last_run_at: Optional[str] = None
    last_run_ok: bool
    last_run_trigger: Optional[str] = None


class RankRow(BaseModel):
    driver_id: str
    full_name: str
    score: float
    reason: str


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    event_count: int
    learner_running: bool
