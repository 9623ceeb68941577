"""
HTTP surface for the fit scoring core: event intake, weights, learner and ranking.
Authentication is handled upstream.
"""

import threading
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .schemas import EventRequest, EventResponse, HealthResponse, RankRow, WeightItem, WeightsMeta
from .learner import router as learner_router
from ..core import events as event_log
from ..core import heartbeat
from ..core import learner as learner_core
from ..core import scorer
from ..core import weights as weight_store
from ..core.config import CORS_ORIGINS, VERSION, debug_enabled, get_learner_interval, is_heartbeat_enabled
from ..core.db import health_check, init_db
from ..core.errors import (
    AlreadyRunningError,
    FleetFitError,
    LearnerCancelledError,
    NotFoundError,
    StorageError,
    UpstreamError,
    ValidationError,
)
from ..util.logging import logger

# Most specific first
ERROR_STATUS = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (AlreadyRunningError, 409),
    (LearnerCancelledError, 409),
    (UpstreamError, 502),
    (StorageError, 503),
)

HEARTBEAT_JOIN_TIMEOUT_SEC = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.heartbeat_thread = None
    if is_heartbeat_enabled():
        heartbeat.register_task("learner", get_learner_interval(), learner_core.run_on_cadence)
        thread = threading.Thread(target=heartbeat.start, name="heartbeat", daemon=True)
        thread.start()
        app.state.heartbeat_thread = thread
    yield
    # An in-flight run rolls back; the previous weights stay current
    learner_core.learner.cancel()
    thread = app.state.heartbeat_thread
    if thread is not None:
        heartbeat.stop()
        thread.join(HEARTBEAT_JOIN_TIMEOUT_SEC)
        if thread.is_alive():
            logger.warning(f"Heartbeat thread still running after {HEARTBEAT_JOIN_TIMEOUT_SEC}s")
        app.state.heartbeat_thread = None


app = FastAPI(
    title="FleetFit API",
    version=VERSION,
    description="Driver-load fit scoring with adaptive weight learning",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(learner_router, prefix="/learner", tags=["learner"])


def status_for(exc: FleetFitError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(FleetFitError)
async def fleetfit_error_handler(request: Request, exc: FleetFitError):
    status_code = status_for(exc)
    logger.log_operation(f"api.{request.url.path}", "error", {"code": exc.code, "status": status_code})
    body = exc.to_dict()
    body.setdefault("details", {})
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"error": "validation_error", "details": details})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    content = {"error": "internal_error", "details": {}}
    if debug_enabled():
        content["details"]["debug"] = str(exc)
    return JSONResponse(status_code=500, content=content)


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check()
    try:
        event_count = event_log.count_events() if db_health else 0
    except StorageError:
        db_health, event_count = False, 0

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        event_count=event_count,
        learner_running=learner_core.learner.is_running()
    )


@app.post("/events", response_model=EventResponse)
def record_event(request: EventRequest):
    """Append one feedback event and return the driver's live stats.

    The event is committed before stats are computed; if the stats read
    fails the response still reports the event as recorded.
    """
    event_id = event_log.record(request.model_dump())

    driver_stats: Optional[Dict[str, Any]] = None
    try:
        stat = learner_core.driver_stats_for(request.driver_id.strip())
        driver_stats = stat.to_dict() if stat else None
    except StorageError as e:
        logger.warning(f"Recorded event {event_id} but could not load driver stats: {e}")

    return EventResponse(ok=True, event_id=event_id, driver_stats=driver_stats)


@app.get("/weights", response_model=List[WeightItem])
def get_weights():
    """Current weight vector ordered by name; empty before the first run."""
    return [WeightItem(name=w.name, value=w.value) for w in weight_store.read().as_list()]


@app.get("/weights/meta", response_model=WeightsMeta)
def get_weights_meta():
    vector = weight_store.read()
    return WeightsMeta(
        run_id=vector.run_id,
        updated_at=event_log.to_storage_ts(vector.updated_at) if vector.updated_at else None,
        count=len(vector)
    )


@app.get("/rank", response_model=List[RankRow])
def rank_endpoint(load_id: str = "", limit: Optional[str] = None):
    """Ranked drivers for a load. Unusable limits fall back to the default."""
    candidates = scorer.rank_for_load(load_id, limit if limit is not None else scorer.DEFAULT_RANK_LIMIT)
    return [RankRow(**c.to_dict()) for c in candidates]


@app.get("/drivers/{driver_id}/stats")
def driver_stats_endpoint(driver_id: str):
    """Live aggregates for one driver, computed from the event log."""
    stat = learner_core.driver_stats_for(driver_id)
    if stat is None:
        raise NotFoundError(f"No events for driver '{driver_id}'", {"driver_id": driver_id})
    return stat.to_dict()
