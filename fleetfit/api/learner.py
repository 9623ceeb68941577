"""
Learner endpoints: trigger a run, inspect past runs and the learning summary.
"""

from fastapi import APIRouter, Query
from typing import List

from ..core import learner as learner_core
from .schemas import LearnerRunResponse, LearnerRunRecord, LearningSummary, WeightItem

router = APIRouter()


@router.post("/run", response_model=LearnerRunResponse)
def run_learner():
    """Run the learner synchronously. 409 when a run is already in flight."""
    vector = learner_core.run(trigger="api")
    return LearnerRunResponse(
        ok=True,
        run_id=vector.run_id,
        weights=[WeightItem(name=w.name, value=w.value) for w in vector.as_list()]
    )


@router.get("/runs", response_model=List[LearnerRunRecord])
def list_learner_runs(limit: int = Query(20, ge=1, le=500)):
    """Audit trail of learner runs, newest first."""
    return [LearnerRunRecord(**vars(run)) for run in learner_core.list_runs(limit)]


@router.get("/summary", response_model=LearningSummary)
def learner_summary():
    return LearningSummary(**learner_core.learning_summary())
