from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_api_token
from schemas.common import SuccessEnvelope
from schemas.gradebook_compute import ComputedGrade, ComputeRun, ComputeRunCreate
from services.gradebook import compute_runs, phase4, repository

router = APIRouter(prefix="/gradebook/compute-runs", tags=["gradebook-compute-runs"])


def _outcome_payload(outcome: compute_runs.ComputeRunOutcome) -> dict:
    return {
        "run": ComputeRun.model_validate(outcome.run),
        "computed_grades": [ComputedGrade.model_validate(g) for g in outcome.computed_grades],
        "classification": outcome.classification,
    }


# ==========================================================
# [1] Compute runs
# ==========================================================

# ✅ [READ] runs, newest first
@router.get("/", dependencies=[Depends(require_api_token)])
def list_runs(
    section_id: Optional[int] = None,
    term_period: Optional[str] = None,
    status: Optional[str] = None,
    organization_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    runs = repository.list_compute_runs(db, organization_id, section_id, term_period, status)
    return SuccessEnvelope(data=[ComputeRun.model_validate(r) for r in runs])


# ✅ [CREATE] create and execute a run (synchronous)
#    - engine failures mark the run failed and persist no grades
@router.post("/")
def create_run(payload: ComputeRunCreate, db: Session = Depends(get_db), auth: dict = Depends(require_api_token)):
    outcome = compute_runs.create_compute_run(db, payload, run_by=auth["actor_id"])
    return SuccessEnvelope(data=_outcome_payload(outcome), message="Compute run completed")


# ✅ [READ] run detail with computed grades (sorted by last name)
@router.get("/{run_id}", dependencies=[Depends(require_api_token)])
def get_run(run_id: int, db: Session = Depends(get_db)):
    detail = compute_runs.get_compute_run_detail(db, run_id)
    return SuccessEnvelope(data={
        "run": ComputeRun.model_validate(detail.run),
        "computed_grades": [ComputedGrade.model_validate(g) for g in detail.computed_grades],
    })


# ✅ [RE-RUN] previous computed grades are deleted and recreated
#    - refused with 409 once the run was sent to Phase 4
@router.put("/{run_id}")
def rerun(run_id: int, payload: ComputeRunCreate, db: Session = Depends(get_db), auth: dict = Depends(require_api_token)):
    outcome = compute_runs.rerun_compute_run(db, run_id, payload, run_by=auth["actor_id"])
    return SuccessEnvelope(data=_outcome_payload(outcome), message="Compute run recomputed")


@router.delete("/{run_id}", dependencies=[Depends(require_api_token)])
def archive_run(run_id: int, db: Session = Depends(get_db)):
    compute_runs.archive_compute_run(db, run_id)
    return SuccessEnvelope(data={"compute_run_id": run_id}, message="Compute run archived")


# ==========================================================
# [2] Phase 4 hand-off
# ==========================================================

# ✅ per-student errors are reported, never abort the batch
@router.post("/{run_id}/send-to-phase4")
def send_to_phase4(run_id: int, db: Session = Depends(get_db), auth: dict = Depends(require_api_token)):
    result = phase4.send_to_phase4(db, run_id, created_by=auth["actor_id"])
    return SuccessEnvelope(data=result.as_dict(), message="Computed grades sent to Phase 4")
