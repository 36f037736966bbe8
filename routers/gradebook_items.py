from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_api_token
from schemas.common import SuccessEnvelope
from schemas.gradebook_items import GradedItem, GradedItemCreate, GradedScore, GradedScoresUpsert
from services.gradebook import repository

router = APIRouter(prefix="/gradebook/graded-items", tags=["gradebook-graded-items"])


# ==========================================================
# [1] Graded items
# ==========================================================

@router.post("/", dependencies=[Depends(require_api_token)])
def create_graded_item(payload: GradedItemCreate, db: Session = Depends(get_db)):
    item = repository.create_graded_item(db, payload.model_dump())
    return SuccessEnvelope(data=GradedItem.model_validate(item), message="Graded item created")


# ✅ offering filter wins over section filter
@router.get("/", dependencies=[Depends(require_api_token)])
def list_graded_items(
    section_id: Optional[int] = None,
    section_subject_offering_id: Optional[int] = None,
    term_period: Optional[str] = None,
    db: Session = Depends(get_db),
):
    items = repository.list_graded_items(db, section_id, section_subject_offering_id, term_period)
    return SuccessEnvelope(data=[GradedItem.model_validate(i) for i in items])


@router.delete("/{item_id}", dependencies=[Depends(require_api_token)])
def archive_graded_item(item_id: int, db: Session = Depends(get_db)):
    repository.archive_graded_item(db, item_id)
    return SuccessEnvelope(data={"graded_item_id": item_id}, message="Graded item archived")


# ==========================================================
# [2] Scores
# ==========================================================

@router.get("/{item_id}/scores", dependencies=[Depends(require_api_token)])
def list_scores(item_id: int, db: Session = Depends(get_db)):
    item = repository.get_graded_item(db, item_id)
    scores = repository.list_graded_scores(db, [item.id])
    return SuccessEnvelope(data=[GradedScore.model_validate(s) for s in scores])


# ✅ [UPSERT] one score per student per item
@router.put("/{item_id}/scores")
def upsert_scores(
    item_id: int,
    payload: GradedScoresUpsert,
    db: Session = Depends(get_db),
    auth: dict = Depends(require_api_token),
):
    item = repository.get_graded_item(db, item_id)
    scores = repository.bulk_upsert_scores(
        db, item, [s.model_dump() for s in payload.scores], entered_by=auth["actor_id"]
    )
    return SuccessEnvelope(data=[GradedScore.model_validate(s) for s in scores], message="Scores saved")
