from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_api_token
from schemas.common import SuccessEnvelope
from schemas.gradebook_compute import Phase4Link
from services.gradebook import repository

router = APIRouter(
    prefix="/gradebook/phase4-links",
    tags=["gradebook-phase4-links"],
    dependencies=[Depends(require_api_token)],
)


# ✅ [READ] live links, filtered by computed grade or grade entry
@router.get("/")
def list_links(
    computed_grade_id: Optional[int] = None,
    grade_entry_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    links = repository.list_phase4_links(db, computed_grade_id, grade_entry_id)
    return SuccessEnvelope(data=[Phase4Link.model_validate(link) for link in links])
