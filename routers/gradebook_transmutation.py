from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_api_token
from schemas.common import SuccessEnvelope
from schemas.gradebook_transmutation import (
    TransmutationRow,
    TransmutationRowsReplace,
    TransmutationTable,
    TransmutationTableCreate,
)
from services.gradebook import repository

router = APIRouter(
    prefix="/gradebook/transmutation-tables",
    tags=["gradebook-transmutation"],
    dependencies=[Depends(require_api_token)],
)


# ✅ [CREATE] new table version for a scheme
@router.post("/")
def create_table(payload: TransmutationTableCreate, db: Session = Depends(get_db)):
    scheme = repository.get_scheme(db, payload.scheme_id)
    table = repository.create_transmutation_table(db, scheme, payload.description)
    return SuccessEnvelope(data=TransmutationTable.model_validate(table), message="Transmutation table created")


@router.get("/")
def list_tables(scheme_id: int, db: Session = Depends(get_db)):
    tables = repository.list_transmutation_tables(db, scheme_id)
    return SuccessEnvelope(data=[TransmutationTable.model_validate(t) for t in tables])


@router.post("/{table_id}/publish")
def publish_table(table_id: int, db: Session = Depends(get_db)):
    table = repository.publish_transmutation_table(db, table_id)
    return SuccessEnvelope(data=TransmutationTable.model_validate(table), message="Transmutation table published")


@router.delete("/{table_id}")
def archive_table(table_id: int, db: Session = Depends(get_db)):
    repository.archive_transmutation_table(db, table_id)
    return SuccessEnvelope(data={"transmutation_table_id": table_id}, message="Transmutation table archived")


# ✅ [READ] rows ordered by initial_grade
@router.get("/{table_id}/rows")
def list_rows(table_id: int, db: Session = Depends(get_db)):
    repository.get_transmutation_table(db, table_id)
    rows = repository.list_transmutation_rows(db, table_id)
    return SuccessEnvelope(data=[TransmutationRow.model_validate(r) for r in rows])


# ✅ [REPLACE] duplicate initial_grade values are rejected
@router.put("/{table_id}/rows")
def replace_rows(table_id: int, payload: TransmutationRowsReplace, db: Session = Depends(get_db)):
    table = repository.get_transmutation_table(db, table_id)
    rows = repository.replace_transmutation_rows(db, table, [r.model_dump() for r in payload.rows])
    return SuccessEnvelope(
        data=[TransmutationRow.model_validate(r) for r in rows],
        message=f"{len(rows)} transmutation rows saved",
    )
