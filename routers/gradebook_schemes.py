from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_api_token
from schemas.common import SuccessEnvelope
from schemas.gradebook_schemes import Component, ComponentCreate, Scheme, SchemeCreate
from services.gradebook import repository

router = APIRouter(prefix="/gradebook/schemes", tags=["gradebook-schemes"])


# ==========================================================
# [1] Schemes
# ==========================================================

# ✅ [CREATE] draft scheme (version 1, unpublished)
@router.post("/")
def create_scheme(payload: SchemeCreate, db: Session = Depends(get_db), auth: dict = Depends(require_api_token)):
    scheme = repository.create_scheme(db, payload.model_dump(), created_by=auth["actor_id"])
    return SuccessEnvelope(data=Scheme.model_validate(scheme), message="Scheme created")


# ✅ [READ] live schemes
@router.get("/", dependencies=[Depends(require_api_token)])
def list_schemes(organization_id: Optional[str] = None, db: Session = Depends(get_db)):
    schemes = repository.list_schemes(db, organization_id)
    return SuccessEnvelope(data=[Scheme.model_validate(s) for s in schemes])


# ✅ [PUBLISH] only published schemes can be computed
@router.post("/{scheme_id}/publish", dependencies=[Depends(require_api_token)])
def publish_scheme(scheme_id: int, db: Session = Depends(get_db)):
    scheme = repository.publish_scheme(db, scheme_id)
    return SuccessEnvelope(data=Scheme.model_validate(scheme), message="Scheme published")


# ==========================================================
# [2] Components
# ==========================================================

@router.post("/{scheme_id}/components", dependencies=[Depends(require_api_token)])
def create_component(scheme_id: int, payload: ComponentCreate, db: Session = Depends(get_db)):
    scheme = repository.get_scheme(db, scheme_id)
    component = repository.create_component(db, scheme, payload.model_dump())
    return SuccessEnvelope(data=Component.model_validate(component), message="Component created")


@router.get("/{scheme_id}/components", dependencies=[Depends(require_api_token)])
def list_components(scheme_id: int, db: Session = Depends(get_db)):
    repository.get_scheme(db, scheme_id)
    return SuccessEnvelope(data=[Component.model_validate(c) for c in repository.list_components(db, scheme_id)])
