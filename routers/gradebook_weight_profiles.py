from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.security import require_api_token
from schemas.common import SuccessEnvelope
from schemas.gradebook_weights import ComponentWeight, ComponentWeightsReplace, WeightProfile, WeightProfileCreate
from services.gradebook import repository

router = APIRouter(
    prefix="/gradebook/weight-profiles",
    tags=["gradebook-weight-profiles"],
    dependencies=[Depends(require_api_token)],
)


# ✅ [CREATE] weight profile for a scheme
@router.post("/")
def create_weight_profile(payload: WeightProfileCreate, db: Session = Depends(get_db)):
    scheme = repository.get_scheme(db, payload.scheme_id)
    profile = repository.create_weight_profile(db, scheme, payload.model_dump())
    return SuccessEnvelope(data=WeightProfile.model_validate(profile), message="Weight profile created")


# ✅ [READ] profiles of a scheme
@router.get("/")
def list_weight_profiles(scheme_id: int, db: Session = Depends(get_db)):
    profiles = repository.list_weight_profiles(db, scheme_id)
    return SuccessEnvelope(data=[WeightProfile.model_validate(p) for p in profiles])


# ✅ [READ] live weights of a profile
@router.get("/{profile_id}/weights")
def list_weights(profile_id: int, db: Session = Depends(get_db)):
    profile = repository.get_weight_profile(db, profile_id)
    weights = repository.list_component_weights(db, profile.scheme_id, profile.id)
    return SuccessEnvelope(data=[ComponentWeight.model_validate(w) for w in weights])


# ✅ [REPLACE] archive current weights, insert the new set
#    - the sum is not checked here; strict/normalize applies at compute time
@router.put("/{profile_id}/weights")
def replace_weights(profile_id: int, payload: ComponentWeightsReplace, db: Session = Depends(get_db)):
    profile = repository.get_weight_profile(db, profile_id)
    weights = repository.replace_component_weights(
        db,
        profile.scheme_id,
        profile.id,
        [w.model_dump() for w in payload.weights],
        organization_id=profile.organization_id,
    )
    total = sum(w.weight_percent for w in weights)
    return SuccessEnvelope(
        data={"weights": [ComponentWeight.model_validate(w) for w in weights], "total_weight": total},
        message="Component weights saved",
    )


# ✅ [DELETE] archive profile and its weights
@router.delete("/{profile_id}")
def archive_weight_profile(profile_id: int, db: Session = Depends(get_db)):
    repository.archive_weight_profile(db, profile_id)
    return SuccessEnvelope(data={"weight_profile_id": profile_id}, message="Weight profile archived")
