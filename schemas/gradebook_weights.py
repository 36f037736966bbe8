from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WeightProfileCreate(BaseModel):
    scheme_id: int
    profile_key: str = Field(..., min_length=1, max_length=100)    # matches sections.primary_classification
    profile_label: str = Field(..., min_length=1, max_length=200)
    is_default: bool = False


class WeightProfile(BaseModel):
    id: int
    scheme_id: int
    profile_key: str
    profile_label: str
    is_default: bool

    model_config = ConfigDict(from_attributes=True)


class ComponentWeightIn(BaseModel):
    component_id: int
    weight_percent: float = Field(..., ge=0, le=100)


class ComponentWeightsReplace(BaseModel):
    weights: List[ComponentWeightIn]


class ComponentWeight(BaseModel):
    id: int
    scheme_id: int
    profile_id: Optional[int] = None
    component_id: int
    weight_percent: float

    model_config = ConfigDict(from_attributes=True)
