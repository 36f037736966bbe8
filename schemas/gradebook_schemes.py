from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SchemeSettings(BaseModel):
    rounding_mode: Optional[Literal["floor", "round", "ceil"]] = None   # default: floor (DepEd) / round
    weight_policy: Optional[Literal["strict", "normalize"]] = None     # default: strict


class SchemeCreate(BaseModel):
    organization_id: Optional[str] = None
    scheme_type: Literal["deped_k12", "ched_hei", "ched_simple"]
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    settings: Optional[SchemeSettings] = None


class Scheme(BaseModel):
    id: int
    organization_id: Optional[str] = None
    scheme_type: str
    name: str
    description: Optional[str] = None
    version: int
    settings: Optional[dict] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ComponentCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=30)      # e.g. WW
    label: str = Field(..., min_length=1, max_length=100)    # e.g. Written Work
    display_order: int = 0


class Component(BaseModel):
    id: int
    scheme_id: int
    code: str
    label: str
    display_order: int

    model_config = ConfigDict(from_attributes=True)
