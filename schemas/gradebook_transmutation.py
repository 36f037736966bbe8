from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransmutationTableCreate(BaseModel):
    scheme_id: int
    description: Optional[str] = None


class TransmutationTable(BaseModel):
    id: int
    scheme_id: int
    version: int
    description: Optional[str] = None
    published_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TransmutationRowIn(BaseModel):
    initial_grade: int = Field(..., ge=0, le=100)
    transmuted_grade: float


class TransmutationRowsReplace(BaseModel):
    rows: List[TransmutationRowIn]


class TransmutationRow(BaseModel):
    id: int
    transmutation_table_id: int
    initial_grade: int
    transmuted_grade: float

    model_config = ConfigDict(from_attributes=True)
