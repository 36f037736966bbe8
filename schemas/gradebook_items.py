from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ScoreStatusLiteral = Literal["present", "missing", "absent", "excused"]


class GradedItemCreate(BaseModel):
    section_id: int
    section_subject_offering_id: Optional[int] = None
    school_year_id: str
    term_period: str
    component_id: int
    title: str = Field(..., min_length=1, max_length=200)
    max_points: float = Field(..., gt=0)
    due_at: Optional[datetime] = None


class GradedItem(BaseModel):
    id: int
    section_id: int
    section_subject_offering_id: Optional[int] = None
    school_year_id: str
    term_period: str
    component_id: int
    title: str
    max_points: float
    due_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class GradedScoreIn(BaseModel):
    student_id: int
    points_earned: Optional[float] = Field(default=None, ge=0)
    status: ScoreStatusLiteral = "present"


class GradedScoresUpsert(BaseModel):
    scores: List[GradedScoreIn]


class GradedScore(BaseModel):
    id: int
    graded_item_id: int
    student_id: int
    points_earned: Optional[float] = None
    status: str
    entered_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
