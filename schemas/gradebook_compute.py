from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class ComputeRunCreate(BaseModel):
    # section_id or section_subject_offering_id (offering preferred)
    section_id: Optional[int] = None
    section_subject_offering_id: Optional[int] = None
    school_year_id: str
    term_period: str
    scheme_id: int
    weight_profile_id: Optional[int] = None          # resolved from the section when omitted
    transmutation_table_id: Optional[int] = None     # required for deped_k12 / ched_hei


class ComputeRun(BaseModel):
    id: int
    organization_id: Optional[str] = None
    section_id: int
    section_subject_offering_id: Optional[int] = None
    school_year_id: str
    term_period: str
    scheme_id: int
    scheme_version: int
    weight_profile_id: Optional[int] = None
    transmutation_table_id: Optional[int] = None
    transmutation_version: Optional[int] = None
    as_of: datetime
    run_by: Optional[str] = None
    status: str
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ComputedGrade(BaseModel):
    id: int
    compute_run_id: int
    student_id: int
    section_id: int
    school_year_id: str
    term_period: str
    initial_grade: Optional[float] = None
    final_numeric_grade: float
    transmuted_grade: Optional[float] = None
    output_grade_value: Optional[str] = None
    breakdown: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class Phase4Link(BaseModel):
    id: int
    grade_entry_id: int
    computed_grade_id: int
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
