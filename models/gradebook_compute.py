from sqlalchemy import Column, Integer, String, Float, Text, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from database.db import Base, utcnow

class GradebookComputeRun(Base):
    __tablename__ = "gradebook_compute_runs"  # one execution of the engine for a section/term

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False)
    section_subject_offering_id = Column(Integer, ForeignKey("section_subject_offerings.id"))
    school_year_id = Column(String(64), nullable=False)
    term_period = Column(String(50), nullable=False)
    scheme_id = Column(Integer, ForeignKey("gradebook_schemes.id"), nullable=False)
    scheme_version = Column(Integer, nullable=False)
    weight_profile_id = Column(Integer, ForeignKey("gradebook_weight_profiles.id"))
    transmutation_table_id = Column(Integer, ForeignKey("gradebook_transmutation_tables.id"))
    transmutation_version = Column(Integer)
    as_of = Column(DateTime, nullable=False)                   # scores created after this are ignored
    run_by = Column(String(64))
    status = Column(String(20), nullable=False, default="created")   # created / completed / failed
    error_message = Column(Text)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    scheme = relationship("GradebookScheme")
    section = relationship("Section")

    # ✅ Run -> ComputedGrade (1:N), superseded on re-run
    computed_grades = relationship(
        "GradebookComputedGrade",
        back_populates="compute_run",
        cascade="all, delete-orphan",
    )


class GradebookComputedGrade(Base):
    __tablename__ = "gradebook_computed_grades"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    compute_run_id = Column(Integer, ForeignKey("gradebook_compute_runs.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False)
    section_subject_offering_id = Column(Integer, ForeignKey("section_subject_offerings.id"))
    school_year_id = Column(String(64), nullable=False)
    term_period = Column(String(50), nullable=False)
    initial_grade = Column(Float)
    final_numeric_grade = Column(Float, nullable=False)
    transmuted_grade = Column(Float)
    output_grade_value = Column(String(20))
    breakdown = Column(JSON)                                    # per-component trace of the computation
    created_at = Column(DateTime, default=utcnow)

    compute_run = relationship("GradebookComputeRun", back_populates="computed_grades")
    student = relationship("Student")


class GradebookPhase4Link(Base):
    __tablename__ = "gradebook_phase4_links"  # computed grade -> Phase 4 grade entry

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    grade_entry_id = Column(Integer, ForeignKey("grade_entries.id"), nullable=False)
    computed_grade_id = Column(Integer, ForeignKey("gradebook_computed_grades.id"), nullable=False)
    created_by = Column(String(64))
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
