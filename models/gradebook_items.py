from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database.db import Base, utcnow

class GradebookGradedItem(Base):
    __tablename__ = "gradebook_graded_items"  # quiz, project, exam ...

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False, index=True)
    section_subject_offering_id = Column(Integer, ForeignKey("section_subject_offerings.id"))
    school_year_id = Column(String(64), nullable=False)
    term_period = Column(String(50), nullable=False)
    component_id = Column(Integer, ForeignKey("gradebook_components.id"), nullable=False)
    title = Column(String(200), nullable=False)
    max_points = Column(Float, nullable=False)
    due_at = Column(DateTime)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

    component = relationship("GradebookComponent")


class GradebookGradedScore(Base):
    __tablename__ = "gradebook_graded_scores"  # one student's result on one graded item
    __table_args__ = (
        UniqueConstraint("graded_item_id", "student_id", name="uq_graded_score_item_student"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    graded_item_id = Column(Integer, ForeignKey("gradebook_graded_items.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    points_earned = Column(Float)                                # NULL for missing / absent / excused
    status = Column(String(20), nullable=False, default="present")   # present / missing / absent / excused
    entered_by = Column(String(64))
    entered_at = Column(DateTime, default=utcnow)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
