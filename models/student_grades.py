from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from database.db import Base, utcnow

class StudentGrade(Base):
    __tablename__ = "student_grades"  # Phase 4 official grade record (draft until confirmed)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    school_year_id = Column(String(64), nullable=False)
    term_period = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="draft")    # draft / confirmed
    archived_at = Column(DateTime)


class GradeEntry(Base):
    __tablename__ = "grade_entries"  # notes attached to a Phase 4 student grade

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    student_grade_id = Column(Integer, ForeignKey("student_grades.id"), nullable=False)
    entry_type = Column(String(50), nullable=False)                  # e.g. manual_note
    entry_text = Column(Text)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=utcnow)
