from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from database.db import Base

class Section(Base):
    __tablename__ = "sections"

    id = Column(Integer, primary_key=True, index=True)        # section ID (PK)
    organization_id = Column(String(64), index=True)          # owning organization (opaque)
    name = Column(String(100), nullable=False)                # section name (e.g. Grade 7 - Rizal)
    code = Column(String(50))                                 # section code

    # ==========================================================
    # [weight profile resolution]
    # ==========================================================

    # ✅ canonical classification, matched against gradebook_weight_profiles.profile_key
    primary_classification = Column(String(100))
    classification_source = Column(String(50))               # e.g. canonical, manual
    archived_at = Column(DateTime)


class SectionStudent(Base):
    __tablename__ = "section_students"  # enrollment of a student in a section

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    status = Column(String(20), nullable=False, default="active")   # active / withdrawn
    end_date = Column(Date)                                          # set when the enrollment ends
