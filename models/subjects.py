from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from database.db import Base

class Subject(Base):
    __tablename__ = "subjects"  # subject catalog

    id = Column(Integer, primary_key=True, index=True)         # subject ID (Primary Key)
    code = Column(String(50), nullable=False)                 # subject code (e.g. MATH7)
    name = Column(String(100), nullable=False)                # subject name


class SectionSubjectOffering(Base):
    __tablename__ = "section_subject_offerings"  # subject taught in a section

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)

    # ✅ Offering -> Subject (N:1)
    subject = relationship("Subject")
