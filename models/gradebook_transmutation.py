from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey
from database.db import Base, utcnow

class GradebookTransmutationTable(Base):
    __tablename__ = "gradebook_transmutation_tables"  # versioned initial -> transmuted mapping

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    scheme_id = Column(Integer, ForeignKey("gradebook_schemes.id"), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    description = Column(Text)
    published_at = Column(DateTime)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)


class GradebookTransmutationRow(Base):
    __tablename__ = "gradebook_transmutation_rows"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    transmutation_table_id = Column(
        Integer, ForeignKey("gradebook_transmutation_tables.id"), nullable=False, index=True
    )
    initial_grade = Column(Integer, nullable=False)            # integer key 0-100
    transmuted_grade = Column(Float, nullable=False)           # reported grade
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
