from sqlalchemy import Column, Integer, String, Boolean, Float, DateTime, ForeignKey
from database.db import Base, utcnow

class GradebookWeightProfile(Base):
    __tablename__ = "gradebook_weight_profiles"  # named set of component weights

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    scheme_id = Column(Integer, ForeignKey("gradebook_schemes.id"), nullable=False)
    profile_key = Column(String(100), nullable=False)          # matched against sections.primary_classification
    profile_label = Column(String(200), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)


class GradebookComponentWeight(Base):
    __tablename__ = "gradebook_component_weights"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    scheme_id = Column(Integer, ForeignKey("gradebook_schemes.id"), nullable=False)
    profile_id = Column(Integer, ForeignKey("gradebook_weight_profiles.id"))   # NULL = scheme-level weights
    component_id = Column(Integer, ForeignKey("gradebook_components.id"), nullable=False)
    weight_percent = Column(Float, nullable=False)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
