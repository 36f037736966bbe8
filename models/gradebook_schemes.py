from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from database.db import Base, utcnow

class GradebookScheme(Base):
    __tablename__ = "gradebook_schemes"  # grading scheme (DepEd K-12, CHED HEI, ...)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    scheme_type = Column(String(30), nullable=False)         # deped_k12 / ched_hei / ched_simple
    name = Column(String(200), nullable=False)
    description = Column(Text)
    version = Column(Integer, nullable=False, default=1)
    # ✅ rounding_mode / weight_policy overrides
    #    - "metadata" is reserved on declarative classes, hence the attribute name
    settings = Column("metadata", JSON)
    published_at = Column(DateTime)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    created_by = Column(String(64))

    # ✅ Scheme -> Component (1:N)
    components = relationship(
        "GradebookComponent",
        back_populates="scheme",
        order_by="GradebookComponent.display_order",
    )


class GradebookComponent(Base):
    __tablename__ = "gradebook_components"  # grading category (WW, PT, QA)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), index=True)
    scheme_id = Column(Integer, ForeignKey("gradebook_schemes.id"), nullable=False)
    code = Column(String(30), nullable=False)                 # e.g. WW
    label = Column(String(100), nullable=False)               # e.g. Written Work
    display_order = Column(Integer, nullable=False, default=0)
    archived_at = Column(DateTime)

    scheme = relationship("GradebookScheme", back_populates="components")
