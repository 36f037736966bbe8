"""
services/gradebook/repository.py

SQLAlchemy data access for the gradebook.
Only live rows (archived_at IS NULL) are ever returned.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from database.db import utcnow
from models.gradebook_compute import GradebookComputeRun, GradebookComputedGrade, GradebookPhase4Link
from models.gradebook_items import GradebookGradedItem, GradebookGradedScore
from models.gradebook_schemes import GradebookComponent, GradebookScheme
from models.gradebook_transmutation import GradebookTransmutationRow, GradebookTransmutationTable
from models.gradebook_weights import GradebookComponentWeight, GradebookWeightProfile
from models.sections import Section, SectionStudent
from models.students import Student
from models.subjects import SectionSubjectOffering
from services.gradebook.engine import ScoreStatus, SchemeType
from services.gradebook.errors import GradebookNotFoundError, GradebookValidationError

logger = logging.getLogger(__name__)


# ==========================================================
# Schemes & components
# ==========================================================

def list_schemes(db: Session, organization_id: Optional[str] = None) -> List[GradebookScheme]:
    query = db.query(GradebookScheme).filter(GradebookScheme.archived_at.is_(None))
    if organization_id:
        query = query.filter(GradebookScheme.organization_id == organization_id)
    return query.order_by(GradebookScheme.created_at.desc(), GradebookScheme.id.desc()).all()


def get_scheme(db: Session, scheme_id: int, published_only: bool = False) -> GradebookScheme:
    query = db.query(GradebookScheme).filter(
        GradebookScheme.id == scheme_id,
        GradebookScheme.archived_at.is_(None),
    )
    if published_only:
        query = query.filter(GradebookScheme.published_at.isnot(None))
    scheme = query.first()
    if scheme is None:
        raise GradebookNotFoundError(
            "Scheme not found or not published" if published_only else "Scheme not found",
            details={"scheme_id": scheme_id},
        )
    return scheme


def create_scheme(db: Session, data: Dict[str, Any], created_by: Optional[str] = None) -> GradebookScheme:
    scheme = GradebookScheme(
        organization_id=data.get("organization_id"),
        scheme_type=SchemeType(data["scheme_type"]).value,
        name=data["name"],
        description=data.get("description"),
        settings=data.get("settings") or {},
        version=1,
        created_by=created_by,
    )
    db.add(scheme)
    db.commit()
    db.refresh(scheme)
    return scheme


def publish_scheme(db: Session, scheme_id: int) -> GradebookScheme:
    scheme = get_scheme(db, scheme_id)
    scheme.published_at = utcnow()
    db.commit()
    db.refresh(scheme)
    return scheme


def list_components(db: Session, scheme_id: int) -> List[GradebookComponent]:
    return (
        db.query(GradebookComponent)
        .filter(GradebookComponent.scheme_id == scheme_id, GradebookComponent.archived_at.is_(None))
        .order_by(GradebookComponent.display_order, GradebookComponent.id)
        .all()
    )


def create_component(db: Session, scheme: GradebookScheme, data: Dict[str, Any]) -> GradebookComponent:
    component = GradebookComponent(
        organization_id=scheme.organization_id,
        scheme_id=scheme.id,
        code=data["code"],
        label=data["label"],
        display_order=data.get("display_order", 0),
    )
    db.add(component)
    db.commit()
    db.refresh(component)
    return component


# ==========================================================
# Weight profiles & component weights
# ==========================================================

@dataclass
class WeightProfileResolution:
    weight_profile_id: int
    classification_used: Optional[str]
    classification_source: Optional[str]
    is_fallback: bool

    def as_metadata(self) -> Dict[str, Any]:
        return {
            "classification_used": self.classification_used,
            "classification_source": self.classification_source,
            "classification_is_fallback": self.is_fallback,
        }


def list_weight_profiles(db: Session, scheme_id: int) -> List[GradebookWeightProfile]:
    return (
        db.query(GradebookWeightProfile)
        .filter(GradebookWeightProfile.scheme_id == scheme_id, GradebookWeightProfile.archived_at.is_(None))
        .order_by(GradebookWeightProfile.profile_key)
        .all()
    )


def get_weight_profile(db: Session, profile_id: int) -> GradebookWeightProfile:
    profile = (
        db.query(GradebookWeightProfile)
        .filter(GradebookWeightProfile.id == profile_id, GradebookWeightProfile.archived_at.is_(None))
        .first()
    )
    if profile is None:
        raise GradebookNotFoundError("Weight profile not found", details={"weight_profile_id": profile_id})
    return profile


def create_weight_profile(db: Session, scheme: GradebookScheme, data: Dict[str, Any]) -> GradebookWeightProfile:
    profile = GradebookWeightProfile(
        organization_id=scheme.organization_id,
        scheme_id=scheme.id,
        profile_key=data["profile_key"],
        profile_label=data["profile_label"],
        is_default=data.get("is_default", False),
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def archive_weight_profile(db: Session, profile_id: int) -> None:
    profile = get_weight_profile(db, profile_id)
    now = utcnow()
    (
        db.query(GradebookComponentWeight)
        .filter(GradebookComponentWeight.profile_id == profile.id, GradebookComponentWeight.archived_at.is_(None))
        .update({GradebookComponentWeight.archived_at: now}, synchronize_session=False)
    )
    profile.archived_at = now
    db.commit()


def list_component_weights(
    db: Session, scheme_id: int, profile_id: Optional[int] = None
) -> List[GradebookComponentWeight]:
    query = db.query(GradebookComponentWeight).filter(
        GradebookComponentWeight.scheme_id == scheme_id,
        GradebookComponentWeight.archived_at.is_(None),
    )
    if profile_id is None:
        query = query.filter(GradebookComponentWeight.profile_id.is_(None))
    else:
        query = query.filter(GradebookComponentWeight.profile_id == profile_id)
    return query.order_by(GradebookComponentWeight.id).all()


def replace_component_weights(
    db: Session,
    scheme_id: int,
    profile_id: Optional[int],
    weights: Iterable[Dict[str, Any]],
    organization_id: Optional[str] = None,
) -> List[GradebookComponentWeight]:
    """Archive the current weights of the scheme/profile pair, then insert the new set."""
    weights = list(weights)
    component_ids = [w["component_id"] for w in weights]
    if len(component_ids) != len(set(component_ids)):
        raise GradebookValidationError("Each component may only be weighted once per profile")

    known = {c.id for c in list_components(db, scheme_id)}
    unknown = [cid for cid in component_ids if cid not in known]
    if unknown:
        raise GradebookValidationError(
            "Weights reference components outside the scheme", details={"component_ids": unknown}
        )

    for existing in list_component_weights(db, scheme_id, profile_id):
        existing.archived_at = utcnow()

    created = []
    for w in weights:
        row = GradebookComponentWeight(
            organization_id=organization_id,
            scheme_id=scheme_id,
            profile_id=profile_id,
            component_id=w["component_id"],
            weight_percent=float(w["weight_percent"]),
        )
        db.add(row)
        created.append(row)
    db.commit()
    for row in created:
        db.refresh(row)
    return created


def resolve_weight_profile_for_section(db: Session, section_id: int, scheme_id: int) -> WeightProfileResolution:
    """
    Pick the weight profile for a section.

    1) profile whose profile_key equals the section's primary_classification
    2) the scheme's default profile (flagged as fallback)
    """
    section = (
        db.query(Section)
        .filter(Section.id == section_id, Section.archived_at.is_(None))
        .first()
    )
    if section is None:
        raise GradebookNotFoundError("Section not found", details={"section_id": section_id})

    profiles = db.query(GradebookWeightProfile).filter(
        GradebookWeightProfile.scheme_id == scheme_id,
        GradebookWeightProfile.archived_at.is_(None),
    )

    if section.primary_classification:
        profile = profiles.filter(GradebookWeightProfile.profile_key == section.primary_classification).first()
        if profile:
            return WeightProfileResolution(
                weight_profile_id=profile.id,
                classification_used=section.primary_classification,
                classification_source=section.classification_source or "canonical",
                is_fallback=False,
            )

    default_profile = profiles.filter(GradebookWeightProfile.is_default.is_(True)).first()
    if default_profile:
        logger.warning(
            f"Using default weight profile {default_profile.profile_key} for section {section_id} "
            f"(classification={section.primary_classification})"
        )
        return WeightProfileResolution(
            weight_profile_id=default_profile.id,
            classification_used=default_profile.profile_key,
            classification_source="default_fallback",
            is_fallback=True,
        )

    raise GradebookValidationError(
        "Missing primary classification for section; set it before computing. No default profile available.",
        details={"section_id": section_id, "scheme_id": scheme_id},
    )


# ==========================================================
# Transmutation tables & rows
# ==========================================================

def list_transmutation_tables(db: Session, scheme_id: int) -> List[GradebookTransmutationTable]:
    return (
        db.query(GradebookTransmutationTable)
        .filter(
            GradebookTransmutationTable.scheme_id == scheme_id,
            GradebookTransmutationTable.archived_at.is_(None),
        )
        .order_by(GradebookTransmutationTable.version.desc())
        .all()
    )


def get_transmutation_table(db: Session, table_id: int) -> GradebookTransmutationTable:
    table = (
        db.query(GradebookTransmutationTable)
        .filter(GradebookTransmutationTable.id == table_id, GradebookTransmutationTable.archived_at.is_(None))
        .first()
    )
    if table is None:
        raise GradebookNotFoundError("Transmutation table not found", details={"transmutation_table_id": table_id})
    return table


def create_transmutation_table(
    db: Session, scheme: GradebookScheme, description: Optional[str] = None
) -> GradebookTransmutationTable:
    latest = list_transmutation_tables(db, scheme.id)
    table = GradebookTransmutationTable(
        organization_id=scheme.organization_id,
        scheme_id=scheme.id,
        version=(latest[0].version + 1) if latest else 1,
        description=description,
    )
    db.add(table)
    db.commit()
    db.refresh(table)
    return table


def publish_transmutation_table(db: Session, table_id: int) -> GradebookTransmutationTable:
    table = get_transmutation_table(db, table_id)
    table.published_at = utcnow()
    db.commit()
    db.refresh(table)
    return table


def archive_transmutation_table(db: Session, table_id: int) -> None:
    table = get_transmutation_table(db, table_id)
    table.archived_at = utcnow()
    db.commit()


def list_transmutation_rows(db: Session, table_id: int) -> List[GradebookTransmutationRow]:
    return (
        db.query(GradebookTransmutationRow)
        .filter(
            GradebookTransmutationRow.transmutation_table_id == table_id,
            GradebookTransmutationRow.archived_at.is_(None),
        )
        .order_by(GradebookTransmutationRow.initial_grade)
        .all()
    )


def replace_transmutation_rows(
    db: Session, table: GradebookTransmutationTable, rows: Iterable[Dict[str, Any]]
) -> List[GradebookTransmutationRow]:
    rows = list(rows)
    initial_grades = [int(r["initial_grade"]) for r in rows]
    duplicates = sorted({g for g in initial_grades if initial_grades.count(g) > 1})
    if duplicates:
        raise GradebookValidationError(
            f"Duplicate initial_grade values found: {', '.join(str(d) for d in duplicates)}. "
            "Each initial_grade must be unique per table.",
            details={"duplicates": duplicates},
        )

    for existing in list_transmutation_rows(db, table.id):
        existing.archived_at = utcnow()

    created = []
    for r in rows:
        row = GradebookTransmutationRow(
            organization_id=table.organization_id,
            transmutation_table_id=table.id,
            initial_grade=int(r["initial_grade"]),
            transmuted_grade=float(r["transmuted_grade"]),
        )
        db.add(row)
        created.append(row)
    db.commit()
    logger.info(f"Transmutation table {table.id} now has {len(created)} rows")
    return list_transmutation_rows(db, table.id)


# ==========================================================
# Graded items & scores
# ==========================================================

def get_graded_item(db: Session, item_id: int) -> GradebookGradedItem:
    item = (
        db.query(GradebookGradedItem)
        .filter(GradebookGradedItem.id == item_id, GradebookGradedItem.archived_at.is_(None))
        .first()
    )
    if item is None:
        raise GradebookNotFoundError("Graded item not found", details={"graded_item_id": item_id})
    return item


def list_graded_items(
    db: Session,
    section_id: Optional[int] = None,
    section_subject_offering_id: Optional[int] = None,
    term_period: Optional[str] = None,
) -> List[GradebookGradedItem]:
    query = db.query(GradebookGradedItem).filter(GradebookGradedItem.archived_at.is_(None))
    if section_subject_offering_id is not None:
        query = query.filter(GradebookGradedItem.section_subject_offering_id == section_subject_offering_id)
    elif section_id is not None:
        query = query.filter(GradebookGradedItem.section_id == section_id)
    if term_period:
        query = query.filter(GradebookGradedItem.term_period == term_period)
    return query.order_by(GradebookGradedItem.id).all()


def create_graded_item(db: Session, data: Dict[str, Any], organization_id: Optional[str] = None) -> GradebookGradedItem:
    if data["max_points"] <= 0:
        raise GradebookValidationError("max_points must be greater than 0")
    item = GradebookGradedItem(organization_id=organization_id, **data)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def archive_graded_item(db: Session, item_id: int) -> None:
    item = get_graded_item(db, item_id)
    item.archived_at = utcnow()
    db.commit()


def list_graded_scores(
    db: Session, item_ids: Iterable[int], as_of: Optional[datetime] = None
) -> List[GradebookGradedScore]:
    item_ids = list(item_ids)
    if not item_ids:
        return []
    query = db.query(GradebookGradedScore).filter(
        GradebookGradedScore.graded_item_id.in_(item_ids),
        GradebookGradedScore.archived_at.is_(None),
    )
    if as_of is not None:
        query = query.filter(GradebookGradedScore.created_at <= as_of)
    return query.order_by(GradebookGradedScore.id).all()


def bulk_upsert_scores(
    db: Session,
    item: GradebookGradedItem,
    scores: Iterable[Dict[str, Any]],
    entered_by: Optional[str] = None,
) -> List[GradebookGradedScore]:
    scores = list(scores)
    student_ids = [s["student_id"] for s in scores]
    duplicates = sorted({sid for sid in student_ids if student_ids.count(sid) > 1})
    if duplicates:
        raise GradebookValidationError(
            "Each student may only appear once per score upload",
            details={"student_ids": duplicates},
        )

    for s in scores:
        points = s.get("points_earned")
        if points is not None and points > item.max_points:
            raise GradebookValidationError(
                f"Points earned ({points:g}) cannot exceed max points ({item.max_points:g})",
                details={"student_id": s["student_id"]},
            )

    existing = {
        score.student_id: score
        for score in list_graded_scores(db, [item.id])
    }
    now = utcnow()
    for s in scores:
        status = ScoreStatus(s.get("status") or ScoreStatus.PRESENT).value
        points = s.get("points_earned")
        current = existing.get(s["student_id"])
        if current is not None:
            current.points_earned = points
            current.status = status
            current.entered_by = entered_by
            current.entered_at = now
        else:
            db.add(GradebookGradedScore(
                organization_id=item.organization_id,
                graded_item_id=item.id,
                student_id=s["student_id"],
                points_earned=points,
                status=status,
                entered_by=entered_by,
                entered_at=now,
            ))
    db.commit()
    return list_graded_scores(db, [item.id])


# ==========================================================
# Sections & enrollment
# ==========================================================

def get_offering(db: Session, offering_id: int) -> SectionSubjectOffering:
    offering = db.query(SectionSubjectOffering).filter(SectionSubjectOffering.id == offering_id).first()
    if offering is None:
        raise GradebookValidationError(
            "Section subject offering not found", details={"section_subject_offering_id": offering_id}
        )
    return offering


def list_active_student_ids(db: Session, section_id: int) -> List[int]:
    rows = (
        db.query(SectionStudent.student_id)
        .filter(
            SectionStudent.section_id == section_id,
            SectionStudent.status == "active",
            SectionStudent.end_date.is_(None),
        )
        .order_by(SectionStudent.student_id)
        .all()
    )
    return [r[0] for r in rows]


# ==========================================================
# Compute runs & computed grades
# ==========================================================

def get_compute_run(db: Session, run_id: int) -> GradebookComputeRun:
    run = (
        db.query(GradebookComputeRun)
        .filter(GradebookComputeRun.id == run_id, GradebookComputeRun.archived_at.is_(None))
        .first()
    )
    if run is None:
        raise GradebookNotFoundError("Compute run not found", details={"compute_run_id": run_id})
    return run


def list_compute_runs(
    db: Session,
    organization_id: Optional[str] = None,
    section_id: Optional[int] = None,
    term_period: Optional[str] = None,
    status: Optional[str] = None,
) -> List[GradebookComputeRun]:
    query = db.query(GradebookComputeRun).filter(GradebookComputeRun.archived_at.is_(None))
    if organization_id:
        query = query.filter(GradebookComputeRun.organization_id == organization_id)
    if section_id is not None:
        query = query.filter(GradebookComputeRun.section_id == section_id)
    if term_period:
        query = query.filter(GradebookComputeRun.term_period == term_period)
    if status:
        query = query.filter(GradebookComputeRun.status == status)
    return query.order_by(GradebookComputeRun.created_at.desc(), GradebookComputeRun.id.desc()).all()


def list_computed_grades(db: Session, run_id: int) -> List[GradebookComputedGrade]:
    """Computed grades of a run, ordered by student last name."""
    return (
        db.query(GradebookComputedGrade)
        .outerjoin(Student, Student.id == GradebookComputedGrade.student_id)
        .filter(GradebookComputedGrade.compute_run_id == run_id)
        .order_by(Student.last_name, GradebookComputedGrade.student_id)
        .all()
    )


def list_phase4_links(
    db: Session, computed_grade_id: Optional[int] = None, grade_entry_id: Optional[int] = None
) -> List[GradebookPhase4Link]:
    query = db.query(GradebookPhase4Link).filter(GradebookPhase4Link.archived_at.is_(None))
    if computed_grade_id is not None:
        query = query.filter(GradebookPhase4Link.computed_grade_id == computed_grade_id)
    if grade_entry_id is not None:
        query = query.filter(GradebookPhase4Link.grade_entry_id == grade_entry_id)
    return query.order_by(GradebookPhase4Link.id).all()
