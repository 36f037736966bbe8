"""
services/gradebook/compute_runs.py

Compute run orchestration.

Fetches graded items, scores, weights and transmutation rows, calls the engine
once per enrolled student and persists the batch. A run is all-or-nothing:
any failure marks it failed and no computed grade is written.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from config.settings import settings
from database.db import utcnow
from models.gradebook_compute import GradebookComputeRun, GradebookComputedGrade, GradebookPhase4Link
from models.gradebook_schemes import GradebookScheme
from models.sections import Section
from models.subjects import SectionSubjectOffering
from services.gradebook import repository
from services.gradebook.engine import (
    ComponentWeight,
    GradedScore,
    RoundingMode,
    SchemeType,
    ScoreStatus,
    TransmutationRow,
    WeightPolicy,
    build_transmutation_lookup,
    compute_student_grade,
    validate_weights,
)
from services.gradebook.errors import (
    ComputeRunStateError,
    GradebookValidationError,
    MissingTransmutationTableError,
)

logger = logging.getLogger(__name__)


@dataclass
class ComputeRunOutcome:
    run: GradebookComputeRun
    computed_grades: List[GradebookComputedGrade]
    classification: Optional[Dict[str, Any]] = None


@dataclass
class _RunTarget:
    section_id: int
    section_subject_offering_id: Optional[int]
    scheme: GradebookScheme
    weight_profile_id: int
    transmutation_table_id: Optional[int]
    transmutation_version: Optional[int]
    classification: Optional[Dict[str, Any]] = field(default=None)


# ==========================================================
# Scheme options
# ==========================================================

def scheme_options(scheme: GradebookScheme) -> Tuple[SchemeType, RoundingMode, WeightPolicy]:
    """Scheme type plus rounding mode / weight policy, metadata first then defaults."""
    scheme_type = SchemeType(scheme.scheme_type)
    options = scheme.settings or {}
    rounding_mode = RoundingMode(options.get("rounding_mode") or scheme_type.default_rounding_mode)
    weight_policy = WeightPolicy(options.get("weight_policy") or WeightPolicy.STRICT)
    return scheme_type, rounding_mode, weight_policy


# ==========================================================
# Request validation shared by create / re-run
# ==========================================================

def _resolve_target(db: Session, request) -> _RunTarget:
    if not request.section_id and not request.section_subject_offering_id:
        raise GradebookValidationError(
            "Missing required fields: (section_id OR section_subject_offering_id), school_year_id, term_period, scheme_id"
        )

    section_id = request.section_id
    if not section_id:
        section_id = repository.get_offering(db, request.section_subject_offering_id).section_id

    scheme = repository.get_scheme(db, request.scheme_id, published_only=True)
    scheme_type = SchemeType(scheme.scheme_type)

    # cheap early check, before any run row is written
    transmutation_version = None
    if scheme_type.requires_transmutation:
        if not request.transmutation_table_id:
            raise MissingTransmutationTableError(
                f"Transmutation table is required for {scheme_type.display_name} schemes",
                details={"scheme_id": scheme.id, "scheme_type": scheme_type.value},
            )
        table = repository.get_transmutation_table(db, request.transmutation_table_id)
        if table.published_at is None:
            logger.warning(f"Using unpublished transmutation table {table.id}")
        transmutation_version = table.version

    classification = None
    weight_profile_id = request.weight_profile_id
    if weight_profile_id:
        repository.get_weight_profile(db, weight_profile_id)
    else:
        resolution = repository.resolve_weight_profile_for_section(db, section_id, scheme.id)
        weight_profile_id = resolution.weight_profile_id
        classification = resolution.as_metadata()

    return _RunTarget(
        section_id=section_id,
        section_subject_offering_id=request.section_subject_offering_id,
        scheme=scheme,
        weight_profile_id=weight_profile_id,
        transmutation_table_id=request.transmutation_table_id if scheme_type.requires_transmutation else None,
        transmutation_version=transmutation_version,
        classification=classification,
    )


def _apply_target(run: GradebookComputeRun, target: _RunTarget, request, run_by: Optional[str]) -> None:
    run.organization_id = target.scheme.organization_id
    run.section_id = target.section_id
    run.section_subject_offering_id = target.section_subject_offering_id
    run.school_year_id = request.school_year_id
    run.term_period = request.term_period
    run.scheme_id = target.scheme.id
    run.scheme_version = target.scheme.version
    run.weight_profile_id = target.weight_profile_id
    run.transmutation_table_id = target.transmutation_table_id
    run.transmutation_version = target.transmutation_version
    run.as_of = utcnow()
    run.run_by = run_by
    run.status = "created"
    run.error_message = None


# ==========================================================
# Public operations
# ==========================================================

def create_compute_run(db: Session, request, run_by: Optional[str] = None) -> ComputeRunOutcome:
    target = _resolve_target(db, request)

    run = GradebookComputeRun()
    _apply_target(run, target, request, run_by)
    db.add(run)
    db.commit()
    db.refresh(run)
    logger.info(f"Compute run {run.id} created for section {run.section_id} / {run.term_period}")

    grades = execute_compute_run(db, run, target.classification)
    return ComputeRunOutcome(run=run, computed_grades=grades, classification=target.classification)


def rerun_compute_run(db: Session, run_id: int, request, run_by: Optional[str] = None) -> ComputeRunOutcome:
    """Recompute an existing run; its previous computed grades are superseded."""
    run = repository.get_compute_run(db, run_id)

    # grades linked to Phase 4 grade entries are never deleted
    linked = (
        db.query(GradebookPhase4Link)
        .join(GradebookComputedGrade, GradebookComputedGrade.id == GradebookPhase4Link.computed_grade_id)
        .filter(GradebookComputedGrade.compute_run_id == run.id)
        .count()
    )
    if linked:
        raise ComputeRunStateError(
            "Compute run was already sent to Phase 4; create a new run instead",
            details={"compute_run_id": run.id, "phase4_links": linked},
        )

    target = _resolve_target(db, request)

    deleted = (
        db.query(GradebookComputedGrade)
        .filter(GradebookComputedGrade.compute_run_id == run.id)
        .delete(synchronize_session="fetch")
    )
    _apply_target(run, target, request, run_by)
    db.commit()
    db.refresh(run)
    logger.info(f"Compute run {run.id} reset for re-run ({deleted} computed grades removed)")

    grades = execute_compute_run(db, run, target.classification)
    return ComputeRunOutcome(run=run, computed_grades=grades, classification=target.classification)


def get_compute_run_detail(db: Session, run_id: int) -> ComputeRunOutcome:
    run = repository.get_compute_run(db, run_id)
    return ComputeRunOutcome(run=run, computed_grades=repository.list_computed_grades(db, run.id))


def archive_compute_run(db: Session, run_id: int) -> None:
    run = repository.get_compute_run(db, run_id)
    run.archived_at = utcnow()
    db.commit()


def execute_compute_run(
    db: Session,
    run: GradebookComputeRun,
    classification: Optional[Dict[str, Any]] = None,
) -> List[GradebookComputedGrade]:
    if run.status != "created":
        raise ComputeRunStateError(
            "Compute run already processed", details={"compute_run_id": run.id, "status": run.status}
        )

    try:
        rows = _compute_rows(db, run, classification)
    except Exception as exc:
        _fail_run(db, run, getattr(exc, "message", None) or str(exc))
        raise

    db.add_all(rows)
    run.status = "completed"
    run.error_message = None
    db.commit()
    for row in rows:
        db.refresh(row)
    logger.info(f"Compute run {run.id} completed: {len(rows)} computed grades")
    return repository.list_computed_grades(db, run.id)


# ==========================================================
# Internals
# ==========================================================

def _fail_run(db: Session, run: GradebookComputeRun, message: str) -> None:
    db.rollback()
    run.status = "failed"
    run.error_message = message
    db.commit()
    logger.error(f"Compute run {run.id} failed: {message}")


def _compute_rows(
    db: Session,
    run: GradebookComputeRun,
    classification: Optional[Dict[str, Any]],
) -> List[GradebookComputedGrade]:
    scheme = repository.get_scheme(db, run.scheme_id)
    scheme_type, rounding_mode, weight_policy = scheme_options(scheme)

    components = {c.id: c for c in repository.list_components(db, scheme.id)}
    weights = []
    for w in repository.list_component_weights(db, scheme.id, run.weight_profile_id):
        component = components.get(w.component_id)
        weights.append(ComponentWeight(
            component_id=w.component_id,
            weight_percent=w.weight_percent,
            code=component.code if component else None,
            label=component.label if component else None,
        ))
    validate_weights(weights, weight_policy, settings.WEIGHT_TOLERANCE)

    lookup = None
    if scheme_type.requires_transmutation:
        if not run.transmutation_table_id:
            raise MissingTransmutationTableError(
                f"{scheme_type.display_name} scheme requires transmutation_table_id"
            )
        table_rows = repository.list_transmutation_rows(db, run.transmutation_table_id)
        if not table_rows:
            raise MissingTransmutationTableError(
                "Transmutation table has no rows",
                details={"transmutation_table_id": run.transmutation_table_id},
            )
        lookup = build_transmutation_lookup(
            TransmutationRow(r.initial_grade, r.transmuted_grade) for r in table_rows
        )

    items = repository.list_graded_items(
        db,
        section_id=run.section_id,
        section_subject_offering_id=run.section_subject_offering_id,
        term_period=run.term_period,
    )
    item_by_id = {item.id: item for item in items}

    scores_by_student: Dict[int, Dict[int, List[GradedScore]]] = defaultdict(lambda: defaultdict(list))
    seen = set()
    for score in repository.list_graded_scores(db, item_by_id.keys(), as_of=run.as_of):
        key = (score.student_id, score.graded_item_id)
        if key in seen:
            continue
        seen.add(key)
        item = item_by_id[score.graded_item_id]
        scores_by_student[score.student_id][item.component_id].append(GradedScore(
            points=score.points_earned or 0,
            max_points=item.max_points,
            status=ScoreStatus(score.status),
            graded_item_id=item.id,
        ))

    context = _breakdown_context(db, run, scheme, classification)
    student_ids = repository.list_active_student_ids(db, run.section_id)

    rows = []
    for student_id in student_ids:
        result = compute_student_grade(
            student_id,
            scores_by_student.get(student_id, {}),
            weights,
            weight_policy=weight_policy,
            rounding_mode=rounding_mode,
            context=context,
            tolerance=settings.WEIGHT_TOLERANCE,
            transmutation_lookup=lookup,
        )
        rows.append(GradebookComputedGrade(
            organization_id=run.organization_id,
            compute_run_id=run.id,
            student_id=student_id,
            section_id=run.section_id,
            section_subject_offering_id=run.section_subject_offering_id,
            school_year_id=run.school_year_id,
            term_period=run.term_period,
            initial_grade=result.initial_grade,
            final_numeric_grade=result.final_numeric_grade,
            transmuted_grade=result.transmuted_grade,
            breakdown=result.breakdown,
        ))
    return rows


def _breakdown_context(
    db: Session,
    run: GradebookComputeRun,
    scheme: GradebookScheme,
    classification: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    context: Dict[str, Any] = {
        "organization_id": run.organization_id,
        "compute_run_id": run.id,
        "computation_method": scheme.scheme_type,
        "scheme_id": scheme.id,
        "scheme_version": run.scheme_version,
        "as_of": run.as_of.isoformat() if run.as_of else None,
        "weight_profile_id": run.weight_profile_id,
        "transmutation_table_id": run.transmutation_table_id,
        "section_id": run.section_id,
        "section_subject_offering_id": run.section_subject_offering_id,
        "subject_id": None,
        "subject_code": None,
        "subject_name": None,
        "school_year_id": run.school_year_id,
        "term_period": run.term_period,
    }

    if run.section_subject_offering_id:
        offering = (
            db.query(SectionSubjectOffering)
            .filter(SectionSubjectOffering.id == run.section_subject_offering_id)
            .first()
        )
        if offering and offering.subject:
            context["subject_id"] = offering.subject.id
            context["subject_code"] = offering.subject.code
            context["subject_name"] = offering.subject.name

    if classification is None:
        section = db.query(Section).filter(Section.id == run.section_id).first()
        classification = {
            "classification_used": section.primary_classification if section else None,
            "classification_source": section.classification_source if section else None,
            "classification_is_fallback": False,
        }
    context.update(classification)
    return context
