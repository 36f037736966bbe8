"""
services/gradebook/phase4.py

Hands a completed compute run over to Phase 4 (official grade entry).
Each computed grade becomes a manual_note grade entry on the student's draft
grade, plus a gradebook_phase4_links row. Students without a draft grade are
reported and skipped; they do not stop the rest of the batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from models.gradebook_compute import GradebookComputedGrade, GradebookPhase4Link
from models.student_grades import GradeEntry, StudentGrade
from services.gradebook import repository
from services.gradebook.errors import ComputeRunStateError
from services.gradebook.trace_note import trace_notes

logger = logging.getLogger(__name__)


@dataclass
class Phase4Result:
    total_grades: int = 0
    links: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "links_created": len(self.links),
            "links_skipped": len(self.skipped),
            "total_grades": self.total_grades,
            "links": self.links,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def _student_name(grade: GradebookComputedGrade) -> str:
    student = grade.student
    if student is None:
        return f"#{grade.student_id}"
    return " ".join(p for p in (student.first_name, student.last_name) if p) or f"#{grade.student_id}"


def _traceability_metadata(run, grade: GradebookComputedGrade) -> Dict[str, Any]:
    scheme = run.scheme
    section = run.section
    breakdown = grade.breakdown or {}
    return {
        "source": "gradebook_computation_phase",
        "compute_run_id": run.id,
        "scheme_id": run.scheme_id,
        "scheme_name": scheme.name if scheme else "Unknown",
        "scheme_version": run.scheme_version,
        "scheme_type": scheme.scheme_type if scheme else "unknown",
        "transmutation_table_id": run.transmutation_table_id,
        "as_of": run.as_of.isoformat() if run.as_of else None,
        "computed_grade_id": grade.id,
        "initial_grade": grade.initial_grade,
        "final_numeric_grade": grade.final_numeric_grade,
        "transmuted_grade": grade.transmuted_grade,
        "rounding_mode": breakdown.get("rounding_mode"),
        "weight_policy": breakdown.get("weight_policy"),
        "section_id": run.section_id,
        "section_code": section.code if section else None,
        "section_name": section.name if section else None,
        "subject_code": breakdown.get("subject_code"),
        "subject_name": breakdown.get("subject_name"),
        "primary_classification": section.primary_classification if section else None,
        "classification_source": section.classification_source if section else None,
    }


def _find_draft_grade(db: Session, grade: GradebookComputedGrade) -> Optional[StudentGrade]:
    return (
        db.query(StudentGrade)
        .filter(
            StudentGrade.student_id == grade.student_id,
            StudentGrade.school_year_id == grade.school_year_id,
            StudentGrade.term_period == grade.term_period,
            StudentGrade.status == "draft",
            StudentGrade.archived_at.is_(None),
        )
        .first()
    )


def send_to_phase4(db: Session, run_id: int, created_by: Optional[str] = None) -> Phase4Result:
    run = repository.get_compute_run(db, run_id)
    if run.status != "completed":
        raise ComputeRunStateError(
            "Compute run must be completed before sending to Phase 4",
            details={"compute_run_id": run.id, "status": run.status},
        )

    grades = repository.list_computed_grades(db, run.id)
    result = Phase4Result(total_grades=len(grades))

    for grade in grades:
        existing = repository.list_phase4_links(db, computed_grade_id=grade.id)
        if existing:
            result.skipped.append({
                "computed_grade_id": grade.id,
                "grade_entry_id": existing[0].grade_entry_id,
                "student_id": grade.student_id,
                "reason": "already_linked",
            })
            continue

        draft = _find_draft_grade(db, grade)
        if draft is None:
            result.errors.append(
                f"Student {_student_name(grade)}: No draft student_grade found. "
                "Please create a draft grade in Phase 4 first."
            )
            continue

        entry = GradeEntry(
            organization_id=grade.organization_id,
            student_grade_id=draft.id,
            entry_type="manual_note",
            entry_text=trace_notes.render_phase4_note(
                metadata=_traceability_metadata(run, grade),
                breakdown=grade.breakdown,
                student_name=_student_name(grade),
                initial_grade=grade.initial_grade,
                final_numeric_grade=grade.final_numeric_grade,
                transmuted_grade=grade.transmuted_grade,
            ),
            created_by=created_by,
        )
        db.add(entry)
        db.flush()

        link = GradebookPhase4Link(
            organization_id=grade.organization_id,
            grade_entry_id=entry.id,
            computed_grade_id=grade.id,
            created_by=created_by,
        )
        db.add(link)
        db.commit()

        result.links.append({
            "computed_grade_id": grade.id,
            "grade_entry_id": entry.id,
            "student_id": grade.student_id,
        })

    logger.info(
        f"Compute run {run.id} sent to Phase 4: {len(result.links)} linked, "
        f"{len(result.skipped)} skipped, {len(result.errors)} errors"
    )
    return result
