import pytest

from models.gradebook_compute import GradebookComputedGrade, GradebookComputeRun, GradebookPhase4Link
from models.student_grades import GradeEntry, StudentGrade
from schemas.gradebook_compute import ComputeRunCreate
from services.gradebook import compute_runs, phase4
from services.gradebook.errors import ComputeRunStateError, WeightValidationError


def completed_run(db, seed, add_item, add_score):
    for code, points in (("WW", 88), ("PT", 85), ("QA", 90)):
        item = add_item(seed, code)
        for student in seed.students:
            add_score(item, student, points)
    request = ComputeRunCreate(
        section_id=seed.section.id,
        school_year_id="SY2025",
        term_period="Q1",
        scheme_id=seed.scheme.id,
        transmutation_table_id=seed.table.id,
    )
    return compute_runs.create_compute_run(db, request).run


def add_draft(db, student, status="draft"):
    draft = StudentGrade(
        organization_id="org-1", student_id=student.id, school_year_id="SY2025", term_period="Q1", status=status
    )
    db.add(draft)
    db.commit()
    return draft


def test_links_students_with_drafts_and_reports_the_rest(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    run = completed_run(db, seed, add_item, add_score)
    draft = add_draft(db, seed.students[0])

    result = phase4.send_to_phase4(db, run.id, created_by="teacher-1")

    assert result.total_grades == 2
    assert len(result.links) == 1
    assert result.errors == [
        "Student Student1 Reyes: No draft student_grade found. Please create a draft grade in Phase 4 first."
    ]

    entry = db.query(GradeEntry).one()
    assert entry.student_grade_id == draft.id
    assert entry.entry_type == "manual_note"
    assert entry.created_by == "teacher-1"
    assert entry.entry_text.startswith("Computed grade from Gradebook Computation Phase")
    assert "Traceability Metadata:" in entry.entry_text
    assert f'"compute_run_id": {run.id}' in entry.entry_text
    assert '"rounding_mode": "floor"' in entry.entry_text

    link = db.query(GradebookPhase4Link).one()
    assert link.grade_entry_id == entry.id
    assert result.as_dict()["links_created"] == 1


def test_second_send_skips_linked_grades(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    run = completed_run(db, seed, add_item, add_score)
    for student in seed.students:
        add_draft(db, student)

    first = phase4.send_to_phase4(db, run.id)
    second = phase4.send_to_phase4(db, run.id)

    assert len(first.links) == 2
    assert second.links == []
    assert {s["reason"] for s in second.skipped} == {"already_linked"}
    assert db.query(GradebookPhase4Link).count() == 2


def test_finalized_grades_are_not_drafts(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(students=("Santos",))
    run = completed_run(db, seed, add_item, add_score)
    add_draft(db, seed.students[0], status="finalized")

    result = phase4.send_to_phase4(db, run.id)
    assert result.links == []
    assert len(result.errors) == 1


def test_failed_run_cannot_be_sent(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(weights={"WW": 40, "PT": 50})
    request = ComputeRunCreate(
        section_id=seed.section.id,
        school_year_id="SY2025",
        term_period="Q1",
        scheme_id=seed.scheme.id,
        transmutation_table_id=seed.table.id,
    )
    with pytest.raises(WeightValidationError):
        compute_runs.create_compute_run(db, request)
    run_id = db.query(GradebookComputeRun).one().id

    with pytest.raises(ComputeRunStateError):
        phase4.send_to_phase4(db, run_id)


def test_rerun_after_phase4_keeps_linked_grades(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    run = completed_run(db, seed, add_item, add_score)
    for student in seed.students:
        add_draft(db, student)
    phase4.send_to_phase4(db, run.id)
    request = ComputeRunCreate(
        section_id=seed.section.id,
        school_year_id="SY2025",
        term_period="Q1",
        scheme_id=seed.scheme.id,
        transmutation_table_id=seed.table.id,
    )

    with pytest.raises(ComputeRunStateError) as exc_info:
        compute_runs.rerun_compute_run(db, run.id, request)
    assert exc_info.value.details["phase4_links"] == 2

    links = db.query(GradebookPhase4Link).all()
    assert len(links) == 2
    linked_ids = {link.computed_grade_id for link in links}
    grades = db.query(GradebookComputedGrade).filter(GradebookComputedGrade.id.in_(linked_ids)).all()
    assert {g.compute_run_id for g in grades} == {run.id}
    assert db.get(GradebookComputeRun, run.id).status == "completed"


def test_rerun_after_phase4_returns_conflict(client, auth_headers, db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(students=("Santos",))
    run = completed_run(db, seed, add_item, add_score)
    add_draft(db, seed.students[0])
    phase4.send_to_phase4(db, run.id)

    response = client.put(
        f"/v1/gradebook/compute-runs/{run.id}",
        headers=auth_headers,
        json={
            "section_id": seed.section.id,
            "school_year_id": "SY2025",
            "term_period": "Q1",
            "scheme_id": seed.scheme.id,
            "transmutation_table_id": seed.table.id,
        },
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_RUN_STATE"
    assert db.query(GradebookPhase4Link).count() == 1
