from datetime import timedelta

import pytest

from database.db import utcnow
from models.gradebook_compute import GradebookComputedGrade, GradebookComputeRun
from models.sections import SectionStudent
from schemas.gradebook_compute import ComputeRunCreate
from services.gradebook import compute_runs
from services.gradebook.errors import (
    ComputeRunStateError,
    GradebookNotFoundError,
    GradebookValidationError,
    MissingTransmutationRowError,
    MissingTransmutationTableError,
    WeightValidationError,
)


def run_request(seed, **overrides):
    data = dict(
        section_id=seed.section.id,
        school_year_id="SY2025",
        term_period="Q1",
        scheme_id=seed.scheme.id,
        transmutation_table_id=seed.table.id if seed.table else None,
    )
    data.update(overrides)
    return ComputeRunCreate(**data)


def score_all(seed, add_item, add_score, points_by_code):
    """points_by_code: {"WW": [santos, reyes], ...} out of 100."""
    for code, points in points_by_code.items():
        item = add_item(seed, code)
        for student, value in zip(seed.students, points):
            add_score(item, student, value)


def test_deped_run_computes_every_enrolled_student(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    score_all(seed, add_item, add_score, {"WW": [88, 70], "PT": [85, 60], "QA": [90, 50]})

    outcome = compute_runs.create_compute_run(db, run_request(seed), run_by="teacher-1")

    assert outcome.run.status == "completed"
    assert outcome.run.run_by == "teacher-1"
    assert outcome.run.transmutation_version == 1
    grades = {g.student_id: g for g in outcome.computed_grades}
    santos = grades[seed.students[0].id]
    reyes = grades[seed.students[1].id]

    assert santos.initial_grade == pytest.approx(87.5)
    assert santos.transmuted_grade == 91
    assert santos.final_numeric_grade == 91
    # 35 + 18 + 10
    assert reyes.initial_grade == pytest.approx(63)
    assert reyes.transmuted_grade == 76

    breakdown = santos.breakdown
    assert breakdown["compute_run_id"] == outcome.run.id
    assert breakdown["computation_method"] == "deped_k12"
    assert breakdown["classification_used"] == "core"
    assert breakdown["classification_is_fallback"] is False
    assert breakdown["initial_grade_key"] == 87
    assert outcome.classification["classification_source"] == "canonical"


def test_computed_grades_are_listed_by_last_name(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(students=("Villanueva", "Aquino", "Mendoza"))
    item = add_item(seed, "WW")
    for student in seed.students:
        add_score(item, student, 80)

    outcome = compute_runs.create_compute_run(db, run_request(seed))
    names = [g.student.last_name for g in outcome.computed_grades]
    assert names == ["Aquino", "Mendoza", "Villanueva"]


def test_student_without_scores_gets_zero(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    item = add_item(seed, "WW")
    add_score(item, seed.students[0], 90)

    outcome = compute_runs.create_compute_run(db, run_request(seed))
    grades = {g.student_id: g for g in outcome.computed_grades}
    assert grades[seed.students[1].id].initial_grade == 0
    assert grades[seed.students[1].id].transmuted_grade == 60


def test_withdrawn_students_are_not_computed(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    enrollment = db.query(SectionStudent).filter(SectionStudent.student_id == seed.students[1].id).first()
    enrollment.status = "withdrawn"
    db.commit()
    score_all(seed, add_item, add_score, {"WW": [80, 80], "PT": [80, 80], "QA": [80, 80]})

    outcome = compute_runs.create_compute_run(db, run_request(seed))
    assert [g.student_id for g in outcome.computed_grades] == [seed.students[0].id]


def test_scores_entered_after_as_of_are_ignored(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    item = add_item(seed, "WW")
    add_score(item, seed.students[0], 100)
    late_item = add_item(seed, "WW")
    add_score(late_item, seed.students[0], 0, created_at=utcnow() + timedelta(days=1))

    outcome = compute_runs.create_compute_run(db, run_request(seed))
    santos = [g for g in outcome.computed_grades if g.student_id == seed.students[0].id][0]
    ww = santos.breakdown["components"][0]
    assert ww["max_total"] == 100
    assert santos.initial_grade == pytest.approx(50)


def test_missing_transmutation_table_fails_before_creating_a_run(db, seed_gradebook):
    seed = seed_gradebook()

    with pytest.raises(MissingTransmutationTableError):
        compute_runs.create_compute_run(db, run_request(seed, transmutation_table_id=None))
    assert db.query(GradebookComputeRun).count() == 0


def test_empty_transmutation_table_fails_the_run(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(table_rows=[])
    score_all(seed, add_item, add_score, {"WW": [80, 80]})

    with pytest.raises(MissingTransmutationTableError):
        compute_runs.create_compute_run(db, run_request(seed))
    run = db.query(GradebookComputeRun).one()
    assert run.status == "failed"


def test_transmutation_gap_fails_the_whole_run(db, seed_gradebook, add_item, add_score):
    rows = [{"initial_grade": k, "transmuted_grade": 80} for k in range(0, 101) if k != 89]
    seed = seed_gradebook(table_rows=rows, weights={"WW": 100})
    item = add_item(seed, "WW")
    add_score(item, seed.students[0], 70)
    add_score(item, seed.students[1], 89.5)

    with pytest.raises(MissingTransmutationRowError):
        compute_runs.create_compute_run(db, run_request(seed))

    run = db.query(GradebookComputeRun).one()
    assert run.status == "failed"
    assert "initial_grade=89.50" in run.error_message
    assert db.query(GradebookComputedGrade).count() == 0


def test_strict_weight_mismatch_fails_the_run(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(weights={"WW": 40, "PT": 50})
    score_all(seed, add_item, add_score, {"WW": [85, 85], "PT": [90, 90]})

    with pytest.raises(WeightValidationError):
        compute_runs.create_compute_run(db, run_request(seed))

    run = db.query(GradebookComputeRun).one()
    assert run.status == "failed"
    assert "sum to 90%" in run.error_message
    assert db.query(GradebookComputedGrade).count() == 0


def test_normalize_policy_from_scheme_settings(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(
        scheme_type="ched_simple",
        weights={"WW": 40, "PT": 50},
        scheme_settings={"weight_policy": "normalize"},
        table_rows=None,
    )
    score_all(seed, add_item, add_score, {"WW": [85, 85], "PT": [90, 90]})

    outcome = compute_runs.create_compute_run(db, run_request(seed))
    grade = outcome.computed_grades[0]
    assert grade.initial_grade == pytest.approx(87.7777777, abs=1e-5)
    assert grade.breakdown["weight_policy"] == "normalize"
    assert grade.breakdown["rounding_mode"] == "round"


def test_ched_simple_reports_the_initial_grade(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(scheme_type="ched_simple", table_rows=None)
    score_all(seed, add_item, add_score, {"WW": [88, 88], "PT": [85, 85], "QA": [90, 90]})

    outcome = compute_runs.create_compute_run(db, run_request(seed))
    for grade in outcome.computed_grades:
        assert grade.transmuted_grade is None
        assert grade.final_numeric_grade == pytest.approx(grade.initial_grade)
        assert grade.final_numeric_grade == pytest.approx(87.5)
    assert outcome.run.transmutation_table_id is None


def test_unpublished_scheme_is_rejected(db, seed_gradebook):
    seed = seed_gradebook()
    seed.scheme.published_at = None
    db.commit()

    with pytest.raises(GradebookNotFoundError):
        compute_runs.create_compute_run(db, run_request(seed))


def test_section_or_offering_is_required(db, seed_gradebook):
    seed = seed_gradebook()
    with pytest.raises(GradebookValidationError):
        compute_runs.create_compute_run(db, run_request(seed, section_id=None))


def test_offering_resolves_section_and_subject(db, seed_gradebook, add_item, add_score, add_offering):
    seed = seed_gradebook()
    offering = add_offering(seed)
    other_item = add_item(seed, "WW")
    add_score(other_item, seed.students[0], 0)
    item = add_item(seed, "WW", offering=offering)
    add_score(item, seed.students[0], 100)

    outcome = compute_runs.create_compute_run(
        db, run_request(seed, section_id=None, section_subject_offering_id=offering.id)
    )
    assert outcome.run.section_id == seed.section.id
    santos = [g for g in outcome.computed_grades if g.student_id == seed.students[0].id][0]
    assert santos.breakdown["subject_code"] == "MATH7"
    assert santos.breakdown["components"][0]["raw_total"] == 100
    assert santos.initial_grade == pytest.approx(50)


def test_default_profile_is_used_as_fallback(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(classification="stem", profile_key="general")
    seed.profile.is_default = True
    db.commit()
    score_all(seed, add_item, add_score, {"WW": [80, 80], "PT": [80, 80], "QA": [80, 80]})

    outcome = compute_runs.create_compute_run(db, run_request(seed))
    assert outcome.run.weight_profile_id == seed.profile.id
    assert outcome.classification == {
        "classification_used": "general",
        "classification_source": "default_fallback",
        "classification_is_fallback": True,
    }
    assert outcome.computed_grades[0].breakdown["classification_is_fallback"] is True


def test_no_matching_or_default_profile_is_rejected(db, seed_gradebook):
    seed = seed_gradebook(classification=None)
    with pytest.raises(GradebookValidationError):
        compute_runs.create_compute_run(db, run_request(seed))
    assert db.query(GradebookComputeRun).count() == 0


def test_explicit_weight_profile_skips_resolution(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(classification=None)
    score_all(seed, add_item, add_score, {"WW": [80, 80], "PT": [80, 80], "QA": [80, 80]})

    outcome = compute_runs.create_compute_run(db, run_request(seed, weight_profile_id=seed.profile.id))
    assert outcome.run.status == "completed"
    assert outcome.classification is None


def test_rerun_replaces_previous_grades(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(weights={"WW": 100})
    item = add_item(seed, "WW")
    score = add_score(item, seed.students[0], 60)
    add_score(item, seed.students[1], 70)

    first = compute_runs.create_compute_run(db, run_request(seed))
    first_ids = {g.id for g in first.computed_grades}

    score.points_earned = 95
    db.commit()
    second = compute_runs.rerun_compute_run(db, first.run.id, run_request(seed))

    assert second.run.id == first.run.id
    assert len(first_ids) == 2
    assert db.query(GradebookComputedGrade).count() == 2
    santos = [g for g in second.computed_grades if g.student_id == seed.students[0].id][0]
    assert santos.initial_grade == pytest.approx(95)


def test_rerun_after_failure_can_complete(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook(weights={"WW": 40, "PT": 50})
    score_all(seed, add_item, add_score, {"WW": [85, 85], "PT": [90, 90]})
    with pytest.raises(WeightValidationError):
        compute_runs.create_compute_run(db, run_request(seed))
    run = db.query(GradebookComputeRun).one()

    seed.scheme.settings = {"weight_policy": "normalize"}
    db.commit()

    outcome = compute_runs.rerun_compute_run(db, run.id, run_request(seed))
    assert outcome.run.status == "completed"
    assert outcome.run.error_message is None
    assert len(outcome.computed_grades) == 2


def test_completed_run_cannot_be_executed_again(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    score_all(seed, add_item, add_score, {"WW": [80, 80]})
    outcome = compute_runs.create_compute_run(db, run_request(seed))

    with pytest.raises(ComputeRunStateError):
        compute_runs.execute_compute_run(db, outcome.run)


def test_archived_run_is_hidden(db, seed_gradebook, add_item, add_score):
    seed = seed_gradebook()
    score_all(seed, add_item, add_score, {"WW": [80, 80]})
    outcome = compute_runs.create_compute_run(db, run_request(seed))

    compute_runs.archive_compute_run(db, outcome.run.id)
    with pytest.raises(GradebookNotFoundError):
        compute_runs.archive_compute_run(db, outcome.run.id)
