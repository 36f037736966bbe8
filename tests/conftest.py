import math
import os
from types import SimpleNamespace

os.environ.setdefault("SQLALCHEMY_URL", "sqlite://")
os.environ.setdefault("API_TOKEN", "test-token")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from config.settings import settings
from database.db import Base, get_db, utcnow
from models.gradebook_items import GradebookGradedItem, GradebookGradedScore
from models.gradebook_schemes import GradebookComponent, GradebookScheme
from models.gradebook_transmutation import GradebookTransmutationRow, GradebookTransmutationTable
from models.gradebook_weights import GradebookComponentWeight, GradebookWeightProfile
from models.sections import Section, SectionStudent
from models.students import Student
from models.subjects import SectionSubjectOffering, Subject


def deped_transmuted(initial_grade: int) -> int:
    """DepEd K-12 transmutation for an integer initial grade."""
    if initial_grade < 60:
        return 60 + initial_grade // 4
    return 75 + math.floor((initial_grade - 60) / 1.6)


def deped_rows():
    return [{"initial_grade": k, "transmuted_grade": deped_transmuted(k)} for k in range(0, 101)]


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {settings.API_TOKEN}", "X-Actor-Id": "teacher-1"}


@pytest.fixture
def seed_gradebook(db):
    """
    Build a published scheme, WW/PT/QA components, one weight profile keyed by the
    section classification, an optional transmutation table and a section with
    enrolled students.
    """

    def _seed(
        scheme_type="deped_k12",
        weights=None,
        scheme_settings=None,
        table_rows="deped",
        classification="core",
        profile_key="core",
        students=("Santos", "Reyes"),
    ):
        weights = weights if weights is not None else {"WW": 50, "PT": 30, "QA": 20}

        scheme = GradebookScheme(
            organization_id="org-1",
            scheme_type=scheme_type,
            name=f"{scheme_type} scheme",
            version=1,
            settings=scheme_settings or {},
            published_at=utcnow(),
        )
        db.add(scheme)
        db.flush()

        components = {}
        labels = {"WW": "Written Work", "PT": "Performance Task", "QA": "Quarterly Assessment"}
        for order, code in enumerate(("WW", "PT", "QA")):
            component = GradebookComponent(
                organization_id="org-1", scheme_id=scheme.id, code=code, label=labels[code], display_order=order
            )
            db.add(component)
            db.flush()
            components[code] = component

        profile = GradebookWeightProfile(
            organization_id="org-1", scheme_id=scheme.id, profile_key=profile_key, profile_label=profile_key.title()
        )
        db.add(profile)
        db.flush()
        for code, weight in weights.items():
            db.add(GradebookComponentWeight(
                organization_id="org-1",
                scheme_id=scheme.id,
                profile_id=profile.id,
                component_id=components[code].id,
                weight_percent=weight,
            ))

        table = None
        if table_rows is not None:
            table = GradebookTransmutationTable(
                organization_id="org-1", scheme_id=scheme.id, version=1, published_at=utcnow()
            )
            db.add(table)
            db.flush()
            rows = deped_rows() if table_rows == "deped" else table_rows
            for row in rows:
                db.add(GradebookTransmutationRow(
                    organization_id="org-1",
                    transmutation_table_id=table.id,
                    initial_grade=row["initial_grade"],
                    transmuted_grade=row["transmuted_grade"],
                ))

        section = Section(
            organization_id="org-1",
            name="Grade 7 - Rizal",
            code="G7-RIZAL",
            primary_classification=classification,
            classification_source="canonical" if classification else None,
        )
        db.add(section)
        db.flush()

        student_rows = []
        for i, last_name in enumerate(students):
            student = Student(
                organization_id="org-1", first_name=f"Student{i}", last_name=last_name, student_number=f"LRN-{i}"
            )
            db.add(student)
            db.flush()
            db.add(SectionStudent(section_id=section.id, student_id=student.id, status="active"))
            student_rows.append(student)

        db.commit()
        return SimpleNamespace(
            scheme=scheme,
            components=components,
            profile=profile,
            table=table,
            section=section,
            students=student_rows,
        )

    return _seed


@pytest.fixture
def add_item(db):
    def _add_item(seed, component_code, max_points=100, term_period="Q1", offering=None):
        item = GradebookGradedItem(
            organization_id="org-1",
            section_id=seed.section.id,
            section_subject_offering_id=offering.id if offering else None,
            school_year_id="SY2025",
            term_period=term_period,
            component_id=seed.components[component_code].id,
            title=f"{component_code} item",
            max_points=max_points,
        )
        db.add(item)
        db.commit()
        return item

    return _add_item


@pytest.fixture
def add_score(db):
    def _add_score(item, student, points, status="present", created_at=None):
        score = GradebookGradedScore(
            organization_id="org-1",
            graded_item_id=item.id,
            student_id=student.id,
            points_earned=points,
            status=status,
        )
        if created_at is not None:
            score.created_at = created_at
        db.add(score)
        db.commit()
        return score

    return _add_score


@pytest.fixture
def add_offering(db):
    def _add_offering(seed, code="MATH7", name="Mathematics 7"):
        subject = Subject(code=code, name=name)
        db.add(subject)
        db.flush()
        offering = SectionSubjectOffering(section_id=seed.section.id, subject_id=subject.id)
        db.add(offering)
        db.commit()
        return offering

    return _add_offering


@pytest.fixture
def deped_table_rows():
    return deped_rows()
