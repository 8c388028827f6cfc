import os

# The app module builds its engine at import time; keep it off the network.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from classgrid.api.deps import get_db
from classgrid.db.base import Base
from classgrid.main import app
from classgrid.services.catalog import BatchInfo, FacultyInfo, ScheduleCatalog, SubjectInfo
from classgrid.services.conflict_service import EntryPlacement
from classgrid.services.time_model import DayOfWeek, TimeSlotWindow


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def seeded(client):
    """Reference data created through the API; returns the ids keyed by short names."""
    ids: dict[str, str] = {}
    for key, name, start, end, order in (
        ("s1", "Period 1", "09:00", "10:00", 1),
        ("s2", "Period 2", "10:00", "11:00", 2),
        ("s3", "Period 3", "11:00", "12:00", 3),
    ):
        response = client.post(
            "/api/time-slots",
            json={"name": name, "start_time": start, "end_time": end, "sort_order": order},
        )
        assert response.status_code == 201, response.text
        ids[key] = response.json()["id"]

    for key, name in (("b1", "CSE-A"), ("b2", "CSE-B")):
        response = client.post("/api/batches", json={"name": name, "department": "CSE", "semester": 3})
        assert response.status_code == 201, response.text
        ids[key] = response.json()["id"]

    response = client.post("/api/subjects", json={"code": "ma201", "name": "Mathematics", "department": "CSE"})
    assert response.status_code == 201, response.text
    ids["math"] = response.json()["id"]

    for key, name, email in (
        ("f1", "Dr. Rao", "rao@university.edu"),
        ("f2", "Dr. Iyer", "iyer@university.edu"),
    ):
        response = client.post(
            "/api/faculty",
            json={"name": name, "email": email, "department": "CSE", "designation": "Professor", "max_hours": 14},
        )
        assert response.status_code == 201, response.text
        ids[key] = response.json()["id"]
    return ids


@pytest.fixture()
def catalog() -> ScheduleCatalog:
    return ScheduleCatalog(
        time_slots={
            "s1": TimeSlotWindow.from_strings(id="s1", name="Period 1", start_time="09:00", end_time="10:00", sort_order=1),
            "s2": TimeSlotWindow.from_strings(id="s2", name="Period 2", start_time="10:00", end_time="11:00", sort_order=2),
            "s3": TimeSlotWindow.from_strings(id="s3", name="Period 3", start_time="11:00", end_time="12:00", sort_order=3),
            "s4": TimeSlotWindow.from_strings(id="s4", name="Period 4", start_time="14:00", end_time="15:00", sort_order=4),
        },
        subjects={
            "math": SubjectInfo(id="math", name="Mathematics", code="MA201", department="CSE"),
            "mod": SubjectInfo(id="mod", name="Systems Module", code="SM301", department="CSE", is_module=True),
        },
        faculty={
            "f1": FacultyInfo(id="f1", name="Dr. Rao", department="CSE", designation="Professor", max_hours=14),
            "f2": FacultyInfo(id="f2", name="Dr. Iyer", department="CSE", designation="Professor", max_hours=14),
            "f3": FacultyInfo(id="f3", name="Dr. Menon", department="ECE", designation="Professor", max_hours=14),
        },
        batches={
            "b1": BatchInfo(id="b1", name="CSE-A", department="CSE"),
            "b2": BatchInfo(id="b2", name="CSE-B", department="CSE"),
        },
    )


@pytest.fixture()
def placement():
    def build(**overrides) -> EntryPlacement:
        values = {
            "batch_id": "b1",
            "subject_id": "math",
            "faculty_id": "f1",
            "time_slot_id": "s1",
            "day_of_week": DayOfWeek.MONDAY,
        }
        values.update(overrides)
        return EntryPlacement(**values)

    return build
