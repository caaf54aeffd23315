"""
Shared fixtures: an in-memory repository with a ticking clock, principals
for two departments, and an app wired to both.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from identity import IdentityProvider
from main import create_app
from repository import InMemorySubmissionRepository
from schemas import Principal, SubmissionRecord

BASE_TIME = datetime(2024, 3, 16, 9, 0, tzinfo=timezone.utc)


class TickingClock:
    """Every call is one minute after the previous one."""

    def __init__(self, start=BASE_TIME, step=timedelta(minutes=1)):
        self.now = start
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def repository(clock):
    return InMemorySubmissionRepository(clock=clock)


@pytest.fixture
def student():
    return Principal(
        id="stu-1", email="student1@cit.edu.in", role="student", department="CSE",
        batch="2022-2027", display_name="Asha Kumar", onboarding_complete=True,
    )


@pytest.fixture
def other_student():
    return Principal(
        id="stu-2", email="student2@cit.edu.in", role="student", department="CSE",
        batch="2023-2028", display_name="Ravi Shankar", onboarding_complete=True,
    )


@pytest.fixture
def staff():
    return Principal(
        id="staff-1", email="staff@cit.edu.in", role="staff", department="CSE",
        display_name="Dr. Meena", onboarding_complete=True,
    )


@pytest.fixture
def ece_staff():
    return Principal(
        id="staff-2", email="staff2@cit.edu.in", role="staff", department="ECE",
        display_name="Dr. Iyer", onboarding_complete=True,
    )


@pytest.fixture
def make_payload():
    def _make(**overrides):
        payload = {
            "event_name": "AI Workshop",
            "event_type": "Workshop",
            "organizer": "CSE Dept, CIT",
            "hosting_institution": "CIT",
            "level": "Intra-college",
            "event_date": "2024-03-15",
            "semester": "4",
            "certificate_link": "https://drive.google.com/drive/folders/1a2b3c4d5e",
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def make_record():
    def _make(**overrides):
        data = {
            "id": str(uuid.uuid4()),
            "owner_id": "stu-1",
            "email": "student1@cit.edu.in",
            "display_name": "Asha Kumar",
            "department": "CSE",
            "batch": "2022-2027",
            "semester": "4",
            "event_name": "AI Workshop",
            "event_type": "Workshop",
            "organizer": "CSE Dept, CIT",
            "hosting_institution": "CIT",
            "level": "Intra-college",
            "event_date": "2024-03-15",
            "certificate_link": "https://drive.google.com/drive/folders/1a2b3c4d5e",
            "status": "pending",
            "last_modified": BASE_TIME,
        }
        data.update(overrides)
        return SubmissionRecord(**data)
    return _make


@pytest.fixture
def identity():
    return IdentityProvider(bcrypt_rounds=4)


@pytest.fixture
def client(repository, identity):
    app = create_app(repository=repository, identity=identity)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sign_in(client):
    """Sign up and onboard an account through the API; returns auth headers."""
    def _sign_in(email, role="student", department="CSE", batch="2022-2027", name=None):
        response = client.post("/auth/signup", json={
            "email": email, "password": "secret123", "role": role, "display_name": name,
        })
        assert response.status_code == 201
        headers = {"Authorization": f"Bearer {response.json()['token']}"}
        response = client.post("/auth/onboarding", headers=headers, json={
            "display_name": name or email.split("@")[0],
            "department": department,
            "batch": batch if role == "student" else None,
        })
        assert response.status_code == 200
        return headers
    return _sign_in
