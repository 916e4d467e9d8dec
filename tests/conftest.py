from datetime import datetime, timezone

import pytest

from cb_core_lib.config import reset_settings
from cb_core_lib.core import open_case
from cb_core_lib.models import Gender, Jurisdiction, Patient, PhysicianProfile, Specialty
from cb_core_lib.store import InMemoryDocumentStore


@pytest.fixture
def t0():
    return datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def referrer():
    return PhysicianProfile(
        id="u-reed",
        name="Dr. Ada Reed",
        email="ada.reed@clinic.example",
        specialty=Specialty.CARDIOLOGY,
        country=Jurisdiction.USA,
        experience=12,
    )


@pytest.fixture
def specialist():
    return PhysicianProfile(
        id="u-rao",
        name="Dr. Vikram Rao",
        email="v.rao@hospital.example",
        specialty=Specialty.RADIOLOGY,
        country=Jurisdiction.INDIA,
        experience=9,
    )


@pytest.fixture
def outsider():
    return PhysicianProfile(
        id="u-iyer",
        name="Dr. Meera Iyer",
        email="m.iyer@hospital.example",
        specialty=Specialty.NEUROLOGY,
        country=Jurisdiction.INDIA,
    )


@pytest.fixture
def patient():
    return Patient(
        id="p-001",
        name="John Doe",
        age=54,
        gender=Gender.MALE,
        blood_type="O+",
        medical_history=["Hypertension", "Type 2 diabetes"],
        current_medications=["Lisinopril 10mg", "Metformin 500mg"],
        doctor_notes="Intermittent chest pain on exertion for three weeks.",
    )


@pytest.fixture
def case(patient, referrer, specialist, t0):
    return open_case(patient, referrer, specialist, "Suspected stable angina.", now=t0).evolve(id="case-1")


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()
