"""Patient and physician reference data.

Patients are read-mostly records; a Case embeds a point-in-time copy of one.
Physicians are user accounts whose role is derived from their jurisdiction:
referring physicians practise in jurisdiction A (USA), consulted specialists
in jurisdiction B (India).
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from cb_core_lib.models.common import camel_alias


class Jurisdiction(str, Enum):
    """The two supported physician countries."""

    USA = "USA"
    """Jurisdiction A: referring physicians"""

    INDIA = "India"
    """Jurisdiction B: remote specialists"""


REFERRER_JURISDICTION = Jurisdiction.USA
SPECIALIST_JURISDICTION = Jurisdiction.INDIA


class Specialty(str, Enum):
    CARDIOLOGY = "Cardiology"
    NEUROLOGY = "Neurology"
    ONCOLOGY = "Oncology"
    ORTHOPEDICS = "Orthopedics"
    PEDIATRICS = "Pediatrics"
    RADIOLOGY = "Radiology"
    PATHOLOGY = "Pathology"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class Availability(str, Enum):
    AVAILABLE = "Available"
    BUSY = "Busy"


class Patient(BaseModel):
    """Demographic and clinical fields copied into a Case at creation."""

    id: str = Field(description="Patient document id", min_length=1)

    name: str = Field(min_length=1, max_length=200)

    age: int = Field(ge=0, le=150)

    gender: Gender

    blood_type: str = Field(default="", max_length=10)

    medical_history: List[str] = Field(default_factory=list)

    current_medications: List[str] = Field(default_factory=list)

    doctor_notes: str = Field(default="")

    class Config:
        alias_generator = camel_alias
        populate_by_name = True


class PhysicianProfile(BaseModel):
    """
    Physician account as stored in the users collection.

    Role is not stored: see is_referrer / is_specialist.
    """

    id: str = Field(description="Auth uid, also the users document id", min_length=1)

    name: str = Field(min_length=1, max_length=200)

    email: str = Field(min_length=3, max_length=320)

    specialty: Specialty

    country: Jurisdiction

    profile_image_url: str = Field(default="")

    experience: int = Field(default=0, ge=0, description="Years of practice")

    availability: Availability = Field(default=Availability.AVAILABLE)

    bio: Optional[str] = Field(default=None, max_length=5000)

    @property
    def is_referrer(self) -> bool:
        return self.country == REFERRER_JURISDICTION

    @property
    def is_specialist(self) -> bool:
        return self.country == SPECIALIST_JURISDICTION

    @field_validator('email')
    @classmethod
    def email_has_at(cls, v):
        if "@" not in v:
            raise ValueError("email must contain '@'")
        return v.strip()

    class Config:
        alias_generator = camel_alias
        populate_by_name = True
