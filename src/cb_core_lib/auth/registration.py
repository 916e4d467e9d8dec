"""Sign-up and sign-in form rules, and the profile written for a new physician."""

import re
from typing import Optional, Union

from pydantic import BaseModel, Field

from cb_core_lib.exceptions import ValidationError
from cb_core_lib.models import Availability, Jurisdiction, PhysicianProfile, Specialty

PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)(?=.*[@$!%*#?&])[A-Za-z\d@$!%*#?&]{8,}$")

PASSWORD_RULE_MESSAGE = (
    "Password must be at least 8 characters and contain one letter, one number, "
    "and one special character (e.g., @, $, !, *, #, ?, &)."
)

DEFAULT_EXPERIENCE_YEARS = 5

PROFILE_IMAGE_URL = "https://picsum.photos/seed/{uid}/200/200"


class SignUpForm(BaseModel):
    """What a physician enters on the sign-up screen."""

    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str
    confirm_password: str
    country: Jurisdiction
    specialty: Specialty = Field(default=Specialty.RADIOLOGY)
    bio: str = Field(default="")
    experience: Union[int, str] = Field(default="")


def validate_sign_in(email: str, password: str) -> None:
    if not email or not email.strip() or not password:
        raise ValidationError("Please enter both email and password.")


def validate_sign_up(form: SignUpForm) -> None:
    """Check the password fields before anything is sent to the auth backend.

    Raises:
        ValidationError: If the passwords differ or the password is too simple
    """
    if form.password != form.confirm_password:
        raise ValidationError("Passwords do not match.", context={"field": "confirm_password"})
    if not PASSWORD_PATTERN.match(form.password):
        raise ValidationError(PASSWORD_RULE_MESSAGE, context={"field": "password"})


def parse_experience(value: Union[int, str, None]) -> int:
    """Leading integer of value; blank, unparsable or zero falls back to the default."""
    if isinstance(value, int):
        years = value
    else:
        match = re.match(r"\s*([+-]?\d+)", value or "")
        years = int(match.group(1)) if match else 0
    return years if years > 0 else DEFAULT_EXPERIENCE_YEARS


def build_profile(uid: str, form: SignUpForm, image_url: Optional[str] = None) -> PhysicianProfile:
    """The users document for a freshly created account."""
    return PhysicianProfile(
        id=uid,
        name=f"Dr. {form.name.strip()}",
        email=form.email,
        country=form.country,
        specialty=form.specialty,
        bio=form.bio,
        experience=parse_experience(form.experience),
        availability=Availability.AVAILABLE,
        profile_image_url=image_url or PROFILE_IMAGE_URL.format(uid=uid),
    )
