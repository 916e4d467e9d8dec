"""Physician authentication: sessions, providers and sign-up rules."""

from cb_core_lib.auth.session import AuthSession
from cb_core_lib.auth.base import AuthProvider, SessionListener
from cb_core_lib.auth.memory import InMemoryAuthProvider
from cb_core_lib.auth.identity_toolkit import IdentityToolkitAuthProvider, classify_error
from cb_core_lib.auth.registration import (
    SignUpForm,
    validate_sign_in,
    validate_sign_up,
    build_profile,
    parse_experience,
)

__all__ = [
    "AuthSession",
    "AuthProvider",
    "SessionListener",
    "InMemoryAuthProvider",
    "IdentityToolkitAuthProvider",
    "classify_error",
    "SignUpForm",
    "validate_sign_in",
    "validate_sign_up",
    "build_profile",
    "parse_experience",
]
