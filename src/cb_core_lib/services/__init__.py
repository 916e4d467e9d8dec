"""Application services built on the domain core and collaborators."""

from cb_core_lib.services.portal import CasePortal

__all__ = ["CasePortal"]
