"""HTTP clients for the hosted backend."""

from cb_core_lib.clients.base import BaseServiceClient, TokenSource

__all__ = ["BaseServiceClient", "TokenSource"]
