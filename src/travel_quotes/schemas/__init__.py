"""API request/response schemas."""

from .auth import Principal, PrincipalRole

__all__ = ["Principal", "PrincipalRole"]
