"""Authenticated principal and the identity-verification collaborator.

The booking engine never handles credentials. An upstream gateway
authenticates the caller and forwards the verified identity; the verifier
below turns that into a typed ``Principal``.
"""
import enum
from dataclasses import dataclass
from typing import Protocol

from fastapi import Request

from courtbook.core.errors import NotAuthenticatedError, NotAuthorizedError


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    user_id: int
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_act_for(self, user_id: int) -> bool:
        return self.is_admin or self.user_id == user_id


class IdentityVerifier(Protocol):
    """Resolves the principal behind an incoming request."""

    def verify(self, request: Request) -> Principal:
        ...


class TrustedHeaderVerifier:
    """Reads the identity forwarded by the authenticating gateway."""

    USER_HEADER = "X-User-Id"
    ROLE_HEADER = "X-User-Role"

    def verify(self, request: Request) -> Principal:
        raw_user = request.headers.get(self.USER_HEADER)
        if not raw_user:
            raise NotAuthenticatedError("Missing authenticated user")
        try:
            user_id = int(raw_user)
        except ValueError:
            raise NotAuthenticatedError("Malformed authenticated user id")

        raw_role = (request.headers.get(self.ROLE_HEADER) or Role.USER.value).lower()
        try:
            role = Role(raw_role)
        except ValueError:
            raise NotAuthenticatedError(f"Unknown role '{raw_role}'")

        return Principal(user_id=user_id, role=role)


identity_verifier: IdentityVerifier = TrustedHeaderVerifier()


def get_principal(request: Request) -> Principal:
    """FastAPI dependency returning the verified caller."""
    verifier = getattr(request.app.state, "identity_verifier", None) or identity_verifier
    return verifier.verify(request)


def require_admin(principal: Principal) -> Principal:
    if not principal.is_admin:
        raise NotAuthorizedError("Administrator role required")
    return principal
