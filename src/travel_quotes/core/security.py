"""JWT helpers that turn bearer tokens into principals."""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from attrs import field, frozen
from beartype import beartype
from pydantic import BaseModel, ConfigDict

from ..schemas.auth import Principal, PrincipalRole
from .config import get_settings


@frozen
class TokenPayload:
    """Immutable JWT token payload."""

    sub: str = field()  # Subject (auth user id)
    exp: datetime = field()
    iat: datetime = field()
    jti: str = field()
    role: str = field(default=PrincipalRole.AGENCY.value)
    scopes: list[str] = field(factory=list)


class TokenData(BaseModel):
    """Token data for API responses."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class Security:
    """Issue and verify access tokens."""

    def __init__(self) -> None:
        """Initialize security utilities."""
        settings = get_settings()
        self._jwt_secret = settings.jwt_secret
        self._jwt_algorithm = settings.jwt_algorithm
        self._jwt_expiration_minutes = settings.jwt_expiration_minutes

    @beartype
    def create_access_token(
        self,
        subject: str,
        role: PrincipalRole = PrincipalRole.AGENCY,
        scopes: list[str] | None = None,
        expires_delta: timedelta | None = None,
    ) -> TokenData:
        """Create JWT access token."""
        now = datetime.now(timezone.utc)

        if expires_delta is None:
            expires_delta = timedelta(minutes=self._jwt_expiration_minutes)

        payload = {
            "sub": subject,
            "exp": now + expires_delta,
            "iat": now,
            "jti": str(uuid.uuid4()),
            "role": role.value,
            "scopes": scopes or [],
        }

        token = jwt.encode(payload, self._jwt_secret, algorithm=self._jwt_algorithm)

        return TokenData(
            access_token=token,
            expires_in=int(expires_delta.total_seconds()),
        )

    @beartype
    def decode_token(self, token: str) -> TokenPayload | None:
        """Decode and validate JWT token; None when invalid or expired."""
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=[self._jwt_algorithm],
            )

            return TokenPayload(
                sub=payload["sub"],
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                jti=payload["jti"],
                role=payload.get("role", PrincipalRole.AGENCY.value),
                scopes=payload.get("scopes", []),
            )
        except (jwt.InvalidTokenError, KeyError):
            return None

    @beartype
    def principal_from_token(self, token: str) -> Principal | None:
        """Map a bearer token to the principal threaded into lifecycle calls."""
        payload = self.decode_token(token)
        if payload is None:
            return None
        try:
            role = PrincipalRole(payload.role)
        except ValueError:
            return None
        return Principal(user_id=payload.sub, role=role, scopes=payload.scopes)


_security: Security | None = None


@beartype
def get_security() -> Security:
    """Get global security instance."""
    global _security
    if _security is None:
        _security = Security()
    return _security
