"""Authentication models."""

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class TokenUse(StrEnum):
    """Purpose a token was issued for."""

    ACCESS = "access"
    REFRESH = "refresh"


class TokenClaims(BaseModel):
    """Verified token claims."""

    subject: str = Field(description="Username the token was issued to")
    use: TokenUse = Field(description="Token purpose")
    issued_at: int = Field(description="Issue time (seconds since epoch)")
    expires_at: int = Field(description="Expiry time (seconds since epoch), exclusive")


class TokenPair(BaseModel):
    """Access/refresh token pair returned by login and refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class Principal(BaseModel):
    """Authenticated caller injected by the bearer gate."""

    username: str
    claims: TokenClaims


class LoginRequest(BaseModel):
    """Login request body."""

    username: str
    password: str


class RefreshRequest(BaseModel):
    """Refresh request body."""

    refresh_token: str


class ChangeCredentialsRequest(BaseModel):
    """Credential rotation request body."""

    username: str
    new_password: str

    @field_validator("username", "new_password")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class MeResponse(BaseModel):
    """Current identity response."""

    username: str
    default_creds: bool = Field(description="True while factory default credentials are in use")
