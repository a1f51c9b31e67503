import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OAuthToken(BaseModel):
    """
    See https://datatracker.ietf.org/doc/html/rfc6749#section-5.1
    """

    access_token: str
    token_type: str = "bearer"
    expires_in: int | None = None
    scope: str | None = None
    refresh_token: str | None = None

    # providers are free to add their own values to the token response
    model_config = ConfigDict(extra="allow")

    @field_validator("access_token", mode="before")
    @classmethod
    def coerce_access_token(cls, v: Any) -> Any:
        # some providers send numeric tokens
        if isinstance(v, int | float):
            return str(v)
        return v


class TokenErrorResponse(BaseModel):
    """
    See https://datatracker.ietf.org/doc/html/rfc6749#section-5.2
    """

    error: str
    error_description: str | None = None
    error_uri: str | None = None

    model_config = ConfigDict(extra="allow")


class AccessToken(BaseModel):
    """
    An issued access token.

    Instances are immutable. A replacement token is always a new instance, and
    the middleware compares instances by identity to tell whether the token it
    holds is the one that was just rejected.
    """

    access_token: str
    token_type: str = "bearer"
    refresh_token: str | None = None
    expires_at: float | None = None
    scope: str | None = None
    values: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_response(cls, token: OAuthToken, now: float | None = None) -> "AccessToken":
        """Build an access token from a token endpoint response."""
        expires_at = None
        if token.expires_in is not None:
            expires_at = (time.time() if now is None else now) + token.expires_in

        return cls(
            access_token=token.access_token,
            token_type=token.token_type,
            refresh_token=token.refresh_token,
            expires_at=expires_at,
            scope=token.scope,
            values=dict(token.model_extra or {}),
        )

    def has_expired(self) -> bool:
        """Check if the token is expired. Tokens without an expiry never expire."""
        return self.expires_at is not None and time.time() >= self.expires_at

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []

    def __str__(self) -> str:
        return self.access_token

    def __repr__(self) -> str:
        # keep secrets out of tracebacks and logs
        return f"AccessToken(token_type={self.token_type!r}, expires_at={self.expires_at!r})"


class ResourceOwner(BaseModel):
    """The user an access token was issued for."""

    id: str

    model_config = ConfigDict(extra="allow")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v
