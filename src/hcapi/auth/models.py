"""Authorisation request, response and status models.

Covers the Device Flow (RFC 8628), the Authorization Code Grant Flow used
with the simulator, token refresh, the persisted token format, and the
status values published to observers.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from hcapi.models import APIModel

# ================================
# Requests
# ================================


@dataclass(frozen=True)
class DeviceAuthorisationRequest:
    """Device Flow: request a user code and verification URI."""

    client_id: str
    scope: str

    def to_form_data(self) -> dict[str, str]:
        return {"client_id": self.client_id, "scope": self.scope}


@dataclass(frozen=True)
class DeviceAccessTokenRequest:
    """Device Flow: poll for the access token."""

    client_id: str
    device_code: str
    client_secret: str | None = None
    grant_type: str = "device_code"

    def to_form_data(self) -> dict[str, str]:
        data = {
            "grant_type": self.grant_type,
            "device_code": self.device_code,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        return data


@dataclass(frozen=True)
class AccessTokenRequest:
    """Authorization Code Grant Flow: exchange a code for an access token."""

    client_id: str
    code: str
    redirect_uri: str | None = None
    client_secret: str | None = None
    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        data = {
            "client_id": self.client_id,
            "grant_type": self.grant_type,
            "code": self.code,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        if self.redirect_uri:
            data["redirect_uri"] = self.redirect_uri
        return data


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Exchange a refresh token for a new access token."""

    refresh_token: str
    client_secret: str | None = None
    grant_type: str = "refresh_token"

    def to_form_data(self) -> dict[str, str]:
        data = {"grant_type": self.grant_type, "refresh_token": self.refresh_token}
        if self.client_secret:
            data["client_secret"] = self.client_secret
        return data


# ================================
# Responses
# ================================


class DeviceAuthorisationResponse(APIModel):
    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str | None = None
    expires_in: int | None = None
    interval: int | None = None


class TokenResponse(APIModel):
    """Response from any successful exchange at the token endpoint."""

    access_token: str
    refresh_token: str
    expires_in: int
    scope: str
    id_token: str | None = None
    token_type: str | None = "Bearer"


class AuthorisationCodeResponse(APIModel):
    """Query parameters of the redirect that carries an authorisation code."""

    code: str
    grant_type: str | None = None
    state: str | None = None


# ================================
# Persisted token
# ================================


class AbsoluteToken(BaseModel):
    """An access/refresh token pair with an absolute expiry time.

    The expiry is stored as epoch milliseconds so that it remains meaningful
    after a restart. Instances are never modified; a refresh produces a new
    one.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken")
    access_token: str = Field(alias="accessToken")
    access_expires: int = Field(alias="accessExpires")
    scopes: list[str]

    @classmethod
    def from_response(cls, response: TokenResponse, now: float | None = None) -> AbsoluteToken:
        """Convert a token endpoint response into storage format.

        Args:
            response: Token endpoint response
            now: Current epoch time in seconds (defaults to ``time.time()``)
        """
        now = time.time() if now is None else now
        return cls(
            refresh_token=response.refresh_token,
            access_token=response.access_token,
            access_expires=int((now + response.expires_in) * 1000),
            scopes=response.scope.split(" "),
        )

    def expires_in(self, now: float | None = None) -> float:
        """Seconds remaining until the access token expires."""
        now = time.time() if now is None else now
        return self.access_expires / 1000 - now

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)


# ================================
# Status
# ================================


class AuthorisationState(Enum):
    BUSY = "busy"
    SUCCESS = "success"
    AWAITING_USER = "awaiting_user"
    FAILED = "failed"


@dataclass(frozen=True)
class Busy:
    """Authorisation is in progress without needing the user."""

    state: AuthorisationState = field(default=AuthorisationState.BUSY, init=False)


@dataclass(frozen=True)
class Success:
    """The client holds a usable access token."""

    state: AuthorisationState = field(default=AuthorisationState.SUCCESS, init=False)


@dataclass(frozen=True)
class AwaitingUser:
    """The user must visit ``verification_uri`` (and enter ``user_code``, if set)."""

    verification_uri: str
    user_code: str | None = None
    expires_at: float | None = None  # Unix timestamp
    state: AuthorisationState = field(default=AuthorisationState.AWAITING_USER, init=False)


@dataclass(frozen=True)
class Failed:
    """The last authorisation attempt failed.

    ``retryable`` indicates whether a retry (for example a new Device Flow
    code) might succeed without changing the configuration.
    """

    retryable: bool
    error: str
    message: str
    help: tuple[str, ...] = ()
    state: AuthorisationState = field(default=AuthorisationState.FAILED, init=False)


AuthorisationStatus = Union[Busy, Success, AwaitingUser, Failed]


class RetryTrigger(Enum):
    """Why a parked or in-flight authorisation attempt was restarted."""

    TOKEN_CHANGED = "token_changed"
    USER_REQUESTED = "user_requested"
