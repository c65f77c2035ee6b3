"""
Management API authentication descriptors.

Two variants, discriminated on ``type``:

* ``api-key`` sends ``X-Api-Key: <token>``
* ``basic`` sends ``Authorization: Basic base64(username:password)``

Both expose ``auth_headers()``, which is the only thing the HTTP layer needs.
"""

from __future__ import annotations

import base64
from typing import Annotated, Literal, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class ApiKeyAuth(BaseModel):
    """API-key authentication (``X-Api-Key`` header)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["api-key"] = "api-key"
    api_key: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("apiKey", "api_key", "token"),
    )

    @model_validator(mode="after")
    def _require_key(self) -> Self:
        if not (self.api_key or "").strip():
            raise ValueError("API Key is required for api-key authentication")
        return self

    def auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ValueError("API Key is required for api-key authentication")
        return {"X-Api-Key": self.api_key}


class BasicAuth(BaseModel):
    """HTTP basic authentication."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["basic"] = "basic"
    username: str | None = None
    password: str | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def _require_credentials(self) -> Self:
        if not (self.username or "").strip():
            raise ValueError("Username is required for basic authentication")
        if not (self.password or "").strip():
            raise ValueError("Password is required for basic authentication")
        return self

    def auth_headers(self) -> dict[str, str]:
        if not self.username or not self.password:
            raise ValueError("Username and password are required for basic authentication")
        credentials = f"{self.username}:{self.password}".encode()
        return {"Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}"}


# Discriminated union over the ``type`` field
Authentication = Annotated[ApiKeyAuth | BasicAuth, Field(discriminator="type")]


def auth_headers(authentication: ApiKeyAuth | BasicAuth | None) -> dict[str, str]:
    """Headers for an optional descriptor; anonymous access yields none."""
    if authentication is None:
        return {}
    return authentication.auth_headers()
