"""
Wire models for the HTTP surface.

Response bodies and the refresh endpoint payloads are validated with
Pydantic.  Every response body is wrapped in a uniform envelope of the
form ``{"data": {...}, ...metadata}``; callers unwrap ``data`` to reach
the payload.  ``RequestDescriptor`` is a plain frozen dataclass because
it is built locally and never parsed from the wire.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field

Verb = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
Scalar = Union[str, int, float, bool]


@dataclass(frozen=True)
class RequestDescriptor:
    """An issued request, retained verbatim so it can be replayed."""

    method: Verb
    url: str
    params: Optional[Mapping[str, Scalar]] = None
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


class CredentialPair(BaseModel):
    access_token: str = Field("", alias="accessToken")
    refresh_token: str = Field("", alias="refreshToken")

    model_config = {"populate_by_name": True}


class RefreshTokenRequest(BaseModel):
    """Body of ``POST /auth/refresh-token``."""

    refresh_token: str = Field(..., alias="refreshToken")

    model_config = {"populate_by_name": True}


class RefreshTokenResponse(BaseModel):
    """Payload inside the envelope returned by the refresh endpoint.

    An absent or empty ``accessToken`` means the refresh failed.
    """

    access_token: Optional[str] = Field(None, alias="accessToken")

    model_config = {"populate_by_name": True}


class ResponseEnvelope(BaseModel):
    """A successful HTTP response.

    ``data`` holds the decoded JSON body, i.e. ``{"data": T, ...meta}``.
    """

    status: int
    data: Any = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def payload(self) -> Any:
        """The unwrapped ``data.data`` value, or ``None`` if absent."""
        if isinstance(self.data, dict):
            return self.data.get("data")
        return None
