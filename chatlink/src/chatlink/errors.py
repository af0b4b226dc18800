"""Typed failures raised by the chatlink clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import RequestDescriptor


@dataclass
class HttpResult:
    """Outcome of a single HTTP exchange.

    The refresh-and-retry logic branches on this instead of catching a
    generic exception.
    """

    ok: bool
    status: int
    request: RequestDescriptor
    body: Any = None
    headers: Any = None

    def raise_for_status(self) -> None:
        if not self.ok:
            raise HttpStatusError(self.status, self.request, self.body)


class HttpStatusError(Exception):
    """Raised for a non-2xx response that was not recovered locally.

    Attributes:
        status: HTTP status code returned by the server.
        request: The original request descriptor.
        body: Decoded response body (JSON when possible, else text).
    """

    def __init__(self, status: int, request: RequestDescriptor, body: Any = None) -> None:
        super().__init__(f"HTTP {status} for {request.method} {request.url}")
        self.status = status
        self.request = request
        self.body = body


class AuthenticationRequired(Exception):
    """The user must sign in again; no usable refresh credential exists."""

    def __init__(self, sign_in_path: str) -> None:
        super().__init__(f"Authentication required, sign in at {sign_in_path}")
        self.sign_in_path = sign_in_path
