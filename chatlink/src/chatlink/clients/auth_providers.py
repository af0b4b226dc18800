"""
Authentication header providers.

These classes build the headers attached to every outgoing request.
Separating header construction from the HTTP client allows the
credential source to change without modifying the client code.
"""
from __future__ import annotations

from typing import Dict

from .session_store import ACCESS_TOKEN_KEY, SessionStore


class AuthProvider:
    """Abstract base class for authentication providers."""

    def get_headers(self, method: str, path: str) -> Dict[str, str]:
        """Return headers for the given request.

        Subclasses must implement this method.
        """
        raise NotImplementedError


class SessionTokenProvider(AuthProvider):
    """Attach the access token currently held in the session store.

    The token is read on every call so a freshly refreshed token is used
    by all subsequent requests, not only the replayed one.
    """

    def __init__(self, store: SessionStore, scheme: str = "") -> None:
        self.store = store
        self.scheme = scheme.strip()

    @property
    def access_token(self) -> str:
        return self.store.get(ACCESS_TOKEN_KEY) or ""

    def authorization_value(self, token: str) -> str:
        if self.scheme and token:
            return f"{self.scheme} {token}"
        return token

    def get_headers(self, method: str, path: str) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        token = self.access_token
        if token:
            headers["Authorization"] = self.authorization_value(token)
        return headers
