"""
Client utilities for the chat backend HTTP API.

This package provides the authenticated HTTP client, the single-flight
token refresh coordinator and the session store abstraction they share.
"""

from .http_client import AuthenticatedHttpClient  # noqa: F401
from .session_store import InMemorySessionStore, JsonFileSessionStore, SessionStore  # noqa: F401
from .token_refresh import TokenRefreshCoordinator  # noqa: F401
