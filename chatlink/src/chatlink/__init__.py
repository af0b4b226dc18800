"""
Client-side network layer for the chat application.

This package contains the authenticated HTTP client (with transparent
token refresh and single replay on expired credentials) and the
realtime messaging client that owns the persistent websocket
connection used for chatting.
"""

from .config import ClientConfig  # noqa: F401
from .clients.http_client import AuthenticatedHttpClient  # noqa: F401
from .realtime.messaging_client import RealtimeMessagingClient  # noqa: F401
from .realtime.registry import get_instance, remove_instance  # noqa: F401
