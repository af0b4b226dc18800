"""Realtime messaging over a single persistent websocket connection."""

from .messaging_client import ConnectionState, RealtimeMessagingClient, Subscription  # noqa: F401
from .registry import MessagingClientRegistry, get_instance, remove_instance  # noqa: F401
