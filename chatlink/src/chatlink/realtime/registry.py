"""
Process-wide registry for the realtime messaging client.

Only one ``RealtimeMessagingClient`` should be live in a process.  The
registry hands out that instance, constructing it on first use, and
``remove_instance`` closes it and forgets it so the next
``get_instance`` starts from a clean client with no subscriber and no
connection.

Consumers should receive a registry (or the client itself) explicitly;
the module-level ``get_instance``/``remove_instance`` helpers operate on
a default registry built from ``ClientConfig.from_env()``.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..config import ClientConfig
from .messaging_client import RealtimeMessagingClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], RealtimeMessagingClient]


class MessagingClientRegistry:
    def __init__(self, factory: ClientFactory) -> None:
        self._factory = factory
        self._instance: Optional[RealtimeMessagingClient] = None

    @classmethod
    def from_config(cls, config: ClientConfig) -> "MessagingClientRegistry":
        return cls(
            lambda: RealtimeMessagingClient(
                config.socket_url,
                connect_attempts=config.socket_connect_attempts,
                retry_wait=config.socket_retry_wait,
            )
        )

    @property
    def has_instance(self) -> bool:
        return self._instance is not None

    def get_instance(self) -> RealtimeMessagingClient:
        """Return the live client, creating it if needed."""
        if self._instance is None:
            self._instance = self._factory()
            logger.debug("Created realtime messaging client")
        return self._instance

    async def remove_instance(self) -> None:
        """Close the live client, if any, and discard it."""
        instance, self._instance = self._instance, None
        if instance is not None:
            await instance.close()
            logger.debug("Released realtime messaging client")


_default_registry: Optional[MessagingClientRegistry] = None


def default_registry() -> MessagingClientRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = MessagingClientRegistry.from_config(ClientConfig.from_env())
    return _default_registry


def get_instance() -> RealtimeMessagingClient:
    return default_registry().get_instance()


async def remove_instance() -> None:
    await default_registry().remove_instance()
