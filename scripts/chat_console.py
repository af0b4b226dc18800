#!/usr/bin/env python
"""
Console chat client.

Connects to the chat websocket, prints every incoming message and sends
each line typed on stdin.  Optionally checks the stored session first by
renewing the access token through the authenticated HTTP client.  Type
``/quit`` or send EOF to leave; the connection is always released on
exit.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys

from chatlink.clients.http_client import AuthenticatedHttpClient
from chatlink.config import ClientConfig
from chatlink.realtime.registry import MessagingClientRegistry
from chatlink.telemetry import start_metrics_server


def _print_incoming(message: str) -> None:
    print(f"peer: {message}")


async def run(config: ClientConfig, renew: bool) -> int:
    logger = logging.getLogger("chat_console")
    if renew:
        async with AuthenticatedHttpClient(config) as http:
            if await http.renew_access_token() is None:
                logger.error("Could not renew the session; sign in at %s", config.sign_in_path)
                return 1
    registry = MessagingClientRegistry.from_config(config)
    client = registry.get_instance()
    try:
        client.on_message(_print_incoming)
        if not await client.connect():
            return 1
        loop = asyncio.get_running_loop()
        while client.is_open:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line or line.strip() == "/quit":
                break
            text = line.strip()
            if text:
                client.send_message(text)
                print(f"me: {text}")
    finally:
        await registry.remove_instance()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat from the terminal.")
    parser.add_argument("--url", help="Websocket endpoint (defaults to SOCKET_URL).")
    parser.add_argument(
        "--renew",
        action="store_true",
        help="Renew the access token from the stored refresh token before connecting.",
    )
    args = parser.parse_args()
    config = ClientConfig.from_env()
    config.configure_logging()
    if args.url:
        config = dataclasses.replace(config, socket_url=args.url)
    if config.metrics_port:
        start_metrics_server(config.metrics_port)
    sys.exit(asyncio.run(run(config, args.renew)))


if __name__ == "__main__":
    main()
