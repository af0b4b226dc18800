"""Tests for the realtime messaging client and its registry.

Connections are provided by ``FakeConnector`` so no network is needed.
"""

from __future__ import annotations

import asyncio

import pytest  # type: ignore

from chatlink.realtime.messaging_client import ConnectionState, RealtimeMessagingClient
from chatlink.realtime.registry import MessagingClientRegistry
from tests.helpers.fake_socket import FakeConnector, wait_until

URL = "ws://chat.test/socket"


def make_registry(connector: FakeConnector, attempts: int = 1) -> MessagingClientRegistry:
    return MessagingClientRegistry(
        lambda: RealtimeMessagingClient(URL, connector=connector, connect_attempts=attempts, retry_wait=0)
    )


@pytest.mark.asyncio
async def test_get_instance_returns_same_client_until_removed() -> None:
    registry = make_registry(FakeConnector())
    first = registry.get_instance()
    assert registry.get_instance() is first
    await registry.remove_instance()
    assert not registry.has_instance
    second = registry.get_instance()
    assert second is not first
    assert second.state is ConnectionState.IDLE


@pytest.mark.asyncio
async def test_connect_is_idempotent() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    assert await client.connect()
    assert await client.connect()
    assert connector.calls == 1
    assert client.state is ConnectionState.OPEN
    await client.close()


@pytest.mark.asyncio
async def test_concurrent_connects_open_one_connection() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    results = await asyncio.gather(client.connect(), client.connect(), client.connect())
    assert results == [True, True, True]
    assert connector.calls == 1
    await client.close()


@pytest.mark.asyncio
async def test_send_before_connect_is_a_noop() -> None:
    client = make_registry(FakeConnector()).get_instance()
    assert client.send_message("hello") is False
    assert client.state is ConnectionState.IDLE


@pytest.mark.asyncio
async def test_outgoing_messages_keep_call_order() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    await client.connect()
    for text in ("a", "b", "c"):
        assert client.send_message(text)
    ws = connector.sockets[0]
    await wait_until(lambda: len(ws.sent) == 3)
    assert ws.sent == ["a", "b", "c"]
    await client.close()


@pytest.mark.asyncio
async def test_incoming_frames_delivered_in_order() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    received = []
    client.on_message(received.append)
    await client.connect()
    ws = connector.sockets[0]
    for frame in ("a", "b", b"c"):
        ws.feed(frame)
    await wait_until(lambda: len(received) == 3)
    assert received == ["a", "b", "c"]
    await client.close()


@pytest.mark.asyncio
async def test_last_registration_wins() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    first, second = [], []
    old = client.on_message(first.append)
    current = client.on_message(second.append)
    assert not old.active and current.active
    old.unsubscribe()
    assert client.has_subscriber
    await client.connect()
    connector.sockets[0].feed("x")
    await wait_until(lambda: second == ["x"])
    assert first == []
    current.unsubscribe()
    assert not client.has_subscriber
    await client.close()


@pytest.mark.asyncio
async def test_async_subscriber_is_awaited_in_order() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    received = []

    async def slow(message: str) -> None:
        await asyncio.sleep(0.01 if message == "a" else 0)
        received.append(message)

    client.on_message(slow)
    await client.connect()
    connector.sockets[0].feed("a")
    connector.sockets[0].feed("b")
    await wait_until(lambda: len(received) == 2)
    assert received == ["a", "b"]
    await client.close()


@pytest.mark.asyncio
async def test_subscriber_errors_do_not_stop_delivery() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    received = []

    def flaky(message: str) -> None:
        if message == "bad":
            raise ValueError(message)
        received.append(message)

    client.on_message(flaky)
    await client.connect()
    connector.sockets[0].feed("bad")
    connector.sockets[0].feed("good")
    await wait_until(lambda: received == ["good"])
    assert client.is_open
    await client.close()


@pytest.mark.asyncio
async def test_remove_instance_tears_down_cleanly() -> None:
    connector = FakeConnector()
    registry = make_registry(connector)
    old = registry.get_instance()
    old_received = []
    old.on_message(old_received.append)
    await old.connect()
    old_ws = connector.sockets[0]

    await registry.remove_instance()
    assert old.state is ConnectionState.CLOSED
    assert old_ws.closed
    assert not old.has_subscriber
    assert old.send_message("late") is False

    fresh = registry.get_instance()
    assert not fresh.has_subscriber
    assert fresh.state is ConnectionState.IDLE
    fresh_received = []
    await fresh.connect()
    assert connector.calls == 2
    fresh.on_message(fresh_received.append)
    connector.sockets[1].feed("after")
    await wait_until(lambda: fresh_received == ["after"])
    assert old_received == []
    await registry.remove_instance()


@pytest.mark.asyncio
async def test_closed_instance_cannot_reconnect() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    await client.connect()
    await client.close()
    assert await client.connect() is False
    assert connector.calls == 1


@pytest.mark.asyncio
async def test_connect_retries_then_succeeds() -> None:
    connector = FakeConnector(failures=2)
    client = make_registry(connector, attempts=3).get_instance()
    assert await client.connect()
    assert connector.calls == 3
    await client.close()


@pytest.mark.asyncio
async def test_connect_failure_is_reported_not_raised() -> None:
    connector = FakeConnector(failures=5)
    client = make_registry(connector, attempts=2).get_instance()
    assert await client.connect() is False
    assert connector.calls == 2
    assert client.state is ConnectionState.IDLE
    assert client.send_message("hello") is False


@pytest.mark.asyncio
async def test_peer_hang_up_closes_client() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    await client.connect()
    connector.sockets[0].hang_up()
    await wait_until(lambda: client.state is ConnectionState.CLOSED)
    assert client.send_message("hello") is False


@pytest.mark.asyncio
async def test_release_during_connect_discards_connection() -> None:
    connector = FakeConnector()
    registry = make_registry(connector)
    client = registry.get_instance()
    pending = asyncio.ensure_future(client.connect())
    await asyncio.sleep(0)
    assert client.state is ConnectionState.CONNECTING
    await registry.remove_instance()
    assert await pending is False
    assert client.state is ConnectionState.CLOSED
    assert connector.sockets[0].closed


@pytest.mark.asyncio
async def test_module_level_helpers_use_environment(monkeypatch) -> None:
    from chatlink.realtime import registry as registry_module

    monkeypatch.setattr(registry_module, "_default_registry", None)
    monkeypatch.setenv("SOCKET_URL", "ws://env.test/chat")
    monkeypatch.setenv("SOCKET_CONNECT_ATTEMPTS", "4")
    client = registry_module.get_instance()
    assert client is registry_module.get_instance()
    assert client.url == "ws://env.test/chat"
    assert client.connect_attempts == 4
    await registry_module.remove_instance()
    assert not registry_module.default_registry().has_instance


@pytest.mark.asyncio
async def test_subscriber_can_release_client_from_its_handler() -> None:
    connector = FakeConnector()
    registry = make_registry(connector)
    client = registry.get_instance()
    received = []

    async def handler(message: str) -> None:
        received.append(message)
        if message == "bye":
            await registry.remove_instance()

    client.on_message(handler)
    await client.connect()
    ws = connector.sockets[0]
    ws.feed("bye")
    await wait_until(lambda: client.state is ConnectionState.CLOSED)
    assert ws.closed
    assert not client.has_subscriber
    assert not registry.has_instance
    ws.feed("after")
    await asyncio.sleep(0.01)
    assert received == ["bye"]


@pytest.mark.asyncio
async def test_failing_send_does_not_block_close() -> None:
    connector = FakeConnector()
    client = make_registry(connector).get_instance()
    await client.connect()
    ws = connector.sockets[0]
    ws.send_error = OSError("broken pipe")
    assert client.send_message("x")
    await asyncio.sleep(0.01)
    await client.close()
    assert client.state is ConnectionState.CLOSED
    assert ws.closed
    assert ws.sent == []


@pytest.mark.asyncio
async def test_cancelled_first_connect_leaves_open_joinable() -> None:
    gate = asyncio.Event()
    connector = FakeConnector(gate=gate)
    client = make_registry(connector).get_instance()
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(client.connect(), timeout=0.01)
    assert client.state is ConnectionState.CONNECTING
    second = asyncio.ensure_future(client.connect())
    await asyncio.sleep(0)
    gate.set()
    assert await second is True
    assert connector.calls == 1
    assert client.is_open
    await client.close()
