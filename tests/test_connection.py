# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import time

import pytest

from fakes import FakeDevice, RecordingListener, unused_port, wait_until
from pymtc.connection import ConnectionManager, ConnectionState, validate_config
from pymtc.exceptions import ConfigError, NotConnectedError


def make_manager(**kwargs):
    listener = RecordingListener()
    kwargs.setdefault("reconnect_time", 60.0)
    return ConnectionManager(listener, **kwargs), listener


# ---------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------

@pytest.mark.parametrize("host, port", [("", 54321), (None, 54321), ("10.0.0.1", 0),
                                        ("10.0.0.1", 70000), ("10.0.0.1", "abc"), ("10.0.0.1", None),
                                        ("a..b", 54321), ("x" * 64 + ".local", 54321)])
def test_validate_config_rejects(host, port):
    with pytest.raises(ConfigError):
        validate_config(host, port)


def test_validate_config_normalizes():
    assert validate_config(" d3.local ", "54321") == ("d3.local", 54321)


def test_bad_config_never_opens_socket():
    async def run():
        manager, listener = make_manager()

        assert manager.configure("", 54321) is ConnectionState.BAD_CONFIG
        assert await manager.async_connect() is ConnectionState.BAD_CONFIG
        assert manager.generation == 1
        assert not manager.reconnect_scheduled
        assert listener.states == [ConnectionState.BAD_CONFIG]

    asyncio.run(run())


def test_unencodable_host_is_bad_config():
    async def run():
        manager, listener = make_manager()

        assert manager.configure("a..b", 54321) is ConnectionState.BAD_CONFIG
        assert await manager.async_connect() is ConnectionState.BAD_CONFIG
        assert not manager.reconnect_scheduled
        assert listener.states == [ConnectionState.BAD_CONFIG]

    asyncio.run(run())


def test_connect_without_configure_is_bad_config():
    async def run():
        manager, _ = make_manager()

        assert await manager.async_connect() is ConnectionState.BAD_CONFIG

    asyncio.run(run())


# ---------------------------------------------------------------------
# Connecting
# ---------------------------------------------------------------------

def test_connect_reaches_connected():
    async def run():
        device = await FakeDevice().start()
        manager, listener = make_manager()
        manager.configure("127.0.0.1", device.port)

        assert await manager.async_connect() is ConnectionState.CONNECTED
        assert manager.connected
        assert listener.connected_count == 1
        assert listener.states == [
            ConnectionState.DISCONNECTED,
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ]

        manager.teardown()
        await device.stop()

    asyncio.run(run())


def test_two_rapid_connects_open_one_socket():
    async def run():
        device = await FakeDevice().start()
        manager, listener = make_manager()
        manager.configure("127.0.0.1", device.port)

        first, second = await asyncio.gather(manager.async_connect(), manager.async_connect())
        await asyncio.sleep(0.05)

        assert first is ConnectionState.CONNECTED
        assert second is ConnectionState.CONNECTED
        assert device.connections == 1
        assert listener.connected_count == 1

        manager.teardown()
        await device.stop()

    asyncio.run(run())


def test_refused_connection_fails_and_schedules_one_retry():
    async def run():
        port = await unused_port()
        manager, listener = make_manager()
        manager.configure("127.0.0.1", port)

        assert await manager.async_connect() is ConnectionState.FAILED
        assert manager.reconnect_scheduled
        assert listener.connected_count == 0
        assert listener.disconnected_count == 0

        manager.teardown()
        assert not manager.reconnect_scheduled
        assert manager.state is ConnectionState.DISCONNECTED

    asyncio.run(run())


def test_retry_reconnects_after_failure():
    async def run():
        device = await FakeDevice().start()
        port = device.port
        await device.stop()

        manager, listener = make_manager(reconnect_time=0.05)
        manager.configure("127.0.0.1", port)
        assert await manager.async_connect() is ConnectionState.FAILED

        device = FakeDevice()
        device._server = await asyncio.start_server(device._handle, "127.0.0.1", port)
        await wait_until(lambda: manager.connected)

        assert listener.connected_count == 1
        manager.teardown()
        await device.stop()

    asyncio.run(run())


def test_first_attempt_uses_short_timeout_and_retries_longer_one():
    async def run():
        loop = asyncio.get_running_loop()

        async def never_connects(*args, **kwargs):
            await asyncio.sleep(10)

        loop.create_connection = never_connects
        manager, _ = make_manager(connect_timeout=0.05, retry_connect_timeout=1.0, reconnect_time=0.01)
        manager.configure("127.0.0.1", 54321)

        started = time.monotonic()
        assert await manager.async_connect() is ConnectionState.FAILED
        assert time.monotonic() - started < 0.5

        # The retry is still waiting on its longer timeout
        await wait_until(lambda: manager.state is ConnectionState.CONNECTING)
        await asyncio.sleep(0.3)
        assert manager.state is ConnectionState.CONNECTING

        manager.teardown()
        assert manager.state is ConnectionState.DISCONNECTED

    asyncio.run(run())


def test_resolver_value_error_fails_and_schedules_retry():
    async def run():
        loop = asyncio.get_running_loop()

        async def bad_host(*args, **kwargs):
            raise UnicodeError("label empty or too long")

        loop.create_connection = bad_host
        manager, listener = make_manager()
        manager.configure("127.0.0.1", 54321)

        assert await manager.async_connect() is ConnectionState.FAILED
        assert manager.reconnect_scheduled
        assert listener.states[-1] is ConnectionState.FAILED

        manager.teardown()

    asyncio.run(run())


# ---------------------------------------------------------------------
# Connected session
# ---------------------------------------------------------------------

def test_send_and_receive():
    async def run():
        device = await FakeDevice().start()
        manager, listener = make_manager()
        manager.configure("127.0.0.1", device.port)
        await manager.async_connect()

        manager.send(b'{"request": 0, "query": {"q": "playerList"}}\n')
        await wait_until(lambda: device.received)
        await device.send(None, raw='{"request": 0, "status": "OK",')
        await device.send(None, raw=' "results": []}\nnot json\n[1, 2]\n\n{"status": "OK"}\n')
        await wait_until(lambda: len(listener.messages) == 2)

        assert device.received == [{"request": 0, "query": {"q": "playerList"}}]
        assert listener.messages == [{"request": 0, "status": "OK", "results": []}, {"status": "OK"}]
        assert manager.connected

        manager.teardown()
        await device.stop()

    asyncio.run(run())


def test_send_when_not_connected_raises():
    async def run():
        manager, _ = make_manager()
        manager.configure("127.0.0.1", 54321)

        with pytest.raises(NotConnectedError):
            manager.send(b"{}\n")

    asyncio.run(run())


def test_remote_close_fails_then_reconnects():
    async def run():
        device = await FakeDevice().start()
        manager, listener = make_manager(reconnect_time=0.05)
        manager.configure("127.0.0.1", device.port)
        await manager.async_connect()

        device.drop_clients()
        await wait_until(lambda: listener.disconnected_count == 1)
        assert ConnectionState.FAILED in listener.states

        await wait_until(lambda: listener.connected_count == 2)
        assert manager.connected
        assert device.connections == 2

        manager.teardown()
        await device.stop()

    asyncio.run(run())


def test_events_from_superseded_socket_are_ignored():
    async def run():
        device = await FakeDevice().start()
        manager, listener = make_manager()
        manager.configure("127.0.0.1", device.port)
        await manager.async_connect()
        old_generation = manager.generation - 1

        manager._message_received(old_generation, {"request": 1, "status": "OK"})
        manager._connection_lost(old_generation, ConnectionResetError("late close"))

        assert manager.connected
        assert listener.messages == []
        assert listener.disconnected_count == 0
        assert not manager.reconnect_scheduled

        manager.teardown()
        await device.stop()

    asyncio.run(run())


# ---------------------------------------------------------------------
# Teardown and reconfiguration
# ---------------------------------------------------------------------

def test_teardown_before_connect_and_twice_is_safe():
    manager, listener = make_manager()

    manager.teardown()
    manager.teardown()

    assert manager.state is ConnectionState.DISCONNECTED
    assert listener.disconnected_count == 0


def test_teardown_while_connected_is_terminal():
    async def run():
        device = await FakeDevice().start()
        manager, listener = make_manager(reconnect_time=0.01)
        manager.configure("127.0.0.1", device.port)
        await manager.async_connect()

        manager.teardown()
        await asyncio.sleep(0.1)

        assert manager.state is ConnectionState.DISCONNECTED
        assert listener.disconnected_count == 1
        assert not manager.reconnect_scheduled
        assert device.connections == 1
        assert await manager.async_connect() is ConnectionState.DISCONNECTED
        with pytest.raises(NotConnectedError):
            manager.send(b"{}\n")

        await device.stop()

    asyncio.run(run())


def test_teardown_during_connect_attempt():
    async def run():
        loop = asyncio.get_running_loop()

        async def never_connects(*args, **kwargs):
            await asyncio.sleep(10)

        loop.create_connection = never_connects
        manager, _ = make_manager(connect_timeout=5.0)
        manager.configure("127.0.0.1", 54321)

        attempt = asyncio.ensure_future(manager.async_connect())
        await wait_until(lambda: manager.state is ConnectionState.CONNECTING)
        manager.teardown()

        assert await attempt is ConnectionState.DISCONNECTED
        assert not manager.reconnect_scheduled

    asyncio.run(run())


def test_reconfigure_drops_old_connection():
    async def run():
        first = await FakeDevice().start()
        second = await FakeDevice().start()
        manager, listener = make_manager()
        manager.configure("127.0.0.1", first.port)
        await manager.async_connect()

        manager.configure("127.0.0.1", second.port)
        assert listener.disconnected_count == 1
        assert manager.state is ConnectionState.DISCONNECTED

        assert await manager.async_connect() is ConnectionState.CONNECTED
        assert manager.port == second.port
        assert second.connections == 1

        manager.teardown()
        await first.stop()
        await second.stop()

    asyncio.run(run())
