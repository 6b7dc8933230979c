import asyncio
import socket

import pytest
from fastapi import FastAPI

from mediahost.api.server import WebHost
from mediahost.core.config import ResolvedConfiguration
from mediahost.core.exceptions import ListenerBindFailed
from mediahost.lifecycle.health_registry import HealthStatus, get_health_registry


def free_port() -> int:
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def web_host_for(**values) -> WebHost:
    settings = ResolvedConfiguration(dict({"bind_address": "127.0.0.1"}, **values)).settings
    return WebHost(FastAPI(), settings)


@pytest.mark.asyncio
async def test_bind_failure_on_occupied_port():
    with socket.socket() as occupied:
        occupied.bind(("127.0.0.1", 0))
        occupied.listen()
        port = occupied.getsockname()[1]
        web_host = web_host_for(port=port)

        with pytest.raises(ListenerBindFailed) as exc_info:
            await web_host.start()

        await web_host.dispose()

    assert exc_info.value.exit_code == 69
    assert str(port) in exc_info.value.details["address"]
    assert get_health_registry().get_component_health("web_host").status == HealthStatus.UNKNOWN


@pytest.mark.asyncio
async def test_unix_socket_without_path_fails():
    web_host = web_host_for(use_unix_socket=True)

    with pytest.raises(ListenerBindFailed):
        await web_host.start()


@pytest.mark.asyncio
async def test_start_accepts_connections_until_shutdown():
    port = free_port()
    web_host = web_host_for(port=port)

    await web_host.start()
    assert web_host.started
    assert get_health_registry().get_component_health("web_host").status == HealthStatus.HEALTHY

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.close()
    await writer.wait_closed()

    web_host.request_shutdown()
    await asyncio.wait_for(web_host.wait_for_shutdown(), timeout=10)
    await web_host.dispose()
    await web_host.dispose()

    assert not web_host.started
    with pytest.raises(OSError):
        await asyncio.open_connection("127.0.0.1", port)


@pytest.mark.asyncio
async def test_dispose_without_wait_stops_server():
    port = free_port()
    web_host = web_host_for(port=port)
    await web_host.start()

    await web_host.dispose()

    with pytest.raises(OSError):
        await asyncio.open_connection("127.0.0.1", port)


def test_bind_description():
    assert web_host_for(port=8200).bind_description == "http://127.0.0.1:8200"
    unix = web_host_for(use_unix_socket=True, unix_socket_path="/run/mediahost.sock")
    assert unix.bind_description == "unix:/run/mediahost.sock"


def test_fractional_graceful_shutdown_timeout_is_kept():
    web_host = web_host_for(port=8200, graceful_shutdown_timeout=0.5)
    assert web_host.config.timeout_graceful_shutdown == 0.5
