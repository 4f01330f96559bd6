import asyncio
import socket

import httpx
import pytest
import pytest_asyncio

from api import create_app, IPCServer


@pytest_asyncio.fixture
async def ipc_server():
    server = IPCServer(create_app(), host="127.0.0.1", port=0)
    yield server
    await server.stop()


@pytest.mark.asyncio
async def test_start_serves_requests_and_stop_releases_port(ipc_server):
    await ipc_server.start()

    assert ipc_server.is_running
    assert ipc_server.port != 0

    async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{ipc_server.port}") as client:
        response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    port = ipc_server.port
    await ipc_server.stop()
    assert not ipc_server.is_running

    # Port can be bound again
    checker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    checker.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        checker.bind(("127.0.0.1", port))
    finally:
        checker.close()


@pytest.mark.asyncio
async def test_stop_without_start(ipc_server):
    await ipc_server.stop()
    await ipc_server.stop()

    assert not ipc_server.is_running


@pytest.mark.asyncio
async def test_double_start_rejected(ipc_server):
    await ipc_server.start()

    with pytest.raises(RuntimeError):
        await ipc_server.start()


@pytest.mark.asyncio
async def test_port_in_use_raises_runtime_error():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    port = blocker.getsockname()[1]

    server = IPCServer(create_app(), host="127.0.0.1", port=port)
    try:
        with pytest.raises(RuntimeError):
            await server.start()
        assert not server.is_running
    finally:
        blocker.close()
        await server.stop()


@pytest.mark.asyncio
async def test_stop_is_bounded():
    server = IPCServer(create_app(), host="127.0.0.1", port=0, shutdown_timeout=0.5)
    await server.start()

    await asyncio.wait_for(server.stop(), timeout=3.0)
