import asyncio
import threading

import pytest

from lifecycle.exit_channel import ExitResultChannel


def test_first_writer_wins():
    channel = ExitResultChannel()

    assert channel.resolve(5) is True
    assert channel.resolve(7) is False
    assert channel.code == 5
    assert channel.is_resolved


@pytest.mark.parametrize("code", [-1, 256, 1000])
def test_out_of_range_code_rejected(code):
    channel = ExitResultChannel()

    with pytest.raises(ValueError):
        channel.resolve(code)

    assert not channel.is_resolved


@pytest.mark.asyncio
async def test_wait_returns_code_already_set():
    channel = ExitResultChannel()
    channel.resolve(0)

    assert await channel.wait() == 0


@pytest.mark.asyncio
async def test_wait_suspends_until_resolved():
    channel = ExitResultChannel()
    waiter = asyncio.create_task(channel.wait())

    await asyncio.sleep(0.01)
    assert not waiter.done()

    channel.resolve(3)
    assert await asyncio.wait_for(waiter, timeout=1.0) == 3


@pytest.mark.asyncio
async def test_resolve_from_another_thread_wakes_waiter():
    channel = ExitResultChannel()
    waiter = asyncio.create_task(channel.wait())
    await asyncio.sleep(0.01)

    thread = threading.Thread(target=channel.resolve, args=(42,))
    thread.start()
    thread.join()

    assert await asyncio.wait_for(waiter, timeout=1.0) == 42


def test_concurrent_writers_settle_on_one_value():
    channel = ExitResultChannel()
    barrier = threading.Barrier(8)
    results = []

    def writer(code):
        barrier.wait()
        results.append((code, channel.resolve(code)))

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [code for code, won in results if won]
    assert len(winners) == 1
    assert channel.code == winners[0]
