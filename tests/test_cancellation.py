import asyncio

import pytest

from streamforge.connectors.base import CancellationToken, until_cancelled


async def _stalls_after(*items):
    for item in items:
        yield item
    await asyncio.Event().wait()
    yield "never"


async def _finite(*items):
    for item in items:
        yield item


@pytest.mark.asyncio
async def test_cancel_interrupts_pending_read():
    token = CancellationToken()
    seen = []

    async def consume():
        async for item in until_cancelled(_stalls_after("a", "b"), token):
            seen.append(item)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.05)
    assert not task.done()

    token.cancel()
    await asyncio.wait_for(task, timeout=1)

    assert seen == ["a", "b"]


@pytest.mark.asyncio
async def test_source_runs_to_completion_without_cancel():
    token = CancellationToken()

    items = [i async for i in until_cancelled(_finite(1, 2, 3), token)]

    assert items == [1, 2, 3]
    assert not token.cancelled


@pytest.mark.asyncio
async def test_no_token_passes_everything_through():
    assert [i async for i in until_cancelled(_finite("x", "y"), None)] == ["x", "y"]


@pytest.mark.asyncio
async def test_already_cancelled_token_reads_nothing():
    token = CancellationToken()
    token.cancel()

    assert [i async for i in until_cancelled(_stalls_after("a"), token)] == []
