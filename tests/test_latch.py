import asyncio

import pytest

from converter.conversion.errors import MultiFileError, NoFileError, StreamError
from converter.conversion.latch import CompletionLatch
from converter.conversion.models import CompletionState, ConversionResult


async def _empty_body():
    return
    yield


def _result(name="a.png"):
    return ConversionResult(content_type="image/png", filename=name, body=_empty_body())


def test_first_success_wins():
    async def scenario():
        latch = CompletionLatch()
        assert latch.state is CompletionState.PENDING
        first = _result("first.png")
        assert latch.settle_success(first)
        assert not latch.settle_error(MultiFileError("Send exactly one file per request"))
        assert not latch.settle_success(_result("second.png"))
        assert latch.state is CompletionState.SETTLED
        return await latch.wait()

    assert asyncio.run(scenario()).filename == "first.png"


def test_first_error_wins():
    async def scenario():
        latch = CompletionLatch()
        assert latch.settle_error(NoFileError("No file received"))
        assert not latch.settle_error(StreamError("late"))
        assert not latch.settle_success(_result())
        await latch.wait()

    with pytest.raises(NoFileError, match="No file received"):
        asyncio.run(scenario())


def test_wait_blocks_until_settled():
    async def scenario():
        latch = CompletionLatch()
        waiter = asyncio.ensure_future(latch.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        latch.settle_success(_result())
        return await waiter

    assert asyncio.run(scenario()).content_type == "image/png"


def test_cancelled_waiter_does_not_settle():
    async def scenario():
        latch = CompletionLatch()
        waiter = asyncio.ensure_future(latch.wait())
        await asyncio.sleep(0)
        waiter.cancel()
        await asyncio.sleep(0)
        assert not latch.settled
        assert latch.settle_success(_result())

    asyncio.run(scenario())
