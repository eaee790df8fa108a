"""Tests for the stage channel."""

from __future__ import annotations

import asyncio
from contextlib import aclosing

import pytest

from coach.services.channel import relay

pytestmark = pytest.mark.asyncio(loop_scope="session")


async def test_relay_preserves_order():
    async def stage():
        for i in range(200):
            yield i

    items = [i async for i in relay(stage(), maxsize=4)]

    assert items == list(range(200))


async def test_relay_reraises_after_preceding_items():
    async def stage():
        yield "a"
        yield "b"
        raise ValueError("stage broke")

    received = []
    with pytest.raises(ValueError, match="stage broke"):
        async for item in relay(stage()):
            received.append(item)

    assert received == ["a", "b"]


async def test_early_exit_cancels_producer_and_closes_stage():
    state = {"closed": False, "cancelled": False}
    blocked = asyncio.Event()

    async def stage():
        try:
            yield 1
            blocked.set()
            await asyncio.sleep(3600)
            yield 2
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise
        finally:
            state["closed"] = True

    async with aclosing(relay(stage())) as items:
        async for item in items:
            assert item == 1
            await blocked.wait()
            break

    assert state["cancelled"] is True
    assert state["closed"] is True


async def test_early_exit_closes_stage_suspended_on_full_queue():
    closed = asyncio.Event()

    async def stage():
        try:
            for i in range(100):
                yield i
        finally:
            closed.set()

    async with aclosing(relay(stage(), maxsize=1)) as items:
        async for _ in items:
            break

    assert closed.is_set()
