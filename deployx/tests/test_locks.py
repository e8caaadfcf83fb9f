"""Tests for per-resource apply locks."""

import asyncio

from deployx.src.services.locks import resource_lock

def test_same_resource_is_serialized():
    events = []

    async def apply(tag):
        async with resource_lock("default/web"):
            events.append(f"{tag}-start")
            await asyncio.sleep(0.01)
            events.append(f"{tag}-end")

    async def scenario():
        await asyncio.gather(apply("a"), apply("b"))

    asyncio.run(scenario())
    assert events == ["a-start", "a-end", "b-start", "b-end"]

def test_different_resources_do_not_block():
    events = []

    async def apply(name):
        async with resource_lock(name):
            events.append(f"{name}-start")
            await asyncio.sleep(0.01)
            events.append(f"{name}-end")

    async def scenario():
        await asyncio.gather(apply("default/web"), apply("default/api"))

    asyncio.run(scenario())
    assert events[:2] == ["default/web-start", "default/api-start"]

def test_lock_released_after_error():
    async def scenario():
        try:
            async with resource_lock("default/web"):
                raise RuntimeError("apply failed")
        except RuntimeError:
            pass
        async with resource_lock("default/web"):
            return True

    assert asyncio.run(scenario())
