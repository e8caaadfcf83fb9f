"""
Per-resource locks serializing apply operations.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import Dict

import redis.asyncio as redis

from deployx.src.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

LOCK_PREFIX = "deployx:lock:"

# Locks are bound to the event loop that first waits on them
_local_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]]" = weakref.WeakKeyDictionary()

def get_local_lock(name: str) -> asyncio.Lock:
    locks = _local_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(name)
    if lock is None:
        lock = asyncio.Lock()
        locks[name] = lock
    return lock

@asynccontextmanager
async def resource_lock(name: str):
    """
    Hold an exclusive lock on a cluster resource name.
    Uses Redis when configured so separate processes are serialized too.
    """
    if not settings.redis_url:
        lock = get_local_lock(name)
        if lock.locked():
            logger.info(f"Waiting for lock on {name}")
        async with lock:
            yield
        return

    client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        lock = client.lock(
            LOCK_PREFIX + name,
            timeout=settings.lock_timeout,
            blocking_timeout=settings.lock_timeout,
        )
        logger.debug(f"Acquiring Redis lock on {name}")
        async with lock:
            yield
    finally:
        await client.close()
