"""Coalesce concurrent calls for the same key into one in-flight operation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Set

logger = logging.getLogger(__name__)


class SingleFlight:
    """In-flight request map keyed by id.

    A caller that arrives while an operation for the same key is running
    awaits that operation's result instead of starting a duplicate. When
    disabled, every call runs its own operation (last completion wins).
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._in_flight: Dict[str, "asyncio.Future[Any]"] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)

    async def do(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        if not self.enabled:
            return await fn()
        existing = self._in_flight.get(key)
        if existing is not None:
            logger.debug(f"Joining in-flight operation for {key}")
            return await asyncio.shield(existing)
        task = asyncio.ensure_future(fn())
        self._in_flight[key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._in_flight.get(key) is task:
                del self._in_flight[key]


class BackgroundTasks:
    """Keeps references to fire-and-forget tasks so they can be awaited later."""

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Task[Any]"] = set()

    def spawn(self, coro: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Emitted outside an event loop: run to completion right here
            asyncio.run(coro)  # type: ignore[arg-type]
            return
        task = loop.create_task(coro)  # type: ignore[arg-type]
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def __len__(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task (including ones spawned meanwhile) finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
