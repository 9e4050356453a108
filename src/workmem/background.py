"""Supervisor for fire-and-forget background work.

Lifecycle hooks must not block or fail the turn they are attached to, so
extraction and store writes are submitted here instead of awaited. Each job
runs in a worker thread; failures are logged and counted rather than
re-raised, and the most recent error messages are kept for inspection.
"""

import asyncio
import logging
from collections import Counter, deque
from typing import Any, Callable

logger = logging.getLogger(__name__)

RECENT_ERRORS_LIMIT = 50


class BackgroundSupervisor:
    """Non-blocking job submission with a bounded error side channel.

    Attributes:
        failure_counts: Failures per job name
        recent_errors: Last few "name: error" strings, oldest first

    Example:
        >>> supervisor = BackgroundSupervisor()
        >>> supervisor.submit("episode", log_episode, messages, True, workspace)
        >>> await supervisor.drain()
    """

    def __init__(self, max_recent_errors: int = RECENT_ERRORS_LIMIT):
        self.failure_counts: Counter[str] = Counter()
        self.recent_errors: deque[str] = deque(maxlen=max_recent_errors)
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _record_failure(self, name: str, error: BaseException) -> None:
        self.failure_counts[name] += 1
        self.recent_errors.append(f"{name}: {error}")
        logger.warning(f"Background job '{name}' failed: {error}")

    def submit(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Schedule ``fn(*args, **kwargs)`` without waiting for it.

        With a running event loop the call runs in a worker thread. Without
        one it runs inline. Either way this method never raises.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            try:
                fn(*args, **kwargs)
            except Exception as e:
                self._record_failure(name, e)
            return

        task = loop.create_task(asyncio.to_thread(fn, *args, **kwargs), name=f"workmem:{name}")
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_done(name, t))

    def _on_done(self, name: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.debug(f"Background job '{name}' cancelled")
            return
        error = task.exception()
        if error is not None:
            self._record_failure(name, error)

    async def drain(self) -> None:
        """Wait for every in-flight job to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
