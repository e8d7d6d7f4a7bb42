"""A private asyncio loop on a worker thread for the async parts of the pipeline."""

import asyncio
import logging
import threading
from concurrent import futures
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


class AsyncRunner:
    """Runs coroutines on one long-lived event loop from synchronous threads."""

    def __init__(self, name: str = "livequiz-async"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name=name, daemon=True)
        self._thread.start()
        logger.debug(f"Async runner {name} started")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def submit(self, coro: Coroutine) -> futures.Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine, timeout: Optional[float] = None) -> Any:
        """Run ``coro`` on the loop and block for its result.

        On timeout the coroutine is cancelled before ``TimeoutError`` is raised.
        """
        future = self.submit(coro)
        try:
            return future.result(timeout=timeout)
        except futures.TimeoutError:
            future.cancel()
            logger.warning(f"Coroutine cancelled after {timeout}s")
            raise

    def close(self) -> None:
        if not self.loop.is_running():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5.0)
