"""
Sync-to-async bridge for the Streamlit frontend.

Streamlit scripts are synchronous, but the flows are coroutines and the
vision clients keep connection pools bound to the loop that opened them.
One loop runs forever in a daemon thread, and every call is submitted to
it, so cached clients never outlive their loop.
"""

import asyncio
import threading
from typing import Awaitable, Optional, TypeVar

import structlog


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BackgroundEventLoop:
    """An event loop running in its own thread."""

    def __init__(self, name: str = "expense-tracker-loop"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name=name,
            daemon=True,
        )
        self._thread.start()
        logger.info("background_loop_started", thread=name)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def is_running(self) -> bool:
        return self._loop.is_running() and not self._loop.is_closed()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the loop and block until it finishes."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout)

    def stop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
