"""Long-lived event loop for running async services from sync handlers.

Flask views are synchronous. Store clients such as Motor bind to the loop
they first run on, so every coroutine issued by the HTTP layer is sent to
one background loop instead of a fresh loop per request.
"""
import asyncio
import logging
import threading
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """Runs an asyncio loop on a daemon thread."""

    def __init__(self, name: str = "campuscare-loop"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._run, name=self.name, daemon=True
            )
            self._thread.start()
            logger.info("BACKGROUND_LOOP_STARTED", extra={"loop_name": self.name})

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Submit a coroutine and block until it finishes.

        Exceptions raised by the coroutine propagate to the caller.
        """
        if not self.is_running:
            self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def stop(self) -> None:
        with self._lock:
            if not self.is_running:
                return
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
            self._loop.close()
            self._thread = None
            self._loop = None
            logger.info("BACKGROUND_LOOP_STOPPED", extra={"loop_name": self.name})
