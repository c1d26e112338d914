import time
import asyncio


class RequestThrottle:
    """Keeps a minimum spacing between consecutive LLM requests."""

    def __init__(self, min_interval: float = 0.0):
        self.min_interval = max(0.0, min_interval)
        self.last_request = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Block until the interval since the previous request has passed"""
        if self.min_interval <= 0:
            self.last_request = time.monotonic()
            return

        async with self._lock:
            elapsed = time.monotonic() - self.last_request
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)

            self.last_request = time.monotonic()
