import asyncio
from typing import Any, Awaitable, Callable, List, Sequence, TypeVar

from utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")


class WorkerPool:
    """Fixed-size pool of asyncio workers draining a shared queue.

    Results land in a pre-sized list at the index of their input item, so the
    returned order always matches the input order regardless of which task
    finishes first.
    """

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers

    async def run(
        self,
        items: Sequence[T],
        handler: Callable[[int, T], Awaitable[Any]]
    ) -> List[Any]:
        """Run ``handler(index, item)`` for every item with bounded parallelism.

        If a handler raises, the remaining workers are cancelled and the error
        propagates.
        """
        results: List[Any] = [None] * len(items)
        if not items:
            return results

        queue: asyncio.Queue = asyncio.Queue()
        for index, item in enumerate(items):
            queue.put_nowait((index, item))

        async def _worker(worker_id: int) -> None:
            while True:
                try:
                    index, item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                logger.debug(f"Worker {worker_id} picked item {index + 1}/{len(items)}")
                results[index] = await handler(index, item)

        worker_count = min(self.max_workers, len(items))
        tasks = [asyncio.create_task(_worker(i)) for i in range(worker_count)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return results
