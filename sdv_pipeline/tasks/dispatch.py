"""
Task dispatch.

Services enqueue named tasks with a JSON-able payload and never wait for
them. Deployments hand tasks to Celery; single-process runs and tests drain
an asyncio queue with a small worker pool.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..core.constants import TASK_MERGE_UPLOAD, TASK_PROCESS_UPLOAD_CHUNK
from ..core.exceptions import ServiceError
from ..core.logging import get_logger

logger = get_logger(__name__)

TaskHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class TaskDispatcher(ABC):
    @abstractmethod
    def enqueue(self, task_name: str, payload: Dict[str, Any]) -> None:
        """Schedule ``task_name`` with keyword arguments ``payload``."""


class CeleryTaskDispatcher(TaskDispatcher):
    """Send tasks to the Celery broker."""

    def _tasks(self):
        from .ingest_tasks import process_upload_chunk
        from .merge_tasks import merge_upload

        return {
            TASK_PROCESS_UPLOAD_CHUNK: process_upload_chunk,
            TASK_MERGE_UPLOAD: merge_upload,
        }

    def enqueue(self, task_name: str, payload: Dict[str, Any]) -> None:
        task = self._tasks().get(task_name)
        if task is None:
            raise ServiceError(f"Unknown task '{task_name}'")
        result = task.delay(**payload)
        logger.info(f"Queued {task_name} as Celery task {result.id}")


class AsyncioTaskDispatcher(TaskDispatcher):
    """
    In-process queue drained by ``concurrency`` worker coroutines.

    Workers start on the first enqueue, inside whatever loop is running.
    ``join()`` waits until every queued task, including tasks enqueued by
    other tasks, has finished.
    """

    def __init__(self, handlers: Dict[str, TaskHandler], concurrency: int = 2):
        self.handlers = handlers
        self.concurrency = max(1, concurrency)
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self.errors: List[Tuple[str, BaseException]] = []

    def _ensure_workers(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if not self._workers:
            self._workers = [
                asyncio.create_task(self._worker(index)) for index in range(self.concurrency)
            ]
        return self._queue

    async def _worker(self, index: int) -> None:
        while True:
            task_name, payload = await self._queue.get()
            try:
                await self.handlers[task_name](payload)
            except Exception as e:
                self.errors.append((task_name, e))
                logger.error(f"Local worker {index} failed {task_name}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def enqueue(self, task_name: str, payload: Dict[str, Any]) -> None:
        if task_name not in self.handlers:
            raise ServiceError(f"Unknown task '{task_name}'")
        self._ensure_workers().put_nowait((task_name, payload))
        logger.debug(f"Queued {task_name} locally")

    async def join(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def shutdown(self) -> None:
        for worker in self._workers:
            worker.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
