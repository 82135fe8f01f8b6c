"""
Job event publisher.

Every Job Tracker write is announced here so observers can follow progress
without polling. Delivery is best effort: a failing subscriber or an
unreachable Redis is logged and never propagates to the writer.
"""

import inspect
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from uuid import UUID, uuid4

import redis.asyncio as redis
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from ...core.config import Settings, get_settings
from ...core.logging import get_logger
from ...utils.date_utils import utcnow

logger = get_logger(__name__)


class JobEventType(str, Enum):
    CREATED = "job.created"
    STARTED = "job.started"
    PROGRESS = "job.progress"
    COMPLETED = "job.completed"
    FAILED = "job.failed"
    CANCELLED = "job.cancelled"


class JobEvent(BaseModel):
    """Snapshot of an upload job taken right after a write"""

    event_id: UUID = Field(default_factory=uuid4)
    event_type: JobEventType
    timestamp: datetime = Field(default_factory=utcnow)
    job_id: UUID
    tenant_id: str
    job_type: str
    status: str
    progress: int
    total_records: int
    processed_records: int
    failed_records: int
    error_message: Optional[str] = None
    upload_id: Optional[UUID] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_job(cls, event_type: JobEventType, job) -> "JobEvent":
        return cls(
            event_type=event_type,
            job_id=job.id,
            tenant_id=job.tenant_id,
            job_type=getattr(job.job_type, "value", job.job_type),
            status=getattr(job.status, "value", job.status),
            progress=job.progress,
            total_records=job.total_records,
            processed_records=job.processed_records,
            failed_records=job.failed_records,
            error_message=job.error_message,
            upload_id=job.upload_id,
            metadata=dict(job.job_metadata or {}),
        )


Subscriber = Callable[[JobEvent], Union[None, Awaitable[None]]]


class JobEventPublisher:
    """
    Fan job events out to in-process subscribers and Redis pub/sub.

    Channels: ``sdv:jobs:{tenant_id}`` and ``sdv:jobs:events:{event_type}``.
    """

    def __init__(self, redis_url: Optional[str] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        if redis_url is None and settings.redis.enabled:
            redis_url = settings.redis.build_url()
        self.redis_url = redis_url
        self.redis_client: Optional[redis.Redis] = None
        self._subscribers: List[Subscriber] = []

    async def connect(self) -> None:
        if self.redis_url is None or self.redis_client is not None:
            return
        try:
            self.redis_client = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
            await self.redis_client.ping()
            logger.info("Job event publisher connected to Redis")
        except (RedisError, OSError) as e:
            logger.error(f"Failed to connect to Redis, job events stay in-process: {e}")
            self.redis_client = None

    async def disconnect(self) -> None:
        if self.redis_client is not None:
            try:
                await self.redis_client.aclose()
            except (RedisError, OSError) as e:
                logger.error(f"Error disconnecting from Redis: {e}")
            self.redis_client = None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, event_type: JobEventType, job) -> Optional[JobEvent]:
        try:
            event = JobEvent.from_job(event_type, job)
        except (AttributeError, ValueError) as e:
            logger.error(f"Could not build {event_type.value} event: {e}")
            return None

        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Job event subscriber {callback!r} failed on {event_type.value}: {e}")

        if self.redis_client is not None:
            payload = event.model_dump_json()
            try:
                await self.redis_client.publish(f"sdv:jobs:{event.tenant_id}", payload)
                await self.redis_client.publish(f"sdv:jobs:events:{event_type.value}", payload)
            except (RedisError, OSError) as e:
                logger.error(f"Failed to publish {event_type.value} for job {event.job_id}: {e}")

        logger.debug(f"Published {event_type.value} for job {event.job_id} ({event.status}, {event.progress}%)")
        return event


# Global publisher instance
_job_event_publisher: Optional[JobEventPublisher] = None


def get_job_event_publisher() -> JobEventPublisher:
    """Get or create the process-wide publisher."""
    global _job_event_publisher
    if _job_event_publisher is None:
        _job_event_publisher = JobEventPublisher()
    return _job_event_publisher


async def cleanup_job_event_publisher() -> None:
    global _job_event_publisher
    if _job_event_publisher is not None:
        await _job_event_publisher.disconnect()
        _job_event_publisher = None
