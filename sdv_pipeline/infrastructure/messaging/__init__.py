from .job_events import (
    JobEvent,
    JobEventPublisher,
    JobEventType,
    cleanup_job_event_publisher,
    get_job_event_publisher,
)

__all__ = [
    "JobEvent",
    "JobEventPublisher",
    "JobEventType",
    "cleanup_job_event_publisher",
    "get_job_event_publisher",
]
