from .dispatch import AsyncioTaskDispatcher, CeleryTaskDispatcher, TaskDispatcher

__all__ = ["AsyncioTaskDispatcher", "CeleryTaskDispatcher", "TaskDispatcher"]
