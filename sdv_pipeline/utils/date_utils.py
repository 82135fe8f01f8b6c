"""
Date and time helpers shared by the pipeline.

Timestamps are timezone-aware UTC.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def seconds_ago(seconds: float) -> datetime:
    return utcnow() - timedelta(seconds=seconds)
