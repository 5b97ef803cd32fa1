"""Service layer - composition and request side effects.

This module contains:
- BackgroundTasks: tracked fire-and-forget tasks
- UsageRecorder implementations
- stores.initialize_services: builds the store, providers and pipelines
  (import it from ``kgrag.service.stores``; it depends on the pipelines)
"""

from kgrag.service.tasks import BackgroundTasks
from kgrag.service.usage import (
    InMemoryUsageRecorder,
    LoggingUsageRecorder,
    UsageEvent,
    UsageEventType,
    UsageRecorder,
)

__all__ = [
    "BackgroundTasks",
    "InMemoryUsageRecorder",
    "LoggingUsageRecorder",
    "UsageEvent",
    "UsageEventType",
    "UsageRecorder",
]
