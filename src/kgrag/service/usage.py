"""Usage events emitted by the query pipeline.

Metering and billing live outside this package; a ``UsageRecorder`` is the
hook they plug into. Two recorders ship here: one that writes events to the
structured log and one that keeps per-workspace totals in memory.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum

from kgrag.observability.logging import get_logger

logger = get_logger(__name__)


class UsageEventType(str, Enum):
    API_REQUEST = "api_request"
    LLM_CALL = "llm_call"
    EMBEDDING = "embedding"


@dataclass(frozen=True)
class UsageEvent:
    workspace: str
    type: UsageEventType
    input_tokens: int = 0
    output_tokens: int = 0
    embedding_requests: int = 0


@dataclass
class UsageSummary:
    api_requests: int = 0
    llm_input_tokens: int = 0
    llm_output_tokens: int = 0
    embedding_requests: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


class UsageRecorder(ABC):
    """Sink for usage events. Implementations may do I/O."""

    @abstractmethod
    async def record(self, event: UsageEvent) -> None:
        """Persist or forward one event."""


class LoggingUsageRecorder(UsageRecorder):
    async def record(self, event: UsageEvent) -> None:
        logger.info(
            "usage_recorded",
            workspace=event.workspace,
            usage_type=event.type.value,
            input_tokens=event.input_tokens,
            output_tokens=event.output_tokens,
            embedding_requests=event.embedding_requests,
        )


class InMemoryUsageRecorder(UsageRecorder):
    """Aggregates events per workspace."""

    def __init__(self) -> None:
        self._totals: dict[str, UsageSummary] = defaultdict(UsageSummary)

    async def record(self, event: UsageEvent) -> None:
        summary = self._totals[event.workspace]
        if event.type == UsageEventType.API_REQUEST:
            summary.api_requests += 1
        summary.llm_input_tokens += event.input_tokens
        summary.llm_output_tokens += event.output_tokens
        summary.embedding_requests += event.embedding_requests
        summary.by_type[event.type.value] = summary.by_type.get(event.type.value, 0) + 1

    def summary(self, workspace: str) -> UsageSummary:
        return self._totals.get(workspace, UsageSummary())
