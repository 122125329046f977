"""Execution events emitted by the backend while a task runs.

The orchestrator mirrors only a closed set of event kinds; everything else is
carried as an ``OpaqueEvent`` and ignored by the mirroring layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from taskbridge.models.task import now_ms


@dataclass(frozen=True)
class _BaseEvent:
    data: Any = None
    session_id: str = ""
    timestamp: int = field(default_factory=now_ms)

    kind = "unknown"

    def describe(self) -> str:
        return f"{self.kind}: {self.data}"


@dataclass(frozen=True)
class OutputEvent(_BaseEvent):
    kind = "output"


@dataclass(frozen=True)
class ErrorEvent(_BaseEvent):
    kind = "error"


@dataclass(frozen=True)
class CompleteEvent(_BaseEvent):
    kind = "complete"


@dataclass(frozen=True)
class AbortEvent(_BaseEvent):
    kind = "abort"


@dataclass(frozen=True)
class SessionErrorEvent(_BaseEvent):
    kind = "session.error"


@dataclass(frozen=True)
class SessionIdleEvent(_BaseEvent):
    kind = "session.idle"


@dataclass(frozen=True)
class OpaqueEvent(_BaseEvent):
    """Any backend event kind outside the mirrored set."""

    raw_kind: str = "unknown"

    @property
    def kind(self) -> str:  # type: ignore[override]
        return self.raw_kind


SignificantEvent = Union[
    OutputEvent, ErrorEvent, CompleteEvent, AbortEvent, SessionErrorEvent, SessionIdleEvent
]
ExecutionEvent = Union[SignificantEvent, OpaqueEvent]

_SIGNIFICANT = {
    cls.kind: cls
    for cls in (OutputEvent, ErrorEvent, CompleteEvent, AbortEvent, SessionErrorEvent, SessionIdleEvent)
}

SIGNIFICANT_EVENT_KINDS = frozenset(_SIGNIFICANT)


def parse_execution_event(kind: str, data: Any = None, session_id: str = "", timestamp: int = 0) -> ExecutionEvent:
    """Build the tagged variant for a backend event kind."""
    ts = timestamp or now_ms()
    cls = _SIGNIFICANT.get(kind)
    if cls is None:
        return OpaqueEvent(data=data, session_id=session_id, timestamp=ts, raw_kind=kind or "unknown")
    return cls(data=data, session_id=session_id, timestamp=ts)


def is_significant(event: ExecutionEvent) -> bool:
    return not isinstance(event, OpaqueEvent)
