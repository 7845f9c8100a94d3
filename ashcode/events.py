"""Presentation events emitted while a turn runs, and the sinks that receive them."""

import queue
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .messages import ToolCall

__all__ = [
    "TurnEvent", "EventSink", "CallbackSink", "QueueSink", "NullSink",
    "PARTIAL_TEXT", "TURN_FINISHED", "APPROVAL_NEEDED", "TOOL_STARTED",
    "TOOL_OUTPUT", "ERROR", "COMPACTED", "EVENT_KINDS",
]

PARTIAL_TEXT = "partial_text"
TURN_FINISHED = "turn_finished"
APPROVAL_NEEDED = "approval_needed"
TOOL_STARTED = "tool_started"
TOOL_OUTPUT = "tool_output"
ERROR = "error"
COMPACTED = "compacted"
EVENT_KINDS = (PARTIAL_TEXT, TURN_FINISHED, APPROVAL_NEEDED, TOOL_STARTED,
               TOOL_OUTPUT, ERROR, COMPACTED)


@dataclass
class TurnEvent:
    """One presentation update.

    ``text`` carries the fragment for ``partial_text``, the full content for
    ``turn_finished``, tool output, or the error message. ``content`` is the
    accumulated assistant text so far for partial updates.
    """
    kind: str
    text: str = ""
    content: str = ""
    calls: List[ToolCall] = field(default_factory=list)
    call: Optional[ToolCall] = None
    data: Dict[str, Any] = field(default_factory=dict)


class EventSink:
    def emit(self, event: TurnEvent):
        raise NotImplementedError


class NullSink(EventSink):
    def emit(self, event: TurnEvent):
        pass


class CallbackSink(EventSink):
    """Routes events to per-kind callables; ``default`` catches the rest."""

    def __init__(self, handlers: Optional[Dict[str, Callable[[TurnEvent], None]]] = None,
                 default: Optional[Callable[[TurnEvent], None]] = None):
        self.handlers = dict(handlers or {})
        self.default = default

    def on(self, kind: str, handler: Callable[[TurnEvent], None]) -> "CallbackSink":
        self.handlers[kind] = handler
        return self

    def emit(self, event: TurnEvent):
        handler = self.handlers.get(event.kind, self.default)
        if handler is not None:
            handler(event)


class QueueSink(EventSink):
    """Single-producer/single-consumer channel for a separate presentation loop."""

    def __init__(self, maxsize: int = 0):
        self.queue: "queue.Queue[TurnEvent]" = queue.Queue(maxsize=maxsize)

    def emit(self, event: TurnEvent):
        self.queue.put(event)

    def get(self, timeout: Optional[float] = None) -> TurnEvent:
        return self.queue.get(timeout=timeout)

    def drain(self) -> List[TurnEvent]:
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events
