"""Runs approved tool calls in order and records one result message per call."""

import threading
from dataclasses import dataclass
from typing import List, Optional

from .events import EventSink, NullSink, TurnEvent, TOOL_STARTED, TOOL_OUTPUT
from .logger import get_logger
from .messages import ConversationHistory, Message, ToolCall
from .tools.registry import ToolRegistry
from .tools.shell import CANCELLED_OUTPUT

__all__ = ["ExecutionLoop", "ExecutionReport"]

_log = get_logger(__name__)


@dataclass
class ExecutionReport:
    executed: int = 0
    failed: int = 0
    cancelled: int = 0

    @property
    def was_cancelled(self) -> bool:
        return self.cancelled > 0


class ExecutionLoop:
    """Sequential executor.

    Each result is appended right after its call finishes, so a failure or
    cancellation mid-batch still leaves a result for every call before it.
    Tool failures are content, never exceptions.
    """

    def __init__(self, registry: ToolRegistry, sink: Optional[EventSink] = None):
        self.registry = registry
        self.sink = sink or NullSink()

    def run(self, calls: List[ToolCall], history: ConversationHistory,
            cancel_event: Optional[threading.Event] = None) -> ExecutionReport:
        report = ExecutionReport()
        for call in calls:
            if cancel_event is not None and cancel_event.is_set():
                self.skip(call, history, report)
                continue

            self.sink.emit(TurnEvent(TOOL_STARTED, call=call))
            result = self.registry.execute(call.name, call.arguments, cancel_event=cancel_event)
            history.append(Message.tool_result(call.id, result.output))
            report.executed += 1
            if result.error == "cancelled":
                report.cancelled += 1
            elif result.error:
                report.failed += 1
            self.sink.emit(TurnEvent(TOOL_OUTPUT, text=result.output, call=call,
                                     data={"error": result.error}))
        return report

    def skip(self, call: ToolCall, history: ConversationHistory, report: ExecutionReport):
        _log.info("Skipping tool %s (%s): cancelled", call.name, call.id)
        history.append(Message.tool_result(call.id, CANCELLED_OUTPUT))
        report.cancelled += 1
        self.sink.emit(TurnEvent(TOOL_OUTPUT, text=CANCELLED_OUTPUT, call=call,
                                 data={"error": "cancelled"}))

    def skip_remaining(self, calls: List[ToolCall], history: ConversationHistory) -> ExecutionReport:
        """Give every call that has no result yet a cancellation result."""
        report = ExecutionReport()
        for call in calls:
            if history.find_tool_result(call.id) is None:
                self.skip(call, history, report)
        return report
