"""Turn controller: drives one user turn from send to plain completion.

A turn may span several requests. Whenever the model finishes with tool
calls they pass the approval gate, run in order, and their results go back
to the model in a continuation request, until a response carries no calls.

States::

    IDLE -> SENDING -> STREAMING -> FINISHED_PLAIN -> IDLE
                                 -> FINISHED_WITH_CALLS -> AWAITING_APPROVAL -> EXECUTING -> SENDING
                                                        -> EXECUTING -> SENDING
"""

import enum
import itertools
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .approval import ApprovalGate, PendingApprovalSet
from .assembler import ToolCallAssembler
from .context_window import ContextCompactor
from .errors import TransportError
from .events import (EventSink, NullSink, TurnEvent, PARTIAL_TEXT, TURN_FINISHED,
                     APPROVAL_NEEDED, ERROR, COMPACTED)
from .execution import ExecutionLoop
from .fallback_parser import has_tagged_tool_calls, parse_tagged_tool_calls
from .llm import CompletionClient
from .logger import get_logger
from .messages import ConversationHistory, Message, ToolCall
from .tools.registry import ToolRegistry
from .wire import (DeltaChannel, TextDelta, ToolCallDelta, FinishDelta, UsageDelta,
                   DecodeErrorDelta, WireDecoder)

__all__ = ["TurnState", "TurnStatus", "TurnOutcome", "TurnController", "Approver"]

_log = get_logger(__name__)

Approver = Callable[[List[ToolCall]], bool]


class TurnState(enum.Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FINISHED_PLAIN = "finished_plain"
    FINISHED_WITH_CALLS = "finished_with_calls"
    AWAITING_APPROVAL = "awaiting_approval"
    EXECUTING = "executing"


class TurnStatus(enum.Enum):
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    ERROR = "error"
    MAX_ITERATIONS = "max_iterations"


@dataclass
class TurnOutcome:
    status: TurnStatus
    content: str = ""
    finish_reason: Optional[str] = None
    error: Optional[str] = None
    iterations: int = 0
    tool_calls: int = 0
    usage: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in (TurnStatus.COMPLETED, TurnStatus.INCOMPLETE)


@dataclass
class _StreamResult:
    content: str = ""
    calls: List[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)
    chunks: int = 0
    decode_errors: int = 0
    error: Optional[TransportError] = None


class TurnController:
    def __init__(self, client: CompletionClient, registry: ToolRegistry,
                 history: ConversationHistory, compactor: ContextCompactor,
                 gate: ApprovalGate, sink: Optional[EventSink] = None,
                 approver: Optional[Approver] = None, max_iterations: int = 30,
                 use_reader_thread: bool = False):
        self.client = client
        self.registry = registry
        self.history = history
        self.compactor = compactor
        self.gate = gate
        self.sink = sink or NullSink()
        self.approver = approver
        self.max_iterations = max_iterations
        self.use_reader_thread = use_reader_thread
        self.executor = ExecutionLoop(registry, self.sink)
        self.state = TurnState.IDLE
        self.total_usage: Dict[str, int] = {}
        self.tool_calls_executed = 0
        self._cancel = threading.Event()
        self._active_stream = None
        self._pending: Optional[PendingApprovalSet] = None
        self._call_ids = itertools.count(1)

    def _next_call_id(self) -> str:
        """Session-wide id for calls the model sent without one."""
        return f"call_{next(self._call_ids)}"

    # ── Public API ──

    @property
    def busy(self) -> bool:
        return self.state is not TurnState.IDLE

    def cancel(self):
        """Stop the running turn; safe to call from another thread."""
        self._cancel.set()
        stream = self._active_stream
        if stream is not None:
            stream.close()

    def run(self) -> TurnOutcome:
        """Run sends and continuations until the model stops asking for tools."""
        self._cancel.clear()
        outcome = TurnOutcome(status=TurnStatus.ERROR)
        try:
            outcome = self._run(outcome)
        except KeyboardInterrupt:
            self.cancel()
            outcome = self._cancelled(outcome)
        finally:
            self.state = TurnState.IDLE
            self._active_stream = None
            self._pending = None
        self.sink.emit(TurnEvent(TURN_FINISHED, text=outcome.content,
                                 data={"status": outcome.status.value, "error": outcome.error}))
        return outcome

    # ── State machine ──

    def _run(self, outcome: TurnOutcome) -> TurnOutcome:
        while outcome.iterations < self.max_iterations:
            if self._cancel.is_set():
                return self._cancelled(outcome)
            outcome.iterations += 1
            self._maybe_compact()

            self.state = TurnState.SENDING
            try:
                stream = self.client.stream(self.history.to_wire(), self.registry.schemas)
            except TransportError as e:
                return self._failed(outcome, e)

            self.state = TurnState.STREAMING
            message = self.history.append(Message.assistant())
            result = self._consume(stream, message)
            self._add_usage(outcome, result.usage)
            outcome.content = message.content
            outcome.finish_reason = result.finish_reason

            if result.error is not None:
                if not message.content:
                    self._drop_last(message)
                return self._failed(outcome, result.error)
            if self._cancel.is_set():
                return self._cancelled(outcome)

            calls = self._finalize(result, message)
            outcome.content = message.content
            _log.info("Stream finished: reason=%s chunks=%d content=%d tool_calls=%d",
                      result.finish_reason, result.chunks, len(message.content), len(calls))

            if not calls:
                self.state = TurnState.FINISHED_PLAIN
                if result.finish_reason is None:
                    _log.warning("Stream closed without a finish reason")
                    outcome.status = TurnStatus.INCOMPLETE
                else:
                    outcome.status = TurnStatus.COMPLETED
                return outcome

            self.state = TurnState.FINISHED_WITH_CALLS
            self._pending = PendingApprovalSet(list(calls))
            if not self._approve(self._pending):
                outcome.status = TurnStatus.REJECTED
                return outcome

            self.state = TurnState.EXECUTING
            report = self.executor.run(self._pending.calls, self.history, self._cancel)
            self._pending = None
            outcome.tool_calls += report.executed
            self.tool_calls_executed += report.executed
            if report.was_cancelled or self._cancel.is_set():
                return self._cancelled(outcome)

        _log.warning("Reached max iterations (%d)", self.max_iterations)
        outcome.status = TurnStatus.MAX_ITERATIONS
        return outcome

    def _consume(self, decoder: WireDecoder, message: Message) -> _StreamResult:
        result = _StreamResult()
        assembler = ToolCallAssembler(next_id=self._next_call_id)
        source = DeltaChannel(decoder) if self.use_reader_thread else decoder
        self._active_stream = source
        parts: List[str] = []
        try:
            for delta in source:
                if self._cancel.is_set():
                    break
                result.chunks += 1
                if isinstance(delta, TextDelta):
                    parts.append(delta.text)
                    message.content = "".join(parts)
                    self.sink.emit(TurnEvent(PARTIAL_TEXT, text=delta.text, content=message.content))
                elif isinstance(delta, ToolCallDelta):
                    assembler.add(delta)
                elif isinstance(delta, FinishDelta):
                    result.finish_reason = delta.reason
                elif isinstance(delta, UsageDelta):
                    result.usage = delta.as_dict()
                elif isinstance(delta, DecodeErrorDelta):
                    result.decode_errors += 1
                    self.sink.emit(TurnEvent(ERROR, text=str(delta.error),
                                             data={"recoverable": True}))
        except TransportError as e:
            _log.error("Stream failed: %s", e)
            result.error = e
        finally:
            source.close()
            self._active_stream = None
        result.content = message.content
        result.calls = assembler.finalize()
        return result

    def _finalize(self, result: _StreamResult, message: Message) -> List[ToolCall]:
        calls = result.calls
        if not calls and has_tagged_tool_calls(result.content):
            calls = parse_tagged_tool_calls(
                result.content, next_id=self._next_call_id)
            if calls:
                _log.info("Parsed %d tagged tool call(s) from content", len(calls))
                message.content = ""
        message.tool_calls = list(calls)
        return calls

    def _approve(self, pending: PendingApprovalSet) -> bool:
        decision = self.gate.evaluate(pending.calls)
        if not decision.requires_human:
            return True
        self.state = TurnState.AWAITING_APPROVAL
        self.sink.emit(TurnEvent(APPROVAL_NEEDED, calls=list(pending.calls),
                                 data={"blocked": list(decision.blocked)}))
        approved = self.approver(list(pending.calls)) if self.approver else False
        return self.gate.resolve(pending, approved)

    def _maybe_compact(self):
        messages = self.history.messages
        compacted = self.compactor.compact_if_needed(messages)
        if compacted is messages:
            return
        self.history.replace(compacted)
        self.sink.emit(TurnEvent(COMPACTED, data={"before": len(messages), "after": len(compacted)}))

    # ── Terminal helpers ──

    def _add_usage(self, outcome: TurnOutcome, usage: Dict[str, int]):
        for key, value in usage.items():
            outcome.usage[key] = outcome.usage.get(key, 0) + value
            self.total_usage[key] = self.total_usage.get(key, 0) + value

    def _drop_last(self, message: Message):
        if len(self.history) > 1 and self.history[-1] is message:
            self.history.replace(self.history.messages[:-1])

    def _failed(self, outcome: TurnOutcome, error: TransportError) -> TurnOutcome:
        outcome.status = TurnStatus.ERROR
        outcome.error = str(error)
        self.sink.emit(TurnEvent(ERROR, text=str(error), data={"recoverable": False}))
        return outcome

    def _cancelled(self, outcome: TurnOutcome) -> TurnOutcome:
        if self._pending is not None:
            self.executor.skip_remaining(self._pending.calls, self.history)
            self._pending = None
        _log.info("Turn cancelled")
        outcome.status = TurnStatus.CANCELLED
        return outcome
