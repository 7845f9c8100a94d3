import threading
from unittest.mock import MagicMock

from ashcode.events import QueueSink, TOOL_OUTPUT, TOOL_STARTED
from ashcode.execution import ExecutionLoop
from ashcode.messages import ConversationHistory, Message, ToolCall
from ashcode.tools.base import ToolResult
from ashcode.tools.shell import CANCELLED_OUTPUT


def _setup(*results):
    registry = MagicMock()
    registry.execute.side_effect = list(results)
    history = ConversationHistory("sys")
    calls = [ToolCall(id=f"c{i}", name=f"tool_{i}", arguments="{}") for i in range(len(results))]
    history.append(Message.assistant("", calls))
    return registry, history, calls


def test_runs_in_order_and_appends_one_result_per_call():
    registry, history, calls = _setup(ToolResult("one"), ToolResult("two"))

    report = ExecutionLoop(registry).run(calls, history)

    assert [c[0][0] for c in registry.execute.call_args_list] == ["tool_0", "tool_1"]
    assert [(m.role, m.tool_call_id, m.content) for m in history[2:]] == [
        ("tool", "c0", "one"), ("tool", "c1", "two")]
    assert report.executed == 2
    assert report.failed == 0


def test_failure_does_not_abort_batch():
    registry, history, calls = _setup(ToolResult("ok"), ToolResult.failure("Error: boom"),
                                      ToolResult("still runs"))

    report = ExecutionLoop(registry).run(calls, history)

    assert report.executed == 3
    assert report.failed == 1
    assert history.find_tool_result("c1").content == "Error: boom"
    assert history.find_tool_result("c2").content == "still runs"


def test_cancelled_before_start_skips_every_call():
    registry, history, calls = _setup(ToolResult("never"), ToolResult("never"))
    cancel = threading.Event()
    cancel.set()

    report = ExecutionLoop(registry).run(calls, history, cancel)

    registry.execute.assert_not_called()
    assert report.cancelled == 2
    assert report.was_cancelled
    assert [m.content for m in history[2:]] == [CANCELLED_OUTPUT, CANCELLED_OUTPUT]


def test_cancel_mid_batch_skips_the_rest():
    cancel = threading.Event()
    registry, history, calls = _setup(ToolResult("first"), ToolResult("second"))

    def execute(name, arguments, cancel_event=None):
        cancel.set()
        return ToolResult("first")

    registry.execute.side_effect = execute

    report = ExecutionLoop(registry).run(calls, history, cancel)

    assert registry.execute.call_count == 1
    assert report.executed == 1
    assert history.find_tool_result("c1").content == CANCELLED_OUTPUT


def test_events_bracket_each_call():
    registry, history, calls = _setup(ToolResult("a"), ToolResult.failure("bad", "exit status 1"))
    sink = QueueSink()

    ExecutionLoop(registry, sink).run(calls, history)

    events = sink.drain()
    assert [e.kind for e in events] == [TOOL_STARTED, TOOL_OUTPUT, TOOL_STARTED, TOOL_OUTPUT]
    assert events[1].text == "a"
    assert events[3].data["error"] == "exit status 1"
    assert events[2].call is calls[1]


def test_skip_remaining_only_fills_missing_results():
    registry, history, calls = _setup(ToolResult("x"), ToolResult("y"))
    history.append(Message.tool_result("c0", "done"))

    report = ExecutionLoop(registry).skip_remaining(calls, history)

    assert report.cancelled == 1
    assert history.find_tool_result("c0").content == "done"
    assert history.find_tool_result("c1").content == CANCELLED_OUTPUT
