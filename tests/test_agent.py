import pytest

from ashcode.agent import Agent
from ashcode.config import Config
from ashcode.errors import AgentError
from ashcode.events import COMPACTED, QueueSink
from ashcode.llm import BASE_SYSTEM_PROMPT
from ashcode.messages import Message
from ashcode.turn import TurnState, TurnStatus


@pytest.fixture
def config(tmp_path):
    cfg = Config()
    cfg.api.api_key = "sk-test"
    cfg.project_root = str(tmp_path)
    cfg.tools.working_dir = str(tmp_path)
    return cfg


def _agent(config, client, **kwargs):
    return Agent(config, client=client, project_instructions="", **kwargs)


def test_chat_appends_user_message_and_runs_turn(config, fake_client, sse, frames):
    agent = _agent(config, fake_client([sse(frames.text("Hi there"), frames.finish("stop"))]))

    outcome = agent.chat("hello")

    assert outcome.status is TurnStatus.COMPLETED
    assert [m.role for m in agent.history] == ["system", "user", "assistant"]
    assert agent.history[0].content == BASE_SYSTEM_PROMPT
    assert agent.history[1].content == "hello"


def test_project_instructions_in_preamble(config, fake_client, tmp_path):
    (tmp_path / "AGENTS.md").write_text("Always run pytest.")

    agent = Agent(config, client=fake_client([]))

    assert "Always run pytest." in agent.history.preamble.content


def test_real_tools_run_against_working_dir(config, fake_client, sse, frames, tmp_path):
    (tmp_path / "notes.txt").write_text("remember the milk")
    client = fake_client([
        sse(frames.tool(0, call_id="c1", name="read_file", arguments='{"path": "notes.txt"}'),
            frames.finish("tool_calls")),
        sse(frames.text("It says to remember the milk."), frames.finish("stop")),
    ])
    agent = _agent(config, client)

    agent.chat("what's in notes.txt?")

    assert agent.history.find_tool_result("c1").content == "remember the milk"
    assert agent.get_stats()["tool_calls_executed"] == 1


def test_rejected_calls_left_out_of_next_request(config, fake_client, sse, frames):
    client = fake_client([
        sse(frames.tool(0, call_id="c1", name="execute_command", arguments='{"command": "ls"}'),
            frames.finish("tool_calls")),
        sse(frames.text("ok"), frames.finish("stop")),
    ])
    agent = _agent(config, client, approver=lambda calls: False)

    assert agent.chat("list files").status is TurnStatus.REJECTED
    agent.chat("never mind")

    second = client.requests[1]["messages"]
    assert [m["role"] for m in second] == ["system", "user", "user"]
    assert len(agent.history[2].tool_calls) == 1


def test_approve_all_skips_approver(config, fake_client, sse, frames, tmp_path):
    client = fake_client([
        sse(frames.tool(0, call_id="c1", name="write_file",
                        arguments='{"path": "out.txt", "content": "x"}'),
            frames.finish("tool_calls")),
        sse(frames.finish("stop")),
    ])
    agent = _agent(config, client, approve_all=True,
                   approver=lambda calls: pytest.fail("approver should not be asked"))

    agent.chat("write it")

    assert (tmp_path / "out.txt").read_text() == "x"


def test_chat_while_busy_raises(config, fake_client):
    agent = _agent(config, fake_client([]))
    agent.controller.state = TurnState.STREAMING

    with pytest.raises(AgentError):
        agent.chat("again")


def test_manual_compact(config, fake_client):
    sink = QueueSink()
    agent = _agent(config, fake_client([]), sink=sink)
    for i in range(20):
        agent.history.append(Message.user(f"u{i}") if i % 2 == 0 else Message.assistant(f"a{i}"))

    removed = agent.compact()

    assert removed > 0
    assert len(agent.history) == 21 - removed
    assert [e.kind for e in sink.drain()] == [COMPACTED]


def test_manual_compact_short_history(config, fake_client):
    agent = _agent(config, fake_client([]))

    assert agent.compact() == 0


def test_reset_and_stats(config, fake_client, sse, frames):
    usage = {"choices": [], "usage": {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10}}
    agent = _agent(config, fake_client([sse(frames.text("yo"), frames.finish("stop"), usage)]))
    agent.chat("hi")

    stats = agent.get_stats()
    assert stats["messages"] == 3
    assert stats["user_messages"] == 1
    assert stats["assistant_messages"] == 1
    assert stats["total_tokens"] == 10
    assert stats["max_messages"] == 50

    agent.reset()

    assert len(agent.history) == 1
    assert agent.get_stats()["total_tokens"] == 0
