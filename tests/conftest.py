"""Shared fixtures for ashcode tests."""

import json
import os
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import yaml

from ashcode.config import ToolsConfig
from ashcode.wire import WireDecoder


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point every user-level config location at an empty temp home."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr("ashcode.config.CONFIG_DIR", home / ".ashcode")
    monkeypatch.setattr("ashcode.config.CONFIG_FILE", home / ".ashcode" / "config.yml")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    for var in ("OPENAI_API_KEY", "ASHCODE_API_KEY", "ASHCODE_API_BASE_URL", "ASHCODE_API_MODEL"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def sample_config_data():
    """Minimal .ashcode.yml data dict."""
    return {
        "api": {
            "base-url": "http://localhost:8080/v1",
            "api-key": "sk-test",
            "model": "local-model",
            "temperature": 0.2,
            "timeout": 30,
        },
        "tools": {
            "auto-approve-tools": ["read_file", "list_directory"],
            "command-timeout": 30,
        },
        "context": {
            "max-messages": 20,
            "max-tokens": 8000,
            "compaction-ratio": 0.75,
            "auto-compact": True,
        },
        "max-iterations": 10,
        "verbose": False,
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".ashcode.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def tools_config(tmp_path):
    return ToolsConfig(working_dir=str(tmp_path))


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    c.input = MagicMock(return_value="n")
    return c


def _encode(item) -> bytes:
    if isinstance(item, bytes):
        return item
    return b"data: " + json.dumps(item).encode("utf-8") + b"\n\n"


@pytest.fixture
def sse():
    """Build an SSE body from frame dicts (raw ``bytes`` items pass through)."""

    def build(*items, done=True) -> bytes:
        body = b"".join(_encode(item) for item in items)
        if done:
            body += b"data: [DONE]\n\n"
        return body

    return build


def text_frame(text, finish=None):
    choice = {"index": 0, "delta": {"content": text}}
    if finish:
        choice["finish_reason"] = finish
    return {"choices": [choice]}


def tool_frame(index, call_id=None, name=None, arguments=""):
    tc = {"index": index, "function": {"arguments": arguments}}
    if call_id:
        tc["id"] = call_id
        tc["type"] = "function"
    if name:
        tc["function"]["name"] = name
    return {"choices": [{"index": 0, "delta": {"tool_calls": [tc]}}]}


def finish_frame(reason):
    return {"choices": [{"index": 0, "delta": {}, "finish_reason": reason}]}


@pytest.fixture
def frames():
    """Frame builders: ``frames.text``, ``frames.tool``, ``frames.finish``."""
    return SimpleNamespace(text=text_frame, tool=tool_frame, finish=finish_frame)


class FakeCompletionClient:
    """Completion client stub that replays pre-built SSE bodies.

    Each response is ``bytes`` (one body), a list of byte chunks, an
    exception to raise on dispatch, or a ready ``WireDecoder``.
    """

    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []
        self.decoders = []

    def stream(self, messages, tools=None):
        self.requests.append({"messages": messages, "tools": tools})
        if not self._responses:
            raise AssertionError("unexpected request")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, WireDecoder):
            decoder = response
        elif isinstance(response, bytes):
            decoder = WireDecoder([response])
        else:
            decoder = WireDecoder(response)
        self.decoders.append(decoder)
        return decoder


@pytest.fixture
def fake_client():
    return FakeCompletionClient
