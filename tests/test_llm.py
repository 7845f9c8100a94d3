import json
from unittest.mock import MagicMock

import pytest
import requests

from ashcode.config import ApiConfig
from ashcode.errors import TransportError
from ashcode.llm import (BASE_SYSTEM_PROMPT, CompletionClient, build_system_prompt,
                         find_agents_md, load_project_instructions)
from ashcode.wire import TextDelta


def _response(status=200, body=b"", chunks=None):
    response = MagicMock()
    response.status_code = status
    response.text = body.decode("utf-8")
    response.iter_content.return_value = iter(chunks or [])
    return response


@pytest.fixture
def api_config():
    return ApiConfig(base_url="http://localhost:8080/v1/", api_key="sk-test", model="m1",
                     max_tokens=256, temperature=0.1, timeout=5)


class TestCompletionClient:
    def test_payload_with_tools(self, api_config):
        client = CompletionClient(api_config, session=MagicMock())
        tools = [{"type": "function", "function": {"name": "read_file"}}]

        payload = client.build_payload([{"role": "user", "content": "hi"}], tools)

        assert payload == {
            "model": "m1",
            "messages": [{"role": "user", "content": "hi"}],
            "temperature": 0.1,
            "max_tokens": 256,
            "stream": True,
            "tools": tools,
            "tool_choice": "auto",
        }

    def test_payload_without_tools(self, api_config):
        payload = CompletionClient(api_config, session=MagicMock()).build_payload([])

        assert "tools" not in payload
        assert "tool_choice" not in payload

    def test_stream_dispatch(self, api_config, sse, frames):
        session = MagicMock()
        session.post.return_value = _response(chunks=[sse(frames.text("hi"))])
        client = CompletionClient(api_config, session=session)

        deltas = list(client.stream([{"role": "user", "content": "x"}]))

        assert deltas == [TextDelta("hi")]
        args, kwargs = session.post.call_args
        assert args[0] == "http://localhost:8080/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["headers"]["Accept"] == "text/event-stream"
        assert kwargs["stream"] is True
        assert kwargs["timeout"] == 5
        assert kwargs["json"]["stream"] is True
        session.post.return_value.close.assert_called_once()

    def test_json_error_body(self, api_config):
        body = json.dumps({"error": {"message": "bad key", "type": "auth", "code": "invalid"}})
        session = MagicMock()
        session.post.return_value = _response(401, body.encode())

        with pytest.raises(TransportError) as exc:
            CompletionClient(api_config, session=session).stream([])

        assert str(exc.value) == "API error: bad key (type: auth, code: invalid)"
        assert exc.value.status_code == 401
        session.post.return_value.close.assert_called_once()

    def test_plain_error_body(self, api_config):
        session = MagicMock()
        session.post.return_value = _response(502, b"Bad Gateway")

        with pytest.raises(TransportError, match="API error 502: Bad Gateway"):
            CompletionClient(api_config, session=session).stream([])

    def test_connection_failure(self, api_config):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(TransportError, match="Cannot connect: model=m1"):
            CompletionClient(api_config, session=session).stream([])

    def test_timeout(self, api_config):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("slow")

        with pytest.raises(TransportError, match="timed out after 5s"):
            CompletionClient(api_config, session=session).stream([])


class TestSystemPrompt:
    def test_base_prompt(self):
        assert build_system_prompt(None) == BASE_SYSTEM_PROMPT
        assert build_system_prompt("   ") == BASE_SYSTEM_PROMPT

    def test_project_instructions_appended(self):
        prompt = build_system_prompt("Use tabs.\n")

        assert prompt.startswith(BASE_SYSTEM_PROMPT)
        assert prompt.endswith("## Project instructions (AGENTS.md):\nUse tabs.\n")

    def test_agents_md_found_upward(self, tmp_path):
        (tmp_path / "AGENTS.md").write_text("Run make test.")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert find_agents_md(str(nested)) == tmp_path.resolve() / "AGENTS.md"
        assert load_project_instructions(str(nested)) == "Run make test."
