"""Completion service client: request building, bearer auth, streamed dispatch."""

import json
from pathlib import Path
from typing import List, Dict, Any, Optional

import requests

from .config import ApiConfig
from .errors import TransportError
from .logger import get_logger
from .wire import WireDecoder

_log = get_logger(__name__)

AGENTS_MD = "AGENTS.md"

BASE_SYSTEM_PROMPT = """\
You are ashcode, an AI coding assistant running inside the user's project directory.
You help users with programming tasks by:
- Writing and editing code
- Running commands
- Explaining concepts
- Debugging issues
- Suggesting improvements

## Core workflow:
1. Explore first: list_directory, git_ls_files and read_file before making changes.
2. Verify: read the modified file or run tests after editing.
3. One step at a time: break complex tasks into small, verifiable steps.

## Rules:
- You have access to tools for file operations and command execution.
- Some tools run only after the user approves them; if a call is rejected, ask how to proceed.
- Briefly explain your intent before making changes.
- Respond in the same language the user uses.
"""


def find_agents_md(start: Optional[str] = None) -> Optional[Path]:
    """Search for AGENTS.md from ``start`` upward to the filesystem root."""
    current = Path(start or ".").resolve()
    while True:
        candidate = current / AGENTS_MD
        if candidate.is_file():
            _log.info("Found AGENTS.md at %s", candidate)
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def load_project_instructions(start: Optional[str] = None) -> Optional[str]:
    path = find_agents_md(start)
    if path is None:
        return None
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        _log.error("Failed to read %s: %s", path, e)
        return None


def build_system_prompt(project_instructions: Optional[str] = None) -> str:
    prompt = BASE_SYSTEM_PROMPT
    if project_instructions and project_instructions.strip():
        prompt += f"\n\n## Project instructions (AGENTS.md):\n{project_instructions.strip()}\n"
    return prompt


def _error_detail(response: requests.Response) -> str:
    body = response.text
    try:
        data = json.loads(body)
    except ValueError:
        return f"API error {response.status_code}: {body}"
    err = data.get("error") if isinstance(data, dict) else None
    if not isinstance(err, dict):
        return f"API error {response.status_code}: {body}"
    return (f"API error: {err.get('message', '')} "
            f"(type: {err.get('type', '')}, code: {err.get('code', '')})")


class CompletionClient:
    """Streams chat completions from an OpenAI-compatible endpoint."""

    def __init__(self, config: ApiConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return self.config.base_url.rstrip("/") + "/chat/completions"

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def build_payload(self, messages: List[Dict[str, Any]],
                      tools: Optional[List[Dict]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": True,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        return payload

    def stream(self, messages: List[Dict[str, Any]],
               tools: Optional[List[Dict]] = None) -> WireDecoder:
        """Dispatch a streaming request and return a decoder over its body.

        Raises ``TransportError`` when the request cannot be sent or the
        service answers with a non-200 status.
        """
        payload = self.build_payload(messages, tools)
        _log.info("Sending streaming request: model=%s messages=%d", self.config.model, len(messages))
        try:
            response = self.session.post(
                self.endpoint,
                headers=self.headers(),
                json=payload,
                stream=True,
                timeout=self.config.timeout,
            )
        except requests.Timeout as e:
            raise TransportError(f"Request timed out after {self.config.timeout}s: {e}") from e
        except requests.RequestException as e:
            raise TransportError(
                f"Cannot connect: model={self.config.model}, base={self.config.base_url}\n{e}"
            ) from e

        if response.status_code != 200:
            try:
                detail = _error_detail(response)
            finally:
                response.close()
            _log.error("Streaming API returned %d: %s", response.status_code, detail)
            raise TransportError(detail, status_code=response.status_code)

        return WireDecoder.from_response(response)
