"""Recovery of tool calls that a model wrote as tags inside plain text.

Two shapes are recognised::

    <function=read_file><parameter=path>setup.py</parameter></function>

    <tool_call><function>read_file</function>
    <parameter=path>setup.py</parameter></tool_call>

Extraction is best-effort: anything ambiguous degrades to a guess instead of
an error, since the result only feeds the normal argument validation.
"""

import json
import re
from typing import Callable, Dict, List, Optional

from .logger import get_logger
from .messages import ToolCall

__all__ = ["parse_tagged_tool_calls", "has_tagged_tool_calls", "extract_parameters"]

_log = get_logger(__name__)

FUNCTION_TAG_MARKER = "<function="
TOOL_CALL_TAG_MARKER = "<tool_call>"

_FUNCTION_RE = re.compile(r"<function=(\w+)>(.*?)</function>", re.DOTALL)
_TOOL_CALL_RE = re.compile(r"<tool_call>(.*?)</tool_call>", re.DOTALL)
_TOOL_CALL_NAME_RE = re.compile(r"<function>(\w+)</function>")
_PARAMETER_RE = re.compile(r"<parameter=(\w+)>(.*?)</parameter>", re.DOTALL)

# Tools whose free text is a single well-known argument rather than "key: value" lines.
_PRIMARY_PARAMETER = {"execute_command": "command"}
IMPLICIT_PARAMETER = "value"


def has_tagged_tool_calls(text: str) -> bool:
    return bool(text) and (FUNCTION_TAG_MARKER in text or TOOL_CALL_TAG_MARKER in text)


def _collect_parameter_tags(content: str) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for name, value in _PARAMETER_RE.findall(content):
        params[name] = value.strip()
    return params


def _collect_colon_lines(content: str) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        idx = line.find(":")
        if idx <= 0:
            continue
        key = line[:idx].strip()
        value = line[idx + 1:].strip()
        if key and value:
            params[key] = value
    return params


def _is_json_object(content: str) -> bool:
    if not (content.startswith("{") and content.endswith("}")):
        return False
    try:
        return isinstance(json.loads(content), dict)
    except ValueError:
        return False


def extract_parameters(content: str, tool_name: Optional[str] = None) -> str:
    """Turn the body of a function tag into a JSON argument string.

    Priority: a JSON object passes through unchanged, then parameter tags,
    then ``key: value`` lines, then the whole text as one implicit parameter.
    """
    content = content.strip()
    if not content:
        return "{}"

    if _is_json_object(content):
        return content

    params = _collect_parameter_tags(content)
    if params:
        return json.dumps(params)

    primary = _PRIMARY_PARAMETER.get(tool_name or "")
    if primary is None:
        params = _collect_colon_lines(content)
        if params:
            return json.dumps(params)

    return json.dumps({primary or IMPLICIT_PARAMETER: content})


def _counter(prefix: str) -> Callable[[], str]:
    state = {"n": 0}

    def next_id() -> str:
        state["n"] += 1
        return f"{prefix}_{state['n']}"
    return next_id


def parse_tagged_tool_calls(text: str,
                            next_id: Optional[Callable[[], str]] = None) -> List[ToolCall]:
    """Extract tool calls from tag syntax in ``text``.

    ``next_id`` supplies call ids; by default function tags get ``call_N``
    and wrapped tool-call tags ``tool_N``.
    """
    if not has_tagged_tool_calls(text):
        return []

    calls: List[ToolCall] = []

    function_ids = next_id or _counter("call")
    for name, body in _FUNCTION_RE.findall(text):
        arguments = extract_parameters(body, name)
        calls.append(ToolCall(id=function_ids(), name=name, arguments=arguments))
        _log.debug("Parsed tagged function call name=%s args=%.200s", name, arguments)

    tool_ids = next_id or _counter("tool")
    for body in _TOOL_CALL_RE.findall(text):
        match = _TOOL_CALL_NAME_RE.search(body)
        if not match:
            continue
        name = match.group(1)
        params = _collect_parameter_tags(body)
        arguments = json.dumps(params) if params else "{}"
        calls.append(ToolCall(id=tool_ids(), name=name, arguments=arguments))
        _log.debug("Parsed tagged tool call name=%s args=%.200s", name, arguments)

    return calls
