"""Conversation data model: messages, tool calls and the history that owns them."""

import json
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Iterator

__all__ = ["ToolCall", "Message", "ConversationHistory",
           "SYSTEM", "USER", "ASSISTANT", "TOOL"]

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"
TOOL = "tool"
ROLES = (SYSTEM, USER, ASSISTANT, TOOL)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str = "{}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class Message:
    role: str
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"unknown role: {self.role!r}")
        if self.tool_calls and self.role != ASSISTANT:
            raise ValueError("only assistant messages carry tool calls")
        if self.tool_call_id and self.role != TOOL:
            raise ValueError("only tool messages carry a tool_call_id")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role=ASSISTANT, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role=TOOL, content=content, tool_call_id=tool_call_id)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation for the chat completions API."""
        msg: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            msg["tool_call_id"] = self.tool_call_id
        return msg

    def char_count(self) -> int:
        """Characters of text plus serialized tool-call structures."""
        total = len(self.content or "")
        if self.tool_calls:
            total += len(json.dumps([tc.to_dict() for tc in self.tool_calls]))
        return total


class ConversationHistory:
    """Ordered message list whose element 0 is the system preamble.

    Messages are appended during a turn; compaction swaps the whole list
    through ``replace()``, which refuses to drop the preamble.
    """

    def __init__(self, preamble: str):
        self._messages: List[Message] = [Message.system(preamble)]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __getitem__(self, idx):
        return self._messages[idx]

    @property
    def preamble(self) -> Message:
        return self._messages[0]

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def append(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def replace(self, messages: List[Message]):
        if not messages or messages[0] is not self._messages[0]:
            raise ValueError("replacement history must keep the preamble")
        self._messages = list(messages)

    def reset(self):
        self._messages = self._messages[:1]

    def find_tool_result(self, tool_call_id: str) -> Optional[Message]:
        for msg in reversed(self._messages):
            if msg.role == TOOL and msg.tool_call_id == tool_call_id:
                return msg
        return None

    def count_by_role(self) -> Dict[str, int]:
        counts = {role: 0 for role in ROLES}
        for msg in self._messages:
            counts[msg.role] += 1
        return counts

    def to_wire(self) -> List[Dict[str, Any]]:
        """Serialize for a request, leaving out unanswered calls and orphan results.

        A rejected batch leaves tool calls without results, and compaction can
        drop the assistant message a result belongs to. The service rejects
        both shapes, so they are filtered here without touching the history.
        """
        answered = {m.tool_call_id for m in self._messages if m.role == TOOL}
        declared = set()
        wire: List[Dict[str, Any]] = []
        for msg in self._messages:
            if msg.role == ASSISTANT and msg.tool_calls:
                kept = [tc for tc in msg.tool_calls if tc.id in answered]
                declared.update(tc.id for tc in kept)
                entry = Message.assistant(msg.content, kept).to_dict()
                if not kept and not msg.content:
                    continue
                wire.append(entry)
            elif msg.role == TOOL:
                if msg.tool_call_id not in declared:
                    continue
                wire.append(msg.to_dict())
            else:
                wire.append(msg.to_dict())
        return wire
