"""Context budget and history compaction."""

from dataclasses import dataclass
from typing import List, Optional

from .logger import get_logger
from .messages import Message, USER, ASSISTANT, TOOL
from .tokenizer import estimate_history_tokens

__all__ = ["Budget", "ContextCompactor", "COMPACTION_STRATEGIES"]

_log = get_logger(__name__)

SUMMARY_HEADER = "Previous conversation summary:\n"
EXCERPT_USER_MESSAGES = 3
EXCERPT_CHARS = 100
MIN_COMPACTABLE = 3
COMPACTION_STRATEGIES = ("default", "aggressive", "smart")


@dataclass(frozen=True)
class Budget:
    max_messages: int = 50
    max_tokens: int = 100000
    compaction_ratio: float = 0.5
    auto_compact: bool = True

    @property
    def token_threshold(self) -> int:
        return int(self.max_tokens * self.compaction_ratio)


class ContextCompactor:
    """Shrinks a history that outgrew its budget.

    Message 0 always survives. The older half collapses into one system
    summary and the tail is kept minus its tool-role messages.
    """

    def __init__(self, budget: Budget):
        self.budget = budget

    def token_usage(self, messages: List[Message]) -> int:
        return estimate_history_tokens(messages)

    def needs_compaction(self, messages: List[Message], force: bool = False) -> bool:
        if not (self.budget.auto_compact or force):
            return False
        if self.token_usage(messages) > self.budget.token_threshold:
            return True
        return len(messages) > self.budget.max_messages

    def compact_if_needed(self, messages: List[Message]) -> List[Message]:
        if not self.needs_compaction(messages):
            return messages
        return self.compact(messages)

    def compact(self, messages: List[Message], strategy: str = "default") -> List[Message]:
        if strategy == "aggressive":
            result = self._compact_aggressive(messages)
        elif strategy == "smart":
            result = self._compact_smart(messages)
        else:
            result = self._compact_default(messages)
        if result is not messages:
            _log.info("Compacted history (%s): %d -> %d messages",
                      strategy, len(messages), len(result))
        return result

    def _compact_default(self, messages: List[Message]) -> List[Message]:
        total = len(messages)
        if total <= MIN_COMPACTABLE:
            return messages

        compacted = [messages[0]]
        summary = self.summarize(messages[1:total // 2])
        if summary is not None:
            compacted.append(summary)

        recent_start = max(total // 2, total - self.budget.max_messages // 2)
        compacted.extend(m for m in messages[recent_start:] if m.role != TOOL)
        return compacted

    def _compact_aggressive(self, messages: List[Message]) -> List[Message]:
        if len(messages) <= 5:
            return messages
        return [messages[0]] + list(messages[-4:])

    def _compact_smart(self, messages: List[Message]) -> List[Message]:
        """Keep tool exchanges, messages mentioning errors, and the last ten."""
        total = len(messages)
        if total <= MIN_COMPACTABLE:
            return messages
        compacted = [messages[0]]
        i = 1
        while i < total:
            msg = messages[i]
            lowered = (msg.content or "").lower()
            if msg.tool_calls:
                compacted.append(msg)
                while i + 1 < total and messages[i + 1].role == TOOL:
                    compacted.append(messages[i + 1])
                    i += 1
            elif msg.role != TOOL and ("error" in lowered or "important" in lowered):
                compacted.append(msg)
            elif i >= total - 10:
                compacted.append(msg)
            i += 1
        return compacted

    @staticmethod
    def summarize(messages: List[Message]) -> Optional[Message]:
        if not messages:
            return None

        lines = [SUMMARY_HEADER]
        user_count = assistant_count = tool_call_count = 0
        for msg in messages:
            if msg.role == USER:
                user_count += 1
                if user_count <= EXCERPT_USER_MESSAGES:
                    text = msg.content or ""
                    if len(text) > EXCERPT_CHARS:
                        text = text[:EXCERPT_CHARS] + "..."
                    lines.append(f"- User: {text}\n")
            elif msg.role == ASSISTANT:
                assistant_count += 1
                tool_call_count += len(msg.tool_calls)

        lines.append("\nSummary statistics:\n")
        lines.append(f"- {user_count} user messages, {assistant_count} assistant responses, "
                     f"{tool_call_count} tool calls executed")
        return Message.system("".join(lines))
