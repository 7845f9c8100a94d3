"""Fixed-ratio token estimation."""

from typing import Iterable

from .messages import Message

CHARS_PER_TOKEN = 4


def estimate_history_tokens(messages: Iterable[Message]) -> int:
    """Rough token count: characters of text plus serialized tool calls over a constant ratio.

    Characters are summed across all messages before dividing, so many short
    messages still add up.
    """
    total = sum(m.char_count() for m in messages)
    return total // CHARS_PER_TOKEN
