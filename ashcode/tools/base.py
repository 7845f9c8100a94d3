"""Shared tool result type and output helpers."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ToolResult:
    output: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, output: str, error: Optional[str] = None) -> "ToolResult":
        return cls(output=output, error=error or output)


def truncate_output(data: bytes, limit: int) -> str:
    """Decode ``data`` and cap it at ``limit`` bytes with a trailing marker."""
    if len(data) > limit:
        text = data[:limit].decode("utf-8", errors="replace")
        return text + f"\n\n[Output truncated at {limit} bytes]"
    return data.decode("utf-8", errors="replace")
