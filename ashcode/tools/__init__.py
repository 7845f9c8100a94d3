"""Local tools the model can call."""

from .base import ToolResult
from .registry import ToolRegistry

__all__ = ["ToolRegistry", "ToolResult"]
