"""Structured error types for the agent system."""


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


class ConfigError(AgentError):
    """Missing or invalid configuration. Fatal at startup."""
    pass


class TransportError(AgentError):
    """Dispatch failure, bad status, or a stream that broke mid-read."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class DecodeError(AgentError):
    """A single stream frame could not be decoded."""

    def __init__(self, message: str, frame: str = ""):
        self.frame = frame
        super().__init__(message)


class ToolError(AgentError):
    """Error raised during tool execution."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"{tool_name} error: {message}")


class ArgumentError(ToolError):
    """Tool arguments failed to parse or validate."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        self.detail = message
        AgentError.__init__(self, f"invalid arguments for {tool_name}: {message}")


class ShellBlockedError(AgentError):
    """Raised when a shell command is blocked by safety guards."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Blocked: {reason}")


class ShellTimeoutError(AgentError):
    """Raised when a shell command exceeds its timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g}s")
