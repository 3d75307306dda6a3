"""
Custom exception types for the urclient transport and execution pipeline.
Keep this focused and non-redundant; prefer built-ins where appropriate.
"""


class URConnectionError(ConnectionError):
    """Connect, read or write failure on a robot socket (refused, timed out, closed)."""


class ProtocolError(RuntimeError):
    """Malformed primary interface data (bad frame length, truncated sub-package)."""

    def __init__(self, message: str):
        self.original_message = message
        super().__init__(f"Protocol Error: {message}")

    def __str__(self):
        return f"Protocol Error: {self.original_message}"


class ExecutionInProgressError(RuntimeError):
    """Another script execution holds the coordinator lock."""


class PreconditionError(RuntimeError):
    """Robot state disallows the requested operation; nothing was sent."""


class ExecutionTimeoutError(TimeoutError):
    """The coordinator stopped waiting; the script may still be running on the robot."""

    def __init__(self, message: str):
        self.original_message = message
        super().__init__(f"{message} (script may still be executing; re-query robot state)")


class ScriptExecutionError(RuntimeError):
    """The controller reported a runtime exception while the script was executing."""


class DashboardCommandError(RuntimeError):
    """Empty or unexpected response line from the dashboard server."""
