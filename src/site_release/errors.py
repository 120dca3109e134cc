"""Error taxonomy shared by every release stage."""

from __future__ import annotations

from typing import Optional, Sequence


class ReleaseError(RuntimeError):
    """Base class for failures that abort the current stage."""


class ConfigurationError(ReleaseError):
    """Missing or invalid input, detected before any I/O."""

    def __init__(self, message: str, missing: Optional[Sequence[str]] = None) -> None:
        self.missing = list(missing or [])
        if self.missing:
            message = f"{message}: {', '.join(self.missing)}"
        super().__init__(message)


class ToolExecutionError(ReleaseError):
    """Raised when an engine command exits outside its documented codes."""

    def __init__(self, command: Sequence[str], exit_code: int, stderr: str, stdout: str = "") -> None:
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        detail = stderr.strip() or stdout.strip() or "no output captured"
        super().__init__(f"Command {' '.join(self.command)} failed with exit code {exit_code}: {detail}")


class OutputParseError(ToolExecutionError):
    """Raised when the engine's structured output cannot be parsed."""

    def __init__(self, command: Sequence[str], reason: str, stdout: str = "") -> None:
        super().__init__(command, 0, f"unparseable output ({reason})", stdout)


class EngineBusyError(ReleaseError):
    """Raised when a second engine command overlaps a running one."""


class TransferError(ReleaseError):
    """A single file failed to upload; the sync run is aborted."""

    def __init__(self, key: str, cause: object) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"Failed to upload {key}: {cause}")


class InvalidationError(ReleaseError):
    """The CDN rejected or failed an invalidation request."""


class NetworkError(ReleaseError):
    """A health probe could not get a response.

    The probe records these on a failed result instead of propagating them.
    """

    def __init__(self, url: str, reason: str, elapsed_ms: int) -> None:
        self.url = url
        self.reason = reason
        self.elapsed_ms = elapsed_ms
        super().__init__(reason)


class UserAbort(Exception):
    """The operator declined or interrupted a destructive action."""
