"""Exception hierarchy for git-gateway.

Provides a structured exception tree so callers can catch broad
categories (``GatewayError``) or specific failure modes.

This module is a base-layer module: it must NOT import from any
other ``git_gateway`` submodule.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for all git-gateway errors."""


class ConfigError(GatewayError):
    """Invalid or unreadable gateway configuration."""


class SetupError(GatewayError):
    """Credential artifacts could not be materialized before launch."""


class ConnectivityError(GatewayError):
    """The HTTP preflight probe could not reach the remote."""


class ParseError(GatewayError):
    """Output of a git command did not match the expected grammar."""


class CommandError(GatewayError):
    """The external git process failed.

    Attributes:
        command: Redacted, human-readable command line.
        returncode: Exit status, or ``None`` if the process never started.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class CommandTimeoutError(CommandError):
    """The external git process exceeded its wall-clock bound and was killed."""

    def __init__(
        self,
        message: str,
        *,
        timeout: float,
        command: str = "",
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(
            message, command=command, returncode=None, stdout=stdout, stderr=stderr
        )
        self.timeout = timeout


class TeardownWarning(UserWarning):
    """Cleanup of a secondary artifact failed after the secret was removed."""
