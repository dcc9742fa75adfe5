"""Configuration defaults for git-gateway.

Every default can be overridden from the environment so that a hosting
process can tune the gateway without code changes. Values are read at call
time, not import time, so tests can patch ``os.environ``.
"""

from __future__ import annotations

import os
from pathlib import Path


def _env_int(key: str, default: int) -> int:
    """Read an integer from an environment variable, returning default on parse failure."""
    try:
        return int(os.environ.get(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_bool(key: str, default: bool = False) -> bool:
    """Read a boolean flag (``1``/``true``/``yes``) from an environment variable."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


# ============================================================================
# Executable & Timeouts
# ============================================================================

DEFAULT_GIT_EXE: str = "git"
"""Git executable used when GIT_GATEWAY_GIT is not set."""

DEFAULT_TIMEOUT_MINUTES: int = 10
"""Wall-clock bound for a single git invocation."""

DEFAULT_PREFLIGHT_TIMEOUT: int = 30
"""Timeout in seconds for each HTTP preflight probe request."""

PREFLIGHT_USER_AGENT: str = "git/1.7.0"
"""User-Agent sent by the preflight probe; some servers gate smart-HTTP on it."""

UNIX_ASKPASS_STUB: str = "/bin/echo"
"""GIT_ASKPASS fallback that answers every prompt with an empty line."""

WINDOWS_ASKPASS_STUB: str = "echo "

MASK: str = "******"
"""Replacement text for sensitive tokens in human-readable output."""


def get_git_exe() -> str:
    """Get the git executable from environment.

    Returns:
        Executable name or path (default: "git")
    """
    return os.environ.get("GIT_GATEWAY_GIT") or DEFAULT_GIT_EXE


def get_command_timeout() -> float:
    """Get the per-command timeout in seconds.

    Reads GIT_GATEWAY_TIMEOUT_MINUTES (default 10).

    Returns:
        Timeout in seconds
    """
    return float(_env_int("GIT_GATEWAY_TIMEOUT_MINUTES", DEFAULT_TIMEOUT_MINUTES) * 60)


def get_preflight_timeout() -> float:
    """Get the preflight probe timeout in seconds."""
    return float(_env_int("GIT_GATEWAY_PREFLIGHT_TIMEOUT", DEFAULT_PREFLIGHT_TIMEOUT))


def get_verify_ssl() -> bool:
    """Whether the preflight probe verifies TLS certificates.

    GIT_GATEWAY_UNTRUSTED_SSL=1 disables verification.
    """
    return not _env_bool("GIT_GATEWAY_UNTRUSTED_SSL")


def get_secrets_dir() -> Path | None:
    """Directory for transient secret files.

    Respects GIT_GATEWAY_SECRETS_DIR. ``None`` means the system temp dir.
    """
    raw = os.environ.get("GIT_GATEWAY_SECRETS_DIR")
    return Path(raw) if raw else None


def get_netrc_path() -> Path:
    """Location of the ambient per-host credential file.

    Respects NETRC, otherwise ``~/.netrc`` (``~/_netrc`` on Windows).
    """
    raw = os.environ.get("NETRC")
    if raw:
        return Path(raw)
    name = "_netrc" if os.name == "nt" else ".netrc"
    return Path.home() / name


def get_gateway_debug() -> int:
    """Get GIT_GATEWAY_DEBUG flag from environment.

    Returns:
        1 if enabled, 0 if disabled (default)
    """
    return _env_int("GIT_GATEWAY_DEBUG", 0)
