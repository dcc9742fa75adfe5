"""Credential binding table and ambient netrc lookup.

The :class:`CredentialStore` maps exact remote URL strings to credentials,
with one optional default used when no URL matches. It is read concurrently
by executions and mutated only through the administrative ``add``/``clear``
calls.
"""

from __future__ import annotations

import netrc
import threading
from pathlib import Path

from git_gateway.models import Credential
from git_gateway.utils import log_debug, log_warn


class CredentialStore:
    """URL -> credential bindings plus a fallback default."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bindings: dict[str, Credential] = {}
        self._default: Credential | None = None

    def add(self, url: str, credential: Credential) -> None:
        """Bind *credential* to the exact remote URL string *url*."""
        with self._lock:
            self._bindings[url] = credential

    def add_default(self, credential: Credential | None) -> None:
        """Set the credential used when no URL binding matches."""
        with self._lock:
            self._default = credential

    def clear(self) -> None:
        """Remove every binding, including the default."""
        with self._lock:
            self._bindings.clear()
            self._default = None

    def lookup(self, url: str) -> Credential | None:
        """Return the credential bound to *url*, else the default, else None."""
        with self._lock:
            credential = self._bindings.get(url)
            if credential is None:
                credential = self._default
            return credential

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._bindings

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)


def lookup_netrc(host: str | None, path: Path | None) -> tuple[str, str] | None:
    """Find the login/password for *host* in a netrc file.

    A missing or unparsable file is treated as "no entry"; the probe then
    proceeds without authentication.

    Args:
        host: Remote host name.
        path: netrc file location.

    Returns:
        ``(login, password)`` or ``None``.
    """
    if not host or path is None or not path.is_file():
        return None
    try:
        entries = netrc.netrc(str(path))
    except (netrc.NetrcParseError, OSError) as exc:
        log_warn(f"Ignoring unreadable netrc file {path}: {exc.__class__.__name__}")
        return None

    auth = entries.authenticators(host)
    if auth is None:
        return None
    login, _account, password = auth
    if not login or password is None:
        return None
    log_debug(f"Using netrc credentials for {host}")
    return login, password
