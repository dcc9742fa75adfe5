from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Annotated, Literal, Union
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from git_gateway.constants import (
    get_command_timeout,
    get_git_exe,
    get_netrc_path,
    get_preflight_timeout,
    get_secrets_dir,
    get_verify_ssl,
)


# ============================================================================
# Credentials
# ============================================================================


class UsernamePasswordCredential(BaseModel):
    """Username and password (or token) for HTTP(S) remotes.

    Immutable; the password is held as a ``SecretStr`` so that ``repr()``
    and validation errors never reveal it.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["username_password"] = "username_password"

    username: str
    """Account name sent with basic authentication."""

    password: SecretStr
    """Password or access token."""

    description: str = ""
    """Human-readable label, safe to show in error messages."""

    def describe(self) -> str:
        return self.description or self.username


class SSHPrivateKeyCredential(BaseModel):
    """One or more SSH private keys plus an optional passphrase."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ssh_private_key"] = "ssh_private_key"

    username: str = "git"
    """Remote account name (informational; the URL decides the login)."""

    private_keys: list[str] = Field(min_length=1)
    """PEM/OpenSSH key blocks, written to the key file in order."""

    passphrase: SecretStr | None = None
    """Passphrase answered by the askpass responder."""

    description: str = ""
    """Human-readable label, safe to show in error messages."""

    def describe(self) -> str:
        return self.description or f"SSH key for {self.username}"


Credential = Annotated[
    Union[UsernamePasswordCredential, SSHPrivateKeyCredential],
    Field(discriminator="kind"),
]
"""Tagged union of supported credential variants. ``None`` means no credential."""


def describe_credential(credential: Credential | None) -> str:
    """Return the non-secret description of *credential* (empty for ``None``)."""
    if credential is None:
        return ""
    return credential.describe()


# ============================================================================
# Proxy
# ============================================================================


class ProxyConfig(BaseModel):
    """Outbound HTTP proxy used by the preflight probe."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(gt=0, lt=65536)
    username: str | None = None
    password: SecretStr | None = None

    no_proxy_hosts: list[str] = Field(default_factory=list)
    """Glob patterns (``*.corp.example``) of hosts reached directly."""

    @field_validator("no_proxy_hosts")
    @classmethod
    def _normalize_patterns(cls, value: list[str]) -> list[str]:
        return [p.strip().lower() for p in value if p.strip()]

    def bypasses(self, host: str | None) -> bool:
        """Return True if *host* matches any no-proxy pattern."""
        if not host:
            return False
        host = host.lower()
        return any(fnmatch.fnmatchcase(host, pattern) for pattern in self.no_proxy_hosts)

    def proxy_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def proxy_auth(self) -> tuple[str, str] | None:
        if self.username is not None and self.password is not None:
            return (self.username, self.password.get_secret_value())
        return None

    @classmethod
    def from_environment(cls, environ: dict[str, str] | None = None) -> ProxyConfig | None:
        """Build a ProxyConfig from HTTPS_PROXY / HTTP_PROXY / NO_PROXY.

        A leading ``.`` in a NO_PROXY entry matches every subdomain.

        Returns:
            The proxy configuration, or ``None`` if no proxy is set.
        """
        env = os.environ if environ is None else environ
        raw = ""
        for key in ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy"):
            if env.get(key):
                raw = env[key]
                break
        if not raw:
            return None

        parts = urlsplit(raw if "://" in raw else f"http://{raw}")
        if not parts.hostname:
            return None

        patterns: list[str] = []
        no_proxy = env.get("NO_PROXY") or env.get("no_proxy") or ""
        for entry in no_proxy.split(","):
            entry = entry.strip()
            if not entry:
                continue
            if entry.startswith("."):
                patterns.append(f"*{entry}")
            else:
                patterns.append(entry)

        return cls(
            host=parts.hostname,
            port=parts.port or 80,
            username=parts.username,
            password=SecretStr(parts.password) if parts.password else None,
            no_proxy_hosts=patterns,
        )


# ============================================================================
# Gateway configuration
# ============================================================================


class GatewayConfig(BaseModel):
    """Immutable per-executor configuration.

    Defaults come from the environment (see ``git_gateway.constants``).
    """

    model_config = ConfigDict(frozen=True)

    git_exe: str = Field(default_factory=get_git_exe)
    """Git executable name or path."""

    timeout: float = Field(default_factory=get_command_timeout, gt=0)
    """Wall-clock bound in seconds for one git invocation."""

    preflight_timeout: float = Field(default_factory=get_preflight_timeout, gt=0)
    """Timeout in seconds for each preflight HTTP request."""

    verify_ssl: bool = Field(default_factory=get_verify_ssl)
    """Verify TLS certificates during preflight."""

    proxy: ProxyConfig | None = None
    """Proxy for preflight probes; ``None`` means direct connections."""

    netrc_path: Path | None = Field(default_factory=get_netrc_path)
    """Ambient per-host credential file consulted when no credential is bound."""

    secrets_dir: Path | None = Field(default_factory=get_secrets_dir)
    """Where transient secret files are created (``None``: system temp dir)."""

    environment: dict[str, str] | None = None
    """Base environment for git; ``None`` uses the current process environment."""

    is_windows: bool = Field(default_factory=lambda: os.name == "nt")
    """Target platform for script generation and argument quoting."""

    def base_environment(self) -> dict[str, str]:
        """Return a fresh copy of the base environment map."""
        if self.environment is None:
            return dict(os.environ)
        return dict(self.environment)
