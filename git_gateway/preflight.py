"""HTTP(S) preflight probe for git remotes.

git has no non-interactive way to fail fast on bad HTTP credentials: left
alone it may block on a username/password prompt that nobody answers. The
probe below issues an authenticated GET against the discovery endpoints of
both the dumb and the smart HTTP protocol and converts any failure into a
:class:`~git_gateway.errors.ConnectivityError` before git is launched.

Uses httpx with an explicit proxy (or none) and ``trust_env=False`` so that
only the gateway's own proxy configuration applies.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlsplit, urlunsplit

import httpx

from git_gateway.constants import PREFLIGHT_USER_AGENT, get_preflight_timeout
from git_gateway.credentials import lookup_netrc
from git_gateway.errors import ConnectivityError
from git_gateway.models import Credential, ProxyConfig, UsernamePasswordCredential, describe_credential
from git_gateway.utils import log_debug, redact_url

ClientFactory = Callable[..., httpx.Client]

UPLOAD_PACK_QUERY = "service=git-upload-pack"


def strip_userinfo(url: str) -> tuple[str, tuple[str, str] | None]:
    """Split embedded ``user:password@`` from *url*.

    Returns:
        ``(url_without_userinfo, (user, password) or None)``
    """
    parts = urlsplit(url)
    if parts.username is None:
        return url, None
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    netloc = host if parts.port is None else f"{host}:{parts.port}"
    bare = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    if parts.password is None:
        return bare, None
    return bare, (unquote(parts.username), unquote(parts.password))


def candidate_urls(url: str) -> list[str]:
    """Discovery URLs probed for *url*, in order.

    Dumb HTTP first, then smart HTTP; when the URL lacks the ``.git``
    suffix the same two are repeated with the suffix appended.
    """
    base = url.rstrip("/")
    candidates = [
        f"{base}/info/refs",
        f"{base}/info/refs?{UPLOAD_PACK_QUERY}",
    ]
    if not base.endswith(".git"):
        candidates.append(f"{base}.git/info/refs")
        candidates.append(f"{base}.git/info/refs?{UPLOAD_PACK_QUERY}")
    return candidates


def select_proxy(host: str | None, proxy: ProxyConfig | None) -> httpx.Proxy | None:
    """Choose the proxy for a probe to *host*.

    Returns:
        ``None`` when no proxy is configured or *host* matches a no-proxy
        pattern, otherwise the configured proxy with its credentials.
    """
    if proxy is None or proxy.bypasses(host):
        return None
    return httpx.Proxy(proxy.proxy_url(), auth=proxy.proxy_auth())


class PreflightValidator:
    """Authenticated reachability check for HTTP(S) remotes.

    Args:
        proxy: Proxy configuration, or ``None`` for direct connections.
        netrc_path: Ambient per-host credential file.
        timeout: Per-request timeout in seconds.
        verify_ssl: Verify TLS certificates.
        client_factory: Builds the ``httpx.Client``; overridable for tests.
    """

    def __init__(
        self,
        *,
        proxy: ProxyConfig | None = None,
        netrc_path: Path | None = None,
        timeout: float | None = None,
        verify_ssl: bool = True,
        client_factory: ClientFactory = httpx.Client,
    ) -> None:
        self.proxy = proxy
        self.netrc_path = netrc_path
        self.timeout = timeout if timeout is not None else get_preflight_timeout()
        self.verify_ssl = verify_ssl
        self.client_factory = client_factory

    def resolve_auth(self, url: str, credential: Credential | None) -> httpx.BasicAuth | None:
        """Pick the basic-auth pair for *url*.

        Order: explicit username/password credential, credentials embedded in
        the URL, the netrc entry for the host, then none.
        """
        if isinstance(credential, UsernamePasswordCredential):
            return httpx.BasicAuth(credential.username, credential.password.get_secret_value())
        _, embedded = strip_userinfo(url)
        if embedded is not None:
            return httpx.BasicAuth(*embedded)
        found = lookup_netrc(urlsplit(url).hostname, self.netrc_path)
        if found is not None:
            return httpx.BasicAuth(*found)
        return None

    def client_options(self, url: str, credential: Credential | None) -> dict[str, Any]:
        """Keyword arguments for the probe's ``httpx.Client``."""
        return {
            "auth": self.resolve_auth(url, credential),
            "proxy": select_proxy(urlsplit(url).hostname, self.proxy),
            "timeout": self.timeout,
            "verify": self.verify_ssl,
            "follow_redirects": True,
            "trust_env": False,
            "headers": {"User-Agent": PREFLIGHT_USER_AGENT},
        }

    def check(self, url: str, credential: Credential | None = None) -> None:
        """Probe *url* and raise if it is not reachable with *credential*.

        Raises:
            ConnectivityError: If no candidate answered HTTP 200, a transport
                error occurred, or the URL is invalid.
        """
        shown = redact_url(url)
        suffix = ""
        if credential is not None:
            suffix = f" using credentials {describe_credential(credential)}"

        try:
            options = self.client_options(url, credential)
        except (ValueError, httpx.InvalidURL) as exc:
            raise ConnectivityError(f"Invalid URL {shown}") from exc

        bare, _ = strip_userinfo(url)
        status = 0
        try:
            with self.client_factory(**options) as client:
                for candidate in candidate_urls(bare):
                    response = client.get(candidate)
                    status = response.status_code
                    log_debug(f"preflight {redact_url(candidate)} -> {status}")
                    if status == 200:
                        return
        except httpx.InvalidURL as exc:
            raise ConnectivityError(f"Invalid URL {shown}") from exc
        except httpx.HTTPError as exc:
            raise ConnectivityError(
                f"Failed to connect to {shown}{suffix} ({exc.__class__.__name__}: {exc})"
            ) from exc

        raise ConnectivityError(f"Failed to connect to {shown}{suffix} (status = {status})")
