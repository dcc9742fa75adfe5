"""Configuration loader for git-gateway.

Loads an optional YAML file into a validated :class:`GatewayConfig`.
Keys omitted from the file fall back to the environment-driven defaults in
``git_gateway.constants``; a missing ``proxy`` section falls back to
``HTTPS_PROXY``/``NO_PROXY``.

Example::

    git_exe: /usr/bin/git
    timeout_minutes: 5
    verify_ssl: true
    proxy:
      host: proxy.corp.example
      port: 3128
      username: builder
      no_proxy_hosts:
        - "*.corp.example"
        - localhost
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from git_gateway.errors import ConfigError
from git_gateway.models import GatewayConfig, ProxyConfig
from git_gateway.utils import log_debug

_ALLOWED_KEYS = frozenset({
    "git_exe",
    "timeout_minutes",
    "preflight_timeout",
    "verify_ssl",
    "proxy",
    "netrc_path",
    "secrets_dir",
    "environment",
})


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc.strerror or exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def build_gateway_config(data: dict[str, Any], environ: dict[str, str] | None = None) -> GatewayConfig:
    """Validate a raw mapping into a GatewayConfig.

    Args:
        data: Parsed configuration mapping.
        environ: Environment used for the proxy fallback (default: ``os.environ``).

    Raises:
        ConfigError: On unknown keys or invalid values.
    """
    unknown = set(data) - _ALLOWED_KEYS
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    fields: dict[str, Any] = {}
    for key in ("git_exe", "preflight_timeout", "verify_ssl", "netrc_path", "secrets_dir", "environment"):
        if key in data:
            fields[key] = data[key]

    if "timeout_minutes" in data:
        try:
            fields["timeout"] = float(data["timeout_minutes"]) * 60
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"timeout_minutes must be a number, got {data['timeout_minutes']!r}") from exc

    try:
        if "proxy" in data:
            if data["proxy"]:
                fields["proxy"] = ProxyConfig.model_validate(data["proxy"])
        else:
            fields["proxy"] = ProxyConfig.from_environment(environ)
        return GatewayConfig(**fields)
    except ValidationError as exc:
        # exc's own str() echoes input values, which may include a proxy password
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '(root)'}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigError(f"Invalid gateway configuration: {problems}") from None


def load_gateway_config(path: str | Path | None = None) -> GatewayConfig:
    """Load gateway configuration from *path*.

    Args:
        path: YAML file. ``None`` or a missing file yields the defaults.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    data: dict[str, Any] = {}
    if path is not None:
        p = Path(path).expanduser()
        if p.exists():
            data = _read_yaml(p)
            log_debug(f"Loaded gateway config from {p}")
        else:
            log_debug(f"Config file {p} not found; using defaults")
    return build_gateway_config(data)
