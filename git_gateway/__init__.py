"""git-gateway - credential-scoped execution of the git command-line tool."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("git-gateway")
except PackageNotFoundError:
    __version__ = "0.4.0"  # fallback for editable installs / dev
