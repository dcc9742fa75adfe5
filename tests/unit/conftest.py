"""
Pytest configuration for unit tests.

Provides a recording fake of the process launcher plus a gateway
configuration whose secret files land in a per-test directory, so tests
can observe exactly which transient files exist while git "runs".
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from git_gateway.launcher import ProcessResult
from git_gateway.models import GatewayConfig
from git_gateway.utils import get_logger


@dataclass
class LaunchCall:
    argv: list[str]
    work_dir: object
    env: dict[str, str]
    timeout: float
    secret_files: list[str] = field(default_factory=list)
    """Names of the files present in the secrets dir during the call."""


class RecordingLauncher:
    """Fake ``run_process`` that records calls and replays queued outcomes.

    Unqueued calls succeed with empty output.
    """

    def __init__(self, secrets_dir: Path | None = None) -> None:
        self.secrets_dir = secrets_dir
        self.calls: list[LaunchCall] = []
        self._outcomes: list[object] = []

    def queue(
        self,
        returncode: int | None = 0,
        stdout: str = "",
        stderr: str = "",
        *,
        timed_out: bool = False,
    ) -> RecordingLauncher:
        self._outcomes.append((returncode, stdout, stderr, timed_out))
        return self

    def queue_error(self, exc: BaseException) -> RecordingLauncher:
        self._outcomes.append(exc)
        return self

    def __call__(self, argv, work_dir, env, timeout) -> ProcessResult:
        present = []
        if self.secrets_dir is not None and self.secrets_dir.is_dir():
            present = sorted(p.name for p in self.secrets_dir.iterdir())
        self.calls.append(LaunchCall(list(argv), work_dir, dict(env), timeout, present))

        outcome = self._outcomes.pop(0) if self._outcomes else (0, "", "", False)
        if isinstance(outcome, BaseException):
            raise outcome
        returncode, stdout, stderr, timed_out = outcome
        return ProcessResult(
            argv=tuple(argv),
            returncode=None if timed_out else returncode,
            stdout=stdout,
            stderr=stderr,
            elapsed=0.01,
            timed_out=timed_out,
        )

    @property
    def commands(self) -> list[list[str]]:
        """argv of each call without the executable."""
        return [c.argv[1:] for c in self.calls]


@pytest.fixture
def secrets_dir(tmp_path):
    return tmp_path / "secrets"


@pytest.fixture
def gateway_config(secrets_dir):
    """POSIX gateway configuration with no proxy and no netrc."""
    return GatewayConfig(
        git_exe="git",
        timeout=60,
        preflight_timeout=5,
        verify_ssl=True,
        proxy=None,
        netrc_path=None,
        secrets_dir=secrets_dir,
        environment={"PATH": os.environ.get("PATH", ""), "LANG": "C"},
        is_windows=False,
    )


@pytest.fixture
def launcher(secrets_dir):
    return RecordingLauncher(secrets_dir)


def secret_files(directory: Path) -> list[Path]:
    """Files currently present in *directory* (empty if it does not exist)."""
    if not directory.is_dir():
        return []
    return sorted(directory.iterdir())


@pytest.fixture
def list_secret_files():
    return secret_files


@pytest.fixture(autouse=True)
def _restore_log_streams():
    """Undo ``log_to_stderr()`` calls made by ``main()`` under test."""
    saved = [(h, h.stream) for h in get_logger().handlers if hasattr(h, "setStream")]
    yield
    for handler, stream in saved:
        # Assign directly: setStream() would flush the current stream, which
        # may be a capture stream pytest has already closed.
        handler.stream = stream
