"""Process launcher: run one external command with a wall-clock bound.

The launcher never raises on a non-zero exit status; it reports the
status in :class:`ProcessResult` and leaves the decision to the caller.
On timeout the whole child process group is killed before returning.
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from git_gateway.utils import log_debug


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a single process launch."""

    argv: tuple[str, ...]
    returncode: int | None
    """Exit status, ``None`` when the process was killed on timeout."""
    stdout: str
    stderr: str
    elapsed: float
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0


def _kill_process_tree(proc: subprocess.Popen[bytes]) -> None:
    """Forcibly terminate *proc* and everything in its process group."""
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            # Group already gone or not ours; fall back to the direct child
            pass
    try:
        proc.kill()
    except ProcessLookupError:
        pass


def run_process(
    argv: Sequence[str],
    work_dir: str | Path | None,
    env: dict[str, str],
    timeout: float,
) -> ProcessResult:
    """Run *argv* and capture stdout and stderr separately.

    Args:
        argv: Complete command line, executable first.
        work_dir: Working directory, or ``None`` for the current directory.
        env: Complete environment for the child (not a delta).
        timeout: Wall-clock bound in seconds.

    Returns:
        The captured result. ``timed_out`` is set if the bound was hit.

    Raises:
        OSError: If the process could not be started.
    """
    cmd = list(argv)
    start = time.monotonic()

    # A fresh session makes the child a group leader so a timeout can
    # kill helpers it spawned (ssh, credential helpers, remote-https).
    proc = subprocess.Popen(
        cmd,
        cwd=str(work_dir) if work_dir is not None else None,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        start_new_session=(os.name == "posix"),
    )

    timed_out = False
    try:
        out, err = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_tree(proc)
        out, err = proc.communicate()
    except BaseException:
        _kill_process_tree(proc)
        proc.wait()
        raise

    elapsed = time.monotonic() - start
    log_debug(f"process {proc.pid} finished in {elapsed:.2f}s (timed_out={timed_out})")

    return ProcessResult(
        argv=tuple(cmd),
        returncode=None if timed_out else proc.returncode,
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
        elapsed=elapsed,
        timed_out=timed_out,
    )
