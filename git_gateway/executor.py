"""Execution orchestrator: provision, preflight, launch, always tear down.

SECURITY-CRITICAL: :meth:`GitExecutor.execute` wraps provisioning,
preflight and launch in a single ``try``/``finally`` so that every
transient secret file is deleted on every exit path (success, failure,
timeout, setup error halfway through provisioning, or an unexpected
exception).

State machine per call::

    BUILD_ENV -> (PREFLIGHT if http/https) -> LAUNCH -> CLEANUP (always) -> RETURN
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

from git_gateway.argv import ArgumentVector
from git_gateway.constants import UNIX_ASKPASS_STUB, WINDOWS_ASKPASS_STUB
from git_gateway.credentials import CredentialStore
from git_gateway.errors import CommandError, CommandTimeoutError
from git_gateway.launcher import ProcessResult, run_process
from git_gateway.models import Credential, GatewayConfig
from git_gateway.preflight import PreflightValidator
from git_gateway.provisioner import (
    CredentialProvisioner,
    TransientSecretSet,
    is_http_url,
)
from git_gateway.utils import log_debug, log_error, redact_url, redact_values

Launcher = Callable[..., ProcessResult]
"""Signature of :func:`run_process`: ``(argv, work_dir, env, timeout)``."""


class GitExecutor:
    """Runs git commands with per-call, self-erasing credentials.

    Args:
        config: Immutable gateway configuration.
        credentials: URL -> credential bindings used by :meth:`execute_bound`.
        launcher: Process launcher (defaults to :func:`run_process`).
        validator: HTTP preflight validator (built from *config* if omitted).
        provisioner: Credential provisioner (built from *config* if omitted).
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        credentials: CredentialStore | None = None,
        *,
        launcher: Launcher = run_process,
        validator: PreflightValidator | None = None,
        provisioner: CredentialProvisioner | None = None,
    ) -> None:
        self.config = config or GatewayConfig()
        self.credentials = credentials if credentials is not None else CredentialStore()
        self._launcher = launcher
        self.validator = validator or PreflightValidator(
            proxy=self.config.proxy,
            netrc_path=self.config.netrc_path,
            timeout=self.config.preflight_timeout,
            verify_ssl=self.config.verify_ssl,
        )
        self.provisioner = provisioner or CredentialProvisioner(
            is_windows=self.config.is_windows,
            secrets_dir=self.config.secrets_dir,
        )
        self._extra_env: dict[str, str | None] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def args(self, *tokens: str) -> ArgumentVector:
        """New argument vector quoted for this executor's platform."""
        return ArgumentVector(*tokens, is_windows=self.config.is_windows)

    def env(self, name: str, value: str | None) -> None:
        """Set (or, with ``None``, remove) an environment variable for every later command."""
        self._extra_env[name] = value

    def _base_env(self) -> dict[str, str]:
        env = self.config.base_environment()
        for name, value in self._extra_env.items():
            if value is None:
                env.pop(name, None)
            else:
                env[name] = value
        return env

    def _finalize_env(self, env: dict[str, str]) -> dict[str, str]:
        final = dict(env)
        if "SSH_ASKPASS" not in final:
            # GIT_ASKPASS supersedes SSH_ASKPASS, so only stub it when no
            # SSH passphrase responder is in place.
            final["GIT_ASKPASS"] = WINDOWS_ASKPASS_STUB if self.config.is_windows else UNIX_ASKPASS_STUB
        return final

    @staticmethod
    def _as_vector(argv: ArgumentVector | Sequence[str], is_windows: bool) -> ArgumentVector:
        if isinstance(argv, ArgumentVector):
            return argv.copy()
        return ArgumentVector(*argv, is_windows=is_windows)

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    def _launch(
        self,
        args: ArgumentVector,
        work_dir: str | Path | None,
        env: dict[str, str],
    ) -> ProcessResult:
        """Launch ``git <args>`` and convert spawn errors and timeouts."""
        command = "git " + args.to_display_string()
        cmd = [self.config.git_exe, *args.to_command_array()]
        log_debug(f"running {command} in {work_dir or '.'}")
        try:
            result = self._launcher(cmd, work_dir, self._finalize_env(env), self.config.timeout)
        except OSError as exc:
            raise CommandError(
                f"Error performing command: {command}: {exc.strerror or exc}",
                command=command,
            ) from exc

        if result.timed_out:
            stdout, stderr = self._redacted_output(args, result)
            raise CommandTimeoutError(
                f'Command "{command}" timed out after {self.config.timeout:g}s',
                timeout=self.config.timeout,
                command=command,
                stdout=stdout,
                stderr=stderr,
            )
        return result

    @staticmethod
    def _redacted_output(args: ArgumentVector, result: ProcessResult) -> tuple[str, str]:
        secrets = args.masked_values()
        return (
            redact_values(redact_url(result.stdout), secrets),
            redact_values(redact_url(result.stderr), secrets),
        )

    def _check(self, args: ArgumentVector, result: ProcessResult) -> str:
        if result.returncode == 0:
            return result.stdout
        command = "git " + args.to_display_string()
        stdout, stderr = self._redacted_output(args, result)
        raise CommandError(
            f'Command "{command}" returned status code {result.returncode}:\n'
            f"stdout: {stdout}\nstderr: {stderr}",
            command=command,
            returncode=result.returncode,
            stdout=stdout,
            stderr=stderr,
        )

    def run(
        self,
        argv: ArgumentVector | Sequence[str],
        work_dir: str | Path | None = None,
    ) -> ProcessResult:
        """Run git without credentials and return the raw result.

        Non-zero exit codes are not raised, for callers that treat a
        specific status as a legitimate answer.

        Raises:
            CommandError: If git could not be started.
            CommandTimeoutError: If the command exceeded the timeout.
        """
        args = self._as_vector(argv, self.config.is_windows)
        return self._launch(args, work_dir, self._base_env())

    def launch(
        self,
        argv: ArgumentVector | Sequence[str],
        work_dir: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> str:
        """Run git without credentials and return stdout.

        Raises:
            CommandError: On non-zero exit or spawn failure.
            CommandTimeoutError: If the command exceeded the timeout.
        """
        args = self._as_vector(argv, self.config.is_windows)
        result = self._launch(args, work_dir, env if env is not None else self._base_env())
        return self._check(args, result)

    def _run_git_config(self, tokens: list[str], work_dir: Path) -> str:
        return self.launch(self.args(*tokens), work_dir)

    # ------------------------------------------------------------------
    # Credential-scoped execution
    # ------------------------------------------------------------------

    def execute(
        self,
        argv: ArgumentVector | Sequence[str],
        work_dir: str | Path | None = None,
        url: str | None = None,
        credential: Credential | None = None,
    ) -> str:
        """Run a git command with *credential* scoped to this call only.

        Args:
            argv: git sub-command and arguments (without the executable).
            work_dir: Working directory, or ``None``.
            url: Remote URL the command talks to, if any.
            credential: Credential for *url*, or ``None``.

        Returns:
            Captured stdout.

        Raises:
            SetupError: Credential artifacts could not be created.
            ConnectivityError: HTTP(S) preflight failed.
            CommandError: git exited non-zero or could not be started.
            CommandTimeoutError: git exceeded the configured timeout.
        """
        args = self._as_vector(argv, self.config.is_windows)
        wd = Path(work_dir) if work_dir is not None else None
        secrets = TransientSecretSet()
        attached_to: Path | None = None
        base_env = self._base_env()

        try:
            provisioned = self.provisioner.materialize(credential, url, secrets, base_env)

            if url is not None and is_http_url(url):
                self.validator.check(url, credential)

            store = provisioned.credential_store
            if store is not None:
                if wd is not None:
                    self.provisioner.attach_credential_store(store, wd, self._run_git_config)
                    attached_to = wd
                else:
                    # No working copy to configure: scope the helper to this
                    # one command line instead.
                    args.prepend(
                        "-c", "credential.helper=",
                        "-c", f"credential.helper={self.provisioner.credential_helper_value(store)}",
                    )

            env = dict(base_env)
            env.update(provisioned.env_overlay)
            result = self._launch(args, wd, env)
            return self._check(args, result)
        finally:
            self._teardown(secrets, attached_to)

    def _teardown(self, secrets: TransientSecretSet, attached_to: Path | None) -> None:
        leftover = secrets.erase()
        for path in leftover:
            log_error(f"Could not delete transient credential file {path}")
        if attached_to is not None:
            self.provisioner.detach_credential_store(attached_to, self._run_git_config)

    def execute_bound(
        self,
        argv: ArgumentVector | Sequence[str],
        work_dir: str | Path | None,
        url: str,
    ) -> str:
        """Like :meth:`execute`, with the credential looked up for *url*."""
        return self.execute(argv, work_dir, url, self.credentials.lookup(url))
