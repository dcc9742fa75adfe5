"""Click-based CLI entrypoint for git-gateway.

Secrets are never accepted as command-line options: passwords and
passphrases are read from ``GIT_GATEWAY_PASSWORD`` and
``GIT_GATEWAY_PASSPHRASE``.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click
from pydantic import SecretStr

from git_gateway.config import load_gateway_config
from git_gateway.errors import CommandError, GatewayError
from git_gateway.executor import GitExecutor
from git_gateway.models import Credential, SSHPrivateKeyCredential, UsernamePasswordCredential
from git_gateway.porcelain import GitClient
from git_gateway.utils import log_to_stderr, redact_url


def _build_credential(username: str | None, ssh_key: Path | None) -> Credential | None:
    """Assemble a credential from CLI options plus secrets in the environment."""
    if ssh_key is not None:
        try:
            material = ssh_key.read_text(encoding="utf-8")
        except OSError as exc:
            raise click.BadParameter(
                f"cannot read {ssh_key}: {exc.strerror}", param_hint="--ssh-key"
            ) from exc
        passphrase = os.environ.get("GIT_GATEWAY_PASSPHRASE")
        return SSHPrivateKeyCredential(
            username=username or "git",
            private_keys=[material],
            passphrase=SecretStr(passphrase) if passphrase else None,
            description=f"SSH key {ssh_key.name}",
        )
    if username is not None:
        password = os.environ.get("GIT_GATEWAY_PASSWORD")
        if password is None:
            raise click.UsageError("--username requires GIT_GATEWAY_PASSWORD to be set")
        return UsernamePasswordCredential(username=username, password=SecretStr(password))
    return None


def _executor(ctx: click.Context) -> GitExecutor:
    return GitExecutor(load_gateway_config(ctx.obj.get("config_path")))


# ---------------------------------------------------------------------------
# Main CLI Group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="GIT_GATEWAY_CONFIG",
    default=None,
    help="YAML configuration file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """git-gateway - run git with per-call, self-erasing credentials."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command("exec", context_settings={"ignore_unknown_options": True})
@click.option("--url", default=None, help="Remote URL the command talks to.")
@click.option(
    "--cwd",
    "work_dir",
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    default=None,
    help="Working directory.",
)
@click.option("--username", default=None, help="HTTP username (password from GIT_GATEWAY_PASSWORD).")
@click.option(
    "--ssh-key",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=None,
    help="SSH private key file (passphrase from GIT_GATEWAY_PASSPHRASE).",
)
@click.argument("git_args", nargs=-1, type=click.UNPROCESSED, required=True)
@click.pass_context
def exec_cmd(
    ctx: click.Context,
    url: str | None,
    work_dir: Path | None,
    username: str | None,
    ssh_key: Path | None,
    git_args: tuple[str, ...],
) -> None:
    """Run a git command, e.g. ``git-gateway exec --url URL -- fetch URL``."""
    credential = _build_credential(username, ssh_key)
    output = _executor(ctx).execute(list(git_args), work_dir, url, credential)
    click.echo(output, nl=False)


@cli.command("ls-remote")
@click.argument("url")
@click.option("--username", default=None, help="HTTP username (password from GIT_GATEWAY_PASSWORD).")
@click.option(
    "--ssh-key",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=None,
    help="SSH private key file (passphrase from GIT_GATEWAY_PASSPHRASE).",
)
@click.pass_context
def ls_remote(ctx: click.Context, url: str, username: str | None, ssh_key: Path | None) -> None:
    """List the heads of a remote repository."""
    executor = _executor(ctx)
    credential = _build_credential(username, ssh_key)
    if credential is not None:
        executor.credentials.add(url, credential)
    heads = GitClient(executor, Path.cwd()).get_head_revs(url)
    for ref, sha in sorted(heads.items()):
        click.echo(f"{sha}\t{ref}")


@cli.command("check")
@click.argument("url")
@click.option("--username", default=None, help="HTTP username (password from GIT_GATEWAY_PASSWORD).")
@click.pass_context
def check(ctx: click.Context, url: str, username: str | None) -> None:
    """Run only the HTTP(S) preflight probe against URL."""
    credential = _build_credential(username, None)
    _executor(ctx).validator.check(url, credential)
    click.echo(f"OK: {redact_url(url)}")


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def main() -> None:
    """Entry point for the CLI.

    Gateway errors are reported as ``Error: ...`` on stderr. A failed git
    command exits with git's own status, everything else with 1. Log
    output goes to stderr so stdout is exactly git's stdout.
    """
    log_to_stderr()
    try:
        cli(standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        sys.exit(1)
    except click.exceptions.Abort:
        sys.exit(1)
    except CommandError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(exc.returncode or 1)
    except GatewayError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
