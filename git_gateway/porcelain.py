"""Thin porcelain client over :class:`~git_gateway.executor.GitExecutor`.

Each method builds an argument vector, runs it through the executor and
parses the text output. Network operations look their credential up in the
executor's credential store; local operations run without credentials.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from git_gateway.errors import CommandError, GatewayError, ParseError
from git_gateway.executor import GitExecutor
from git_gateway.utils import log_info, log_step, redact_url

OBJECT_ID_RE = re.compile(r"^[0-9a-f]{40}$")

# ls-remote: "<40 hex>\t<ref>"
LS_REMOTE_MIN_LINE = 41


@dataclass(frozen=True)
class Branch:
    name: str
    sha: str


def parse_object_id(text: str) -> str:
    """Validate and return a 40-hex object id.

    Raises:
        ParseError: If *text* is not a full lowercase SHA-1.
    """
    value = text.strip()
    if not OBJECT_ID_RE.match(value):
        raise ParseError(f"Invalid object id {value!r}")
    return value


def first_line(result: str) -> str | None:
    """Return the only line of *result*.

    Returns:
        The line, or ``None`` for empty output.

    Raises:
        ParseError: If the output has more than one line.
    """
    lines = result.splitlines()
    if not lines:
        return None
    if len(lines) > 1:
        raise ParseError("Result has multiple lines")
    return lines[0]


def parse_ls_remote(output: str) -> dict[str, str]:
    """Parse ``git ls-remote`` output into ``{ref: sha}``.

    Every line must be at least 41 characters: a 40-hex id, a separator,
    then the ref name. A shorter line is a protocol violation, not noise.

    Raises:
        ParseError: On a short line or malformed object id.
    """
    heads: dict[str, str] = {}
    for line in output.splitlines():
        if len(line) < LS_REMOTE_MIN_LINE:
            raise ParseError(f"unexpected ls-remote output {line!r}")
        heads[line[LS_REMOTE_MIN_LINE:]] = parse_object_id(line[:40])
    return heads


def parse_branch_names(output: str) -> list[str]:
    """Branch names from ``git branch`` output.

    The two-column current-branch marker is dropped; detached entries such
    as ``(no branch)`` and symbolic ``a -> b`` lines are skipped.
    """
    names = []
    for line in output.splitlines():
        name = line[2:]
        if not name or name.startswith("(") or " -> " in name:
            continue
        names.append(name)
    return names


class GitClient:
    """Porcelain operations on one working copy.

    Args:
        executor: Executor used for every command.
        workspace: Working copy directory.
    """

    def __init__(self, executor: GitExecutor, workspace: str | Path) -> None:
        self.executor = executor
        self.workspace = Path(workspace)

    def _git(self, *tokens: str) -> str:
        return self.executor.launch(self.executor.args(*tokens), self.workspace)

    def sub_git(self, subdir: str) -> GitClient:
        """Client for a nested working copy (e.g. a submodule)."""
        return GitClient(self.executor, self.workspace / subdir)

    # ------------------------------------------------------------------
    # Repository
    # ------------------------------------------------------------------

    def has_git_repo(self) -> bool:
        """True if the workspace holds a usable (non-corrupt) repository."""
        if not (self.workspace / ".git").exists():
            return False
        try:
            self._git("rev-parse", "--is-inside-work-tree")
        except CommandError:
            log_info("Workspace has a .git repository, but it appears to be corrupt.")
            return False
        return True

    def init(self) -> None:
        if (self.workspace / ".git").exists():
            raise GatewayError(".git directory already exists! Has it already been initialised?")
        self.workspace.mkdir(parents=True, exist_ok=True)
        self._git("init")

    def is_bare_repository(self, git_dir: str = "") -> bool:
        args = self.executor.args()
        if git_dir:
            args.add(f"--git-dir={git_dir}")
        args.add("rev-parse", "--is-bare-repository")
        result = self.executor.launch(args, self.workspace)
        return (first_line(result) or "").strip() == "true"

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    def get_remote_url(self, name: str) -> str | None:
        """URL of remote *name*, or ``None`` if it is not configured."""
        result = self.executor.run(
            self.executor.args("config", "--get", f"remote.{name}.url"), self.workspace
        )
        # git config exits 1 when the key is missing
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            raise CommandError(
                f"Could not read remote.{name}.url",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        line = first_line(result.stdout)
        return line.strip() if line else None

    def set_remote_url(self, name: str, url: str) -> None:
        self._git("config", f"remote.{name}.url", url)

    def add_remote_url(self, name: str, url: str) -> None:
        self._git("config", "--add", f"remote.{name}.url", url)

    def get_default_remote(self, default: str = "origin") -> str:
        """*default* if it exists, otherwise the first configured remote.

        Raises:
            GatewayError: If the working copy has no remotes.
        """
        remotes = [line for line in self._git("remote").splitlines() if line]
        if default in remotes:
            return default
        if remotes:
            return remotes[0]
        raise GatewayError("No remotes found!")

    def fetch(
        self,
        url: str,
        refspecs: list[str] | None = None,
        *,
        prune: bool = False,
        shallow: bool = False,
    ) -> None:
        log_info(f"Fetching upstream changes from {redact_url(url)}")
        args = self.executor.args("fetch", "--tags", "--progress", url)
        for refspec in refspecs or []:
            if refspec:
                args.add(refspec)
        if prune:
            args.add("--prune")
        if shallow:
            args.add("--depth=1")
        self.executor.execute_bound(args, self.workspace, url)

    def fetch_remote(self, remote_name: str | None = None, *refspecs: str) -> None:
        """Fetch from a configured remote by name (default remote if omitted)."""
        name = remote_name or self.get_default_remote()
        url = self.get_remote_url(name)
        if not url:
            raise GatewayError(f"bad remote name {name!r}, URL not set in working copy")
        log_info(f"Fetching upstream changes from {name}")
        args = self.executor.args("fetch", "-t", url)
        args.add_all(r for r in refspecs if r)
        self.executor.execute_bound(args, self.workspace, url)

    def push(self, url: str, refspec: str | None = None) -> None:
        args = self.executor.args("push", url)
        if refspec:
            args.add(refspec)
        self.executor.execute_bound(args, self.workspace, url)

    def clone(
        self,
        url: str,
        origin: str = "origin",
        *,
        reference: str | None = None,
        shallow: bool = False,
    ) -> None:
        """Clone *url* into the (empty) workspace.

        Runs ``init`` + ``fetch`` rather than ``clone`` so that credentials
        can be scoped through the new working copy's local config.
        """
        log_info(f"Cloning repository {redact_url(url)}")
        self.init()
        if reference:
            self._setup_reference(Path(reference))
        self.set_remote_url(origin, url)
        self._git("config", f"remote.{origin}.fetch", f"+refs/heads/*:refs/remotes/{origin}/*")
        self.fetch(url, [f"+refs/heads/*:refs/remotes/{origin}/*"], shallow=shallow)

    def _setup_reference(self, reference: Path) -> None:
        if not reference.is_dir():
            log_info(f"Reference path is not a directory: {reference}")
            return
        objects = reference / ".git" / "objects"
        if not objects.is_dir():
            # bare reference repository
            objects = reference / "objects"
        if not objects.is_dir():
            log_info(f"Reference path does not contain an objects directory (no git repo?): {objects}")
            return
        alternates = self.workspace / ".git" / "objects" / "info" / "alternates"
        alternates.parent.mkdir(parents=True, exist_ok=True)
        alternates.write_text(str(objects.resolve()).replace("\\", "/"), encoding="utf-8")
        log_step(f"Using reference repository {reference}")

    def get_head_revs(self, url: str) -> dict[str, str]:
        """Map of remote head ref -> object id from ``ls-remote -h``."""
        args = self.executor.args("ls-remote", "-h", url)
        result = self.executor.execute_bound(args, None, url)
        return parse_ls_remote(result)

    def get_head_rev(self, url: str, branch: str) -> str | None:
        """Object id of *branch* on *url*, or ``None`` if it does not exist."""
        branch = branch.split("/")[-1]
        args = self.executor.args("ls-remote", "-h", url, branch)
        result = self.executor.execute_bound(args, None, url)
        if len(result) < 40:
            return None
        return parse_object_id(result[:40])

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    def rev_parse(self, rev: str) -> str:
        args = self.executor.args("rev-parse").add_revision(f"{rev}^{{commit}}")
        result = self.executor.launch(args, self.workspace)
        return parse_object_id(first_line(result) or "")

    def validate_revision(self, rev: str) -> str:
        result = self._git("rev-parse", "--verify", rev)
        return parse_object_id(first_line(result) or "")

    def describe(self, commit_ish: str) -> str:
        return (first_line(self._git("describe", "--tags", commit_ish)) or "").strip()

    def rev_list(self, ref: str) -> list[str]:
        return [parse_object_id(line) for line in self._git("rev-list", ref).splitlines() if line]

    def rev_list_all(self) -> list[str]:
        return self.rev_list("--all")

    def is_commit_in_repo(self, sha: str) -> bool:
        try:
            return len(self.rev_list(sha)) > 0
        except GatewayError:
            return False

    # ------------------------------------------------------------------
    # Branches & tags
    # ------------------------------------------------------------------

    def get_branches(self) -> set[Branch]:
        names = parse_branch_names(self._git("branch", "-a"))
        return {Branch(name, self.rev_parse(name)) for name in names}

    def get_remote_branches(self) -> set[Branch]:
        output = self._git("for-each-ref", "--format=%(objectname) %(refname)", "refs/remotes/")
        branches = set()
        for line in output.splitlines():
            sha, _, ref = line.partition(" ")
            if not ref or ref.endswith("/HEAD"):
                continue
            branches.add(Branch(ref[len("refs/remotes/"):], parse_object_id(sha)))
        log_info(f"Seen {len(branches)} remote branch{'es' if len(branches) != 1 else ''}")
        return branches

    def branch(self, name: str) -> None:
        self._git("branch", name)

    def delete_branch(self, name: str) -> None:
        self._git("branch", "-D", name)

    def checkout(self, ref: str, branch: str | None = None) -> None:
        if branch is None:
            self._git("checkout", "-f", ref)
        else:
            self._git("checkout", "-b", branch, ref)

    def checkout_branch(self, branch: str, ref: str) -> None:
        """Force *branch* to point at *ref* and check it out."""
        self.checkout(ref)
        if any(b.name == branch for b in self.get_branches()):
            self.delete_branch(branch)
        self.checkout(ref, branch)

    def tag(self, name: str, message: str) -> None:
        self._git("tag", "-a", "-f", "-m", message, name.replace(" ", "_"))

    def tag_exists(self, name: str) -> bool:
        return self._git("tag", "-l", name).strip() == name

    def delete_tag(self, name: str) -> None:
        self._git("tag", "-d", name.replace(" ", "_"))

    def get_tag_names(self, pattern: str = "*") -> set[str]:
        return {line for line in self._git("tag", "-l", pattern).splitlines() if line}

    def get_tag_message(self, name: str) -> str:
        out = self._git("tag", "-l", name, "-n10000")
        # git indents continuation lines of the message by four spaces
        return re.sub(r"(?m)^    ", "", out[len(name):]).strip()

    # ------------------------------------------------------------------
    # Working tree
    # ------------------------------------------------------------------

    def add(self, pattern: str) -> None:
        self._git("add", pattern)

    def commit(self, message: str) -> None:
        self._git("commit", "-m", message)

    def reset(self, hard: bool = False) -> None:
        try:
            self.validate_revision("HEAD")
        except GatewayError:
            log_info("No valid HEAD. Skipping the resetting")
            return
        log_info("Resetting working tree")
        args = ["reset", "--hard"] if hard else ["reset"]
        self._git(*args)

    def clean(self) -> None:
        self.reset(hard=True)
        self._git("clean", "-fdx")

    def merge(self, rev: str, strategy: str | None = None) -> None:
        if strategy and strategy != "default":
            self._git("merge", "-s", strategy, rev)
        else:
            self._git("merge", rev)

    def set_author(self, name: str | None, email: str | None) -> None:
        self.executor.env("GIT_AUTHOR_NAME", name)
        self.executor.env("GIT_AUTHOR_EMAIL", email)

    def set_committer(self, name: str | None, email: str | None) -> None:
        self.executor.env("GIT_COMMITTER_NAME", name)
        self.executor.env("GIT_COMMITTER_EMAIL", email)
