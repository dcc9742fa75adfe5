"""Unit tests for git_gateway.porcelain.

Tests cover:
- output parsers (ls-remote, single-line results, branch listings)
- GitClient argument construction against a recording launcher
- GitClient against a real git repository (skipped without git)
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from pydantic import SecretStr

from git_gateway.credentials import CredentialStore
from git_gateway.errors import CommandError, GatewayError, ParseError
from git_gateway.executor import GitExecutor
from git_gateway.models import GatewayConfig, UsernamePasswordCredential
from git_gateway.porcelain import (
    Branch,
    GitClient,
    first_line,
    parse_branch_names,
    parse_ls_remote,
    parse_object_id,
)
from git_gateway.preflight import PreflightValidator

SHA_A = "a" * 40
SHA_B = "0123456789abcdef0123456789abcdef01234567"
HTTP_URL = "https://example.com/org/repo.git"


# ============================================================================
# Parsers
# ============================================================================


class TestParseLsRemote:
    def test_parses_heads(self):
        output = f"{SHA_A}\trefs/heads/main\n{SHA_B}\trefs/heads/feature/x\n"
        assert parse_ls_remote(output) == {
            "refs/heads/main": SHA_A,
            "refs/heads/feature/x": SHA_B,
        }

    def test_empty_output(self):
        assert parse_ls_remote("") == {}

    def test_short_line_is_an_error(self):
        with pytest.raises(ParseError, match="unexpected ls-remote output"):
            parse_ls_remote(f"{SHA_A}\trefs/heads/main\nwarning: redirecting\n")

    def test_malformed_object_id(self):
        with pytest.raises(ParseError):
            parse_ls_remote("z" * 40 + "\trefs/heads/main\n")


class TestFirstLine:
    def test_single_line(self):
        assert first_line(f"{SHA_A}\n") == SHA_A

    def test_empty(self):
        assert first_line("") is None

    def test_multiple_lines(self):
        with pytest.raises(ParseError, match="multiple lines"):
            first_line("one\ntwo\n")


class TestParseHelpers:
    def test_branch_names(self):
        output = "* main\n  feature\n  (no branch)\n  remotes/origin/HEAD -> origin/main\n  remotes/origin/main\n"
        assert parse_branch_names(output) == ["main", "feature", "remotes/origin/main"]

    def test_object_id(self):
        assert parse_object_id(f"  {SHA_B}\n") == SHA_B
        with pytest.raises(ParseError):
            parse_object_id("abc123")


# ============================================================================
# GitClient with a recording launcher
# ============================================================================


@pytest.fixture
def executor(gateway_config, launcher):
    return GitExecutor(gateway_config, launcher=launcher, validator=Mock(spec=PreflightValidator))


@pytest.fixture
def client(executor, tmp_path):
    return GitClient(executor, tmp_path)


class TestGitClientCommands:
    def test_get_remote_url_missing(self, client, launcher):
        launcher.queue(1)
        assert client.get_remote_url("origin") is None
        assert launcher.commands == [["config", "--get", "remote.origin.url"]]

    def test_get_remote_url(self, client, launcher):
        launcher.queue(0, stdout=f"{HTTP_URL}\n")
        assert client.get_remote_url("origin") == HTTP_URL

    def test_get_remote_url_other_failure(self, client, launcher):
        launcher.queue(3, stderr="error: invalid config file")
        with pytest.raises(CommandError):
            client.get_remote_url("origin")

    def test_fetch_arguments_and_bound_credential(self, gateway_config, launcher, tmp_path):
        store = CredentialStore()
        store.add(HTTP_URL, UsernamePasswordCredential(username="u", password=SecretStr("p")))
        executor = GitExecutor(
            gateway_config, store, launcher=launcher, validator=Mock(spec=PreflightValidator)
        )

        GitClient(executor, tmp_path).fetch(
            HTTP_URL, ["+refs/heads/*:refs/remotes/origin/*", ""], prune=True, shallow=True
        )

        attach, main, detach = launcher.commands
        assert attach[2] == "credential.helper"
        assert main == [
            "fetch", "--tags", "--progress", HTTP_URL,
            "+refs/heads/*:refs/remotes/origin/*", "--prune", "--depth=1",
        ]
        assert detach[-1] == "credential"

    def test_get_head_revs_runs_without_work_dir(self, client, launcher):
        launcher.queue(0, stdout=f"{SHA_A}\trefs/heads/main\n")
        assert client.get_head_revs(HTTP_URL) == {"refs/heads/main": SHA_A}
        assert launcher.calls[0].work_dir is None
        assert launcher.commands[0] == ["ls-remote", "-h", HTTP_URL]

    def test_get_head_rev_missing_branch(self, client, launcher):
        launcher.queue(0, stdout="")
        assert client.get_head_rev(HTTP_URL, "origin/feature") is None
        assert launcher.commands[0] == ["ls-remote", "-h", HTTP_URL, "feature"]

    def test_get_head_rev(self, client, launcher):
        launcher.queue(0, stdout=f"{SHA_B}\trefs/heads/main\n")
        assert client.get_head_rev(HTTP_URL, "main") == SHA_B

    def test_rev_parse_windows_quoting(self, gateway_config, launcher, tmp_path):
        config = gateway_config.model_copy(update={"is_windows": True})
        executor = GitExecutor(config, launcher=launcher, validator=Mock(spec=PreflightValidator))
        launcher.queue(0, stdout=f"{SHA_A}\n")

        assert GitClient(executor, tmp_path).rev_parse("v1.0") == SHA_A
        assert launcher.commands[0] == ["rev-parse", '"v1.0^{commit}"']

    def test_rev_parse_posix(self, client, launcher):
        launcher.queue(0, stdout=f"{SHA_A}\n")
        client.rev_parse("v1.0")
        assert launcher.commands[0] == ["rev-parse", "v1.0^{commit}"]

    def test_get_default_remote(self, client, launcher):
        launcher.queue(0, stdout="upstream\norigin\n")
        assert client.get_default_remote() == "origin"
        launcher.queue(0, stdout="upstream\n")
        assert client.get_default_remote() == "upstream"
        launcher.queue(0, stdout="")
        with pytest.raises(GatewayError, match="No remotes"):
            client.get_default_remote()

    def test_init_refuses_existing_repo(self, client, tmp_path):
        (tmp_path / ".git").mkdir()
        with pytest.raises(GatewayError, match="already exists"):
            client.init()

    def test_set_author(self, client, launcher):
        client.set_author("Build Bot", "bot@example.com")
        client.commit("release")
        env = launcher.calls[0].env
        assert env["GIT_AUTHOR_NAME"] == "Build Bot"
        assert env["GIT_AUTHOR_EMAIL"] == "bot@example.com"
        assert launcher.commands[0] == ["commit", "-m", "release"]

    def test_tag_replaces_spaces(self, client, launcher):
        client.tag("release 1", "notes")
        assert launcher.commands[0] == ["tag", "-a", "-f", "-m", "notes", "release_1"]

    def test_merge_strategy(self, client, launcher):
        client.merge("topic", "ours")
        client.merge("topic", "default")
        assert launcher.commands == [["merge", "-s", "ours", "topic"], ["merge", "topic"]]

    def test_get_remote_branches(self, client, launcher):
        launcher.queue(
            0,
            stdout=(
                f"{SHA_A} refs/remotes/origin/HEAD\n"
                f"{SHA_A} refs/remotes/origin/main\n"
                f"{SHA_B} refs/remotes/origin/dev\n"
            ),
        )
        assert client.get_remote_branches() == {
            Branch("origin/main", SHA_A),
            Branch("origin/dev", SHA_B),
        }


# ============================================================================
# GitClient against real git
# ============================================================================


@pytest.fixture
def real_executor(tmp_path, git_env):
    config = GatewayConfig(
        timeout=120,
        proxy=None,
        netrc_path=None,
        secrets_dir=tmp_path / "secrets",
        environment=git_env,
    )
    return GitExecutor(config)


class TestGitClientRealGit:
    def test_rev_parse_peels_annotated_tag(self, local_repo, real_executor):
        client = GitClient(real_executor, local_repo)
        head = client.rev_parse("HEAD")
        assert len(head) == 40
        assert client.rev_parse("v1.0") == head
        assert client.validate_revision("HEAD") == head

    def test_repository_queries(self, local_repo, real_executor, tmp_path):
        client = GitClient(real_executor, local_repo)
        assert client.has_git_repo()
        assert not client.is_bare_repository()
        assert not GitClient(real_executor, tmp_path / "empty").has_git_repo()

    def test_remote_url_round_trip(self, local_repo, real_executor):
        client = GitClient(real_executor, local_repo)
        assert client.get_remote_url("origin") is None
        client.set_remote_url("origin", HTTP_URL)
        assert client.get_remote_url("origin") == HTTP_URL

    def test_tags_and_branches(self, local_repo, real_executor):
        client = GitClient(real_executor, local_repo)
        head = client.rev_parse("HEAD")
        assert client.tag_exists("v1.0")
        assert client.get_tag_names() == {"v1.0"}
        assert client.get_tag_message("v1.0") == "First release"
        assert client.describe("HEAD") == "v1.0"
        assert client.get_branches() == {Branch("main", head)}

    def test_commit_and_history(self, local_repo, real_executor):
        client = GitClient(real_executor, local_repo)
        first = client.rev_parse("HEAD")
        (local_repo / "CHANGES.md").write_text("- second\n")
        client.add("CHANGES.md")
        client.commit("Second commit")

        assert len(client.rev_list_all()) == 2
        assert client.is_commit_in_repo(first)
        assert not client.is_commit_in_repo("f" * 40)

    def test_clone_and_ls_remote_from_local_path(self, local_repo, real_executor, tmp_path):
        head = GitClient(real_executor, local_repo).rev_parse("HEAD")
        clone = GitClient(real_executor, tmp_path / "clone")

        clone.clone(str(local_repo))

        assert clone.get_remote_branches() == {Branch("origin/main", head)}
        assert clone.get_head_revs(str(local_repo)) == {"refs/heads/main": head}
        assert list((tmp_path / "secrets").glob("*")) == []
