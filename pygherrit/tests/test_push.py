"""Unit tests for the git remote and the atomic push executor."""

from unittest.mock import Mock

import pytest
from pygherrit.typing import GitError, PushRejected, PushTransportError, RemoteReadError
from pygherrit.refs import RefUpdate, RefBatch
from pygherrit.push import (
    GitRemote, AtomicPushExecutor, parse_ls_remote, classify_push_failure, porcelain_rejections,
)

SHA_A = "a" * 40
SHA_B = "b" * 40

BATCH = RefBatch((
    RefUpdate("refs/heads/G1", SHA_A, SHA_B),
    RefUpdate("refs/tags/gherrit/G1/v2", None, SHA_B),
))


def test_parse_ls_remote_skips_peeled_lines() -> None:
    output = (
        f"{SHA_A}\trefs/heads/G1\n"
        f"{SHA_B}\trefs/tags/gherrit/G1/v1\n"
        f"{SHA_A}\trefs/tags/gherrit/G1/v1^{{}}\n"
        "\n"
    )
    assert parse_ls_remote(output) == {"refs/heads/G1": SHA_A, "refs/tags/gherrit/G1/v1": SHA_B}


@pytest.mark.parametrize("output", [
    "! b:refs/heads/G1 [rejected] (stale info)",
    "error: atomic push failed for ref refs/heads/G1. status: 2",
    "! refs/tags/gherrit/G1/v1 [rejected] (already exists)",
    "! [rejected] G1 -> G1 (fetch first)",
])
def test_lease_failures_are_conflicts(output: str) -> None:
    assert isinstance(classify_push_failure(output), PushRejected)


@pytest.mark.parametrize("output", [
    "fatal: unable to access 'https://github.com/o/r.git/': Could not resolve host: github.com",
    "remote: Permission to o/r.git denied to someone.",
    "Timeout: the command was killed after 60 seconds",
])
def test_other_failures_are_transport_errors(output: str) -> None:
    assert isinstance(classify_push_failure(output), PushTransportError)


def test_porcelain_rejections() -> None:
    output = "To origin\n=\trefs/heads/G1:refs/heads/G1\t[up to date]\n!\tx:refs/heads/G2\t[rejected] (stale info)\nDone"
    assert porcelain_rejections(output) == ["!\tx:refs/heads/G2\t[rejected] (stale info)"]


class TestGitRemote:
    def test_list_refs_command(self) -> None:
        git_cmd = Mock()
        git_cmd.must_git.return_value = f"{SHA_A}\trefs/heads/G1\n"
        remote = GitRemote(git_cmd, "origin", timeout=5)
        assert remote.list_refs(["refs/heads/G1", "refs/tags/gherrit/G1/*"]) == {"refs/heads/G1": SHA_A}
        git_cmd.must_git.assert_called_once_with("ls-remote origin refs/heads/G1 'refs/tags/gherrit/G1/*'", 5)

    def test_list_refs_failure_is_transport_error(self) -> None:
        git_cmd = Mock()
        git_cmd.must_git.side_effect = GitError("ls-remote origin", 128, "", "fatal: could not read from remote")
        with pytest.raises(RemoteReadError):
            GitRemote(git_cmd, "origin").list_refs(["refs/heads/G1"])

    def test_apply_builds_one_atomic_push(self) -> None:
        git_cmd = Mock()
        git_cmd.must_git.return_value = "To origin\nDone"
        GitRemote(git_cmd, "origin", timeout=30).apply(BATCH)
        git_cmd.must_git.assert_called_once_with(
            "push --atomic --no-verify --porcelain origin "
            f"--force-with-lease=refs/heads/G1:{SHA_A} "
            "--force-with-lease=refs/tags/gherrit/G1/v2: "
            f"{SHA_B}:refs/heads/G1 {SHA_B}:refs/tags/gherrit/G1/v2",
            30,
        )

    def test_apply_empty_batch_does_nothing(self) -> None:
        git_cmd = Mock()
        GitRemote(git_cmd, "origin").apply(RefBatch())
        git_cmd.must_git.assert_not_called()

    def test_apply_stale_lease_is_rejected(self) -> None:
        git_cmd = Mock()
        git_cmd.must_git.side_effect = GitError(
            "push", 1, f"!\t{SHA_B}:refs/heads/G1\t[rejected] (stale info)", "error: failed to push some refs")
        with pytest.raises(PushRejected):
            GitRemote(git_cmd, "origin").apply(BATCH)

    def test_apply_network_failure_is_transport_error(self) -> None:
        git_cmd = Mock()
        git_cmd.must_git.side_effect = GitError("push", 128, "", "fatal: Could not read from remote repository.")
        with pytest.raises(PushTransportError):
            GitRemote(git_cmd, "origin").apply(BATCH)

    def test_apply_rejection_reported_in_porcelain_output(self) -> None:
        git_cmd = Mock()
        git_cmd.must_git.return_value = f"!\t{SHA_B}:refs/heads/G1\t[remote rejected] (hook declined)"
        with pytest.raises(PushRejected):
            GitRemote(git_cmd, "origin").apply(BATCH)


class TestAtomicPushExecutor:
    def test_empty_batch_never_reaches_remote(self) -> None:
        transaction = Mock()
        assert AtomicPushExecutor(transaction).execute(RefBatch()) is False
        transaction.apply.assert_not_called()

    def test_pretend_logs_instead_of_pushing(self) -> None:
        transaction = Mock()
        assert AtomicPushExecutor(transaction, pretend=True).execute(BATCH) is False
        transaction.apply.assert_not_called()

    def test_batch_applied_once_without_retry(self) -> None:
        transaction = Mock()
        transaction.apply.side_effect = PushRejected("stale info")
        with pytest.raises(PushRejected):
            AtomicPushExecutor(transaction).execute(BATCH)
        transaction.apply.assert_called_once_with(BATCH)

    def test_success(self) -> None:
        transaction = Mock()
        assert AtomicPushExecutor(transaction).execute(BATCH) is True
        transaction.apply.assert_called_once_with(BATCH)
