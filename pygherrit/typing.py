"""Common types and errors used across the codebase."""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, NewType, Optional, Protocol, Sequence, Tuple, overload

# Stable identity of a logical change, carried in the commit message trailer
StableId = NewType('StableId', str)
CommitHash = NewType('CommitHash', str)


class GitInterface(Protocol):
    """Protocol for what the pipeline expects from a git runner."""

    def run_cmd(self, command: str, timeout: Optional[float] = None) -> str:
        ...

    def must_git(self, command: str, timeout: Optional[float] = None) -> str:
        ...


@dataclass
class Commit:
    """A commit of the local stack."""
    stable_id: StableId
    commit_hash: CommitHash
    subject: str
    body: str = ""
    position: int = 0

    @classmethod
    def from_strings(cls, stable_id: str, commit_hash: str, subject: str,
                     body: str = "", position: int = 0) -> 'Commit':
        """Create a Commit from plain strings."""
        return cls(StableId(stable_id), CommitHash(commit_hash), subject, body, position)

    @property
    def message(self) -> str:
        """Full commit message."""
        if not self.body:
            return self.subject
        return f"{self.subject}\n\n{self.body}"

    def __str__(self) -> str:
        return f"{self.commit_hash[:8]} {self.stable_id} {self.subject}"


class Stack(Sequence[Commit]):
    """Ordered commits from bottom (next to upstream) to top (HEAD).

    Identity is keyed by StableId, so neighbours are found by index
    arithmetic rather than by following parent pointers.
    """

    def __init__(self, commits: Sequence[Commit] = ()):
        check_for_duplicate_stable_ids(commits)
        self._commits: Tuple[Commit, ...] = tuple(commits)
        for position, commit in enumerate(self._commits):
            commit.position = position
        self._index: Dict[StableId, int] = {c.stable_id: i for i, c in enumerate(self._commits)}

    @overload
    def __getitem__(self, index: int) -> Commit: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[Commit]: ...

    def __getitem__(self, index):  # type: ignore[no-untyped-def]
        return self._commits[index]

    def __len__(self) -> int:
        return len(self._commits)

    def __iter__(self) -> Iterator[Commit]:
        return iter(self._commits)

    def __repr__(self) -> str:
        return f"Stack({[c.stable_id for c in self._commits]})"

    def ids(self) -> List[StableId]:
        return [c.stable_id for c in self._commits]

    def index_of(self, stable_id: StableId) -> int:
        return self._index[stable_id]

    def parent_of(self, index: int) -> Optional[Commit]:
        """Commit below the given position, None for the bottom commit."""
        return self._commits[index - 1] if index > 0 else None

    def child_of(self, index: int) -> Optional[Commit]:
        """Commit above the given position, None for the top commit."""
        return self._commits[index + 1] if index + 1 < len(self._commits) else None


class GherritError(Exception):
    """Base class for errors that end a run with a specific exit code."""
    exit_code = 1


class ValidationError(GherritError):
    """Local state is not fit to sync. Raised before any remote effect."""
    exit_code = 1


class MissingStableId(ValidationError):
    def __init__(self, commit_hash: str, subject: str, key: str):
        self.commit_hash = commit_hash
        super().__init__(
            f"Commit {commit_hash[:8]} ('{subject}') has no '{key}' trailer. "
            f"Amend it so the commit-msg hook can add one, then push again."
        )


class AmbiguousStableId(ValidationError):
    def __init__(self, commit_hash: str, subject: str, key: str, values: Sequence[str]):
        self.commit_hash = commit_hash
        self.values = list(values)
        super().__init__(
            f"Commit {commit_hash[:8]} ('{subject}') has {len(values)} '{key}' trailers "
            f"({', '.join(values)}); exactly one is required."
        )


class InvalidStableIdError(ValidationError):
    def __init__(self, commit_hash: str, value: str):
        super().__init__(
            f"Commit {commit_hash[:8]} has stable id '{value}', which cannot be used as a branch name."
        )


class DuplicateStableIdError(ValidationError):
    """Two or more commits of one stack carry the same stable id."""

    def __init__(self, duplicates: Mapping[str, List[Commit]]):
        self.duplicates = dict(duplicates)
        lines = ["Duplicate stable ids found in the commit stack:"]
        for stable_id, commits in self.duplicates.items():
            lines.append(f"  {stable_id}:")
            for commit in commits:
                lines.append(f"    {commit.commit_hash[:8]} {commit.subject}")
        lines.append("This usually happens after a cherry-pick copied the trailer of another commit.")
        lines.append("Each commit needs a unique stable id; remove the trailer from the copy and amend it.")
        super().__init__("\n".join(lines))


class MergeCommitError(ValidationError):
    def __init__(self, commit_hash: str):
        super().__init__(f"Commit {commit_hash[:8]} is a merge commit; a stack must be a linear history.")


class NoMergeBaseError(ValidationError):
    pass


class DetachedHeadError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Cannot sync from a detached HEAD. Check out a branch first.")


class ClosedPullRequestError(ValidationError):
    def __init__(self, stable_id: str, number: int, state: str):
        self.stable_id = stable_id
        self.number = number
        super().__init__(
            f"Cannot push to {state} PR #{number} for {stable_id}. "
            f"Drop the commit from the stack or give it a new stable id."
        )


class InvalidBranchStateError(ValidationError):
    pass


class BranchConfigDriftError(InvalidBranchStateError):
    """Branch config was changed by hand since pygherrit last wrote it."""
    def __init__(self, branch: str, mode: str, drifted: Sequence[Tuple[str, Optional[str], Optional[str]]]):
        self.branch = branch
        self.drifted = list(drifted)
        lines = [f"Branch config of {branch} does not match what its '{mode}' state expects:"]
        for key, current, expected in self.drifted:
            lines.append(f"  branch.{branch}.{key}: current '{current or '<unset>'}', "
                         f"expected '{expected or '<unset>'}'")
        lines.append("Use --force to overwrite manual changes.")
        super().__init__("\n".join(lines))


class ConfigError(ValidationError):
    pass


class ConflictError(GherritError):
    """Remote refs moved since they were read. Re-running resolves it."""
    exit_code = 2


class PushRejected(ConflictError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(
            "Push rejected: a phantom branch or version tag changed on the remote since it was read. "
            f"Nothing was updated; run the push again.\n{detail}".rstrip()
        )


class TransportError(GherritError):
    """Network, authentication or timeout failure talking to git or GitHub."""
    exit_code = 3


class PushTransportError(TransportError):
    pass


class RemoteReadError(TransportError):
    pass


class HostApiError(TransportError):
    pass


class GitError(GherritError):
    """A local git command failed."""

    def __init__(self, command: str, status: Optional[int] = None, stdout: str = "", stderr: str = ""):
        self.command = command
        self.status = status
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip()
        super().__init__(f"git {command} failed" + (f": {detail}" if detail else ""))


class PartialSyncError(GherritError):
    """Refs were published but some PRs could not be created or updated."""
    exit_code = 4

    def __init__(self, succeeded: Sequence[str], failed: Mapping[str, str]):
        self.succeeded = list(succeeded)
        self.failed = dict(failed)
        lines = [f"{len(self.failed)} pull request(s) failed to sync; refs are published, re-run to retry:"]
        for stable_id, reason in self.failed.items():
            lines.append(f"  {stable_id}: {reason}")
        super().__init__("\n".join(lines))


def check_for_duplicate_stable_ids(commits: Sequence[Commit]) -> None:
    """Raise DuplicateStableIdError if any stable id appears twice."""
    seen: Dict[str, List[Commit]] = {}
    for commit in commits:
        if not commit.stable_id:
            continue
        seen.setdefault(commit.stable_id, []).append(commit)
    duplicates = {k: v for k, v in seen.items() if len(v) > 1}
    if duplicates:
        raise DuplicateStableIdError(duplicates)
