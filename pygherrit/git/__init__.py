"""Git interfaces, implementation and commit stack extraction."""

import os
import re
import shlex
import logging
from typing import List, Optional, Tuple
import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from ..typing import (
    Commit, GitInterface, Stack, StableId, GitError, MissingStableId, AmbiguousStableId,
    InvalidStableIdError, MergeCommitError, NoMergeBaseError, DetachedHeadError,
)
from ..config.models import GherritConfig

# Get module logger
logger = logging.getLogger(__name__)

# Field and record separators used in the log format below
FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"
LOG_FORMAT = "%H%x1f%P%x1f%B%x1e"

TRAILER_LINE_RE = re.compile(r'^([A-Za-z0-9][A-Za-z0-9-]*)[ \t]*:[ \t]*(.*)$')
STABLE_ID_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')

def parse_trailers(message: str) -> List[Tuple[str, str]]:
    """Return the (key, value) pairs of the message's trailer block.

    The trailer block is the last paragraph of the message, and only when
    every line in it is a `Key: value` line or an indented continuation.
    A subject-only message has no trailer block.
    """
    paragraphs = re.split(r'\n[ \t]*\n', message.strip())
    if len(paragraphs) < 2:
        return []
    trailers: List[Tuple[str, str]] = []
    for line in paragraphs[-1].splitlines():
        if line[:1] in (' ', '\t') and trailers:
            key, value = trailers[-1]
            trailers[-1] = (key, f"{value} {line.strip()}".strip())
            continue
        match = TRAILER_LINE_RE.match(line)
        if not match:
            return []
        trailers.append((match.group(1), match.group(2).strip()))
    return trailers

def is_valid_stable_id(value: str) -> bool:
    """Check that a stable id can be used as a branch name component."""
    return bool(STABLE_ID_RE.match(value)) and '..' not in value and not value.endswith('.lock')

def extract_stable_id(commit_hash: str, message: str, key: str) -> StableId:
    """Find exactly one stable id trailer in a commit message."""
    subject = message.split('\n', 1)[0]
    values = [v for k, v in parse_trailers(message) if k.lower() == key.lower()]
    if not values:
        raise MissingStableId(commit_hash, subject, key)
    if len(values) > 1:
        raise AmbiguousStableId(commit_hash, subject, key, values)
    value = values[0]
    if not is_valid_stable_id(value):
        raise InvalidStableIdError(commit_hash, value)
    return StableId(value)

def strip_stable_id_trailer(text: str, key: str) -> str:
    """Remove the stable id trailer line from a message body."""
    pattern = re.compile(rf'^{re.escape(key)}[ \t]*:.*$\n?', re.IGNORECASE | re.MULTILINE)
    return pattern.sub('', text).strip()

def parse_commit_log(commit_log: str) -> List[Tuple[str, List[str], str]]:
    """Parse log output in LOG_FORMAT into (hash, parents, message) records."""
    records: List[Tuple[str, List[str], str]] = []
    for raw in commit_log.split(RECORD_SEP):
        raw = raw.strip('\n')
        if not raw.strip():
            continue
        parts = raw.split(FIELD_SEP, 2)
        if len(parts) != 3:
            logger.warning(f"Skipping malformed log record: {raw[:40]!r}")
            continue
        commit_hash, parents, message = parts
        records.append((commit_hash.strip(), parents.split(), message.strip()))
    return records

def commit_from_record(config: GherritConfig, commit_hash: str, parents: List[str], message: str) -> Commit:
    """Build a Commit from one log record, validating its trailer."""
    if len(parents) > 1:
        raise MergeCommitError(commit_hash)
    stable_id = extract_stable_id(commit_hash, message, config.repo.stable_id_key)
    subject, _, body = message.partition('\n')
    return Commit(stable_id, commit_hash, subject.strip(), body.strip())  # type: ignore[arg-type]

def current_branch(git_cmd: GitInterface) -> str:
    """Name of the checked out branch, also while a rebase is in progress."""
    name = git_cmd.must_git("rev-parse --abbrev-ref HEAD").strip()
    if name and name != "HEAD":
        return name

    git_dir = git_cmd.must_git("rev-parse --absolute-git-dir").strip()
    for state_dir in ("rebase-merge", "rebase-apply"):
        head_name = os.path.join(git_dir, state_dir, "head-name")
        try:
            with open(head_name) as f:
                ref = f.read().strip()
        except OSError:
            continue
        if ref.startswith("refs/heads/"):
            ref = ref[len("refs/heads/"):]
        logger.debug(f"HEAD is detached by a rebase of {ref}")
        return ref
    raise DetachedHeadError()

def resolve_upstream(config: GherritConfig, git_cmd: GitInterface) -> str:
    """Find the upstream ref the stack sits on."""
    remote = config.repo.remote
    branch = config.repo.upstream_branch
    for candidate in (f"{remote}/{branch}", branch):
        try:
            git_cmd.must_git(f"rev-parse --verify --quiet {candidate}^{{commit}}")
            return candidate
        except GitError:
            logger.debug(f"Upstream candidate {candidate} does not exist")
    raise NoMergeBaseError(f"Neither {remote}/{branch} nor {branch} exists; cannot find the base of the stack.")

def get_local_commit_stack(config: GherritConfig, git_cmd: GitInterface,
                           upstream: Optional[str] = None, head: str = "HEAD") -> Stack:
    """Get local commit stack. Returns commits ordered with bottom commit first."""
    if upstream is None:
        upstream = resolve_upstream(config, git_cmd)
    try:
        merge_base = git_cmd.must_git(f"merge-base {upstream} {head}").strip()
    except GitError as e:
        raise NoMergeBaseError(f"{head} shares no history with {upstream}: {e}") from e
    logger.debug(f"Stack base: {merge_base[:8]} ({upstream})")

    commit_log = git_cmd.must_git(f"log --reverse --format={LOG_FORMAT} {merge_base}..{head}")
    commits = [commit_from_record(config, *record) for record in parse_commit_log(commit_log)]
    stack = Stack(commits)

    logger.info(f"Found {len(stack)} commit(s) between {upstream} and {head}")
    for c in stack:
        logger.debug(f"  {c.commit_hash[:8]}: id={c.stable_id}, subject='{c.subject}'")
    return stack

class RealGit:
    """Real Git implementation."""
    def __init__(self, config: GherritConfig, repo_dir: Optional[str] = None):
        """Initialize with config and the working directory of the repository."""
        self.config: GherritConfig = config
        self.repo_dir = repo_dir or os.getcwd()
        self._repo: Optional[git.Repo] = None

    @property
    def repo(self) -> git.Repo:
        if self._repo is None:
            try:
                self._repo = git.Repo(self.repo_dir, search_parent_directories=True)
            except (InvalidGitRepositoryError, NoSuchPathError):
                raise GitError("rev-parse --git-dir", stderr=f"{self.repo_dir} is not in a git repository")
        return self._repo

    def run_cmd(self, command: str, timeout: Optional[float] = None) -> str:
        """Run git command."""
        cmd_str = command.strip()
        if self.config.user.log_git_commands:
            logger.info(f"> git {cmd_str}")
        else:
            logger.debug(f"> git {cmd_str}")

        cmd_parts = shlex.split(cmd_str)
        method = getattr(self.repo.git, cmd_parts[0].replace('-', '_'))
        kwargs = {}
        if timeout:
            kwargs['kill_after_timeout'] = timeout
        try:
            result = method(*cmd_parts[1:], **kwargs)
        except GitCommandError as e:
            raise GitError(cmd_str, e.status if isinstance(e.status, int) else None,
                           str(e.stdout or ""), str(e.stderr or "")) from e
        return result if isinstance(result, str) else str(result)

    def must_git(self, command: str, timeout: Optional[float] = None) -> str:
        """Run git command, failing on error."""
        return self.run_cmd(command, timeout)
