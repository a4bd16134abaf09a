"""GitHub interfaces and implementation."""

import os
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, runtime_checkable

import requests
from github import GithubException

from ..typing import Commit, StableId, ConfigError, HostApiError
from ..config.models import GherritConfig
from ..git import strip_stable_id_trailer
from ..refs import short_ref, version_tag_ref
from .types import StackMetadata, render_metadata, parse_metadata

# Get module logger
logger = logging.getLogger(__name__)

WARNING_COMMENT = (
    "<!-- WARNING: This description is generated by pygherrit from the commit message. "
    "Manual edits will be overwritten on the next push. -->"
)

@dataclass
class PullRequest:
    """Pull request info."""
    stable_id: StableId
    number: int
    head_branch: str
    base_branch: str
    title: str = ""
    body: str = ""
    state: str = "open"

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    @property
    def metadata(self) -> Optional[StackMetadata]:
        return parse_metadata(self.body)

    def __str__(self) -> str:
        return f"PR #{self.number} - {self.title}"

@dataclass
class StackEntry:
    """One line of the navigation section. number is None for a PR not created yet."""
    stable_id: StableId
    number: Optional[int] = None
    title: str = ""
    state: str = "open"

# Define protocols for GitHub objects
@runtime_checkable
class GitHubRefProtocol(Protocol):
    """Protocol for GitHub ref objects (base/head references)."""
    @property
    def ref(self) -> str:
        """Get the ref name (e.g., 'main', 'feature-branch')."""
        ...

@runtime_checkable
class GitHubPullRequestProtocol(Protocol):
    """Protocol for GitHub pull request objects (real or fake)."""
    @property
    def number(self) -> int:
        ...

    @property
    def title(self) -> str:
        ...

    @property
    def body(self) -> Optional[str]:
        ...

    @property
    def state(self) -> str:
        """Get the PR state (open, closed)."""
        ...

    @property
    def merged(self) -> bool:
        ...

    @property
    def base(self) -> GitHubRefProtocol:
        ...

    @property
    def head(self) -> GitHubRefProtocol:
        ...

    def edit(self, title: Optional[str] = None, body: Optional[str] = None, state: Optional[str] = None,
             base: Optional[str] = None) -> None:
        """Edit the pull request."""
        ...

@runtime_checkable
class GitHubRepoProtocol(Protocol):
    """Protocol for GitHub repository objects (real or fake)."""
    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        ...

    def get_pulls(self, state: str = "open", head: str = "", base: str = "") -> List[GitHubPullRequestProtocol]:
        """Get pull requests with optional filtering."""
        ...

    def create_pull(self, title: str, body: str, base: str, head: str,
                    maintainer_can_modify: bool = True, draft: bool = False) -> GitHubPullRequestProtocol:
        ...

@runtime_checkable
class PyGithubProtocol(Protocol):
    """Protocol for PyGithub implementations (real or fake)."""
    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        ...

def find_github_token(host: str = "github.com") -> Optional[str]:
    """Find GitHub token from env var or gh CLI config."""
    import yaml
    from pathlib import Path

    # First try environment variable
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    # Then try gh CLI config at ~/.config/gh/hosts.yml
    gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
    try:
        if gh_config_path.exists():
            with open(gh_config_path, "r") as f:
                gh_config = yaml.safe_load(f)
            if gh_config and host in gh_config:
                host_config: Dict[str, object] = gh_config[host]
                token = host_config.get("oauth_token")
                if isinstance(token, str):
                    return token
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading gh CLI config: {e}")
    return None

def normalize_body(body: Optional[str]) -> str:
    """Normalize a PR body so bodies round-tripped through GitHub compare equal."""
    return (body or "").replace("\r\n", "\n").strip()

def to_pull_request(stable_id: StableId, gh_pr: GitHubPullRequestProtocol) -> PullRequest:
    state = "merged" if gh_pr.merged else gh_pr.state
    return PullRequest(stable_id, gh_pr.number, gh_pr.head.ref, gh_pr.base.ref,
                       gh_pr.title or "", gh_pr.body or "", state)

@contextmanager
def host_call(what: str) -> Iterator[None]:
    """Turn PyGithub and HTTP failures into HostApiError."""
    try:
        yield
    except GithubException as e:
        message = e.data.get("message") if isinstance(e.data, dict) else e.data
        raise HostApiError(f"GitHub {what} failed ({e.status}): {message}") from e
    except requests.RequestException as e:
        raise HostApiError(f"GitHub {what} failed: {e}") from e

class GitHubClient:
    """GitHub client implementation."""
    def __init__(self, config: GherritConfig, github_client: Optional[PyGithubProtocol] = None):
        """Initialize with config and GitHub client implementation (real or fake)."""
        self.config = config
        self.client = github_client
        self._repo: Optional[GitHubRepoProtocol] = None

    @property
    def repo(self) -> GitHubRepoProtocol:
        """Get GitHub repository."""
        if self._repo is None:
            owner = self.config.repo.github_repo_owner
            name = self.config.repo.github_repo_name
            if self.client is None:
                raise ConfigError(
                    "No GitHub token found. Try one of:\n"
                    "1. Set GITHUB_TOKEN env var\n"
                    "2. Log in with 'gh auth login'"
                )
            if not owner or not name:
                raise ConfigError(
                    f"Could not determine the GitHub repository from remote '{self.config.repo.remote}'. "
                    "Set repo.github_repo_owner and repo.github_repo_name in .gherrit.yaml."
                )
            with host_call(f"get repo {owner}/{name}"):
                self._repo = self.client.get_repo(f"{owner}/{name}")
        return self._repo

    @repo.setter
    def repo(self, value: GitHubRepoProtocol) -> None:
        self._repo = value

    def find_pull_requests(self, stable_id: StableId) -> List[PullRequest]:
        """All PRs, in any state, whose head is the phantom branch of stable_id."""
        owner = self.config.repo.github_repo_owner
        logger.info(f"> github find pulls {owner}:{stable_id}")
        with host_call(f"list pulls for {stable_id}"):
            pulls = self.repo.get_pulls(state="all", head=f"{owner}:{stable_id}")
            found = [to_pull_request(stable_id, pr) for pr in pulls if pr.head.ref == stable_id]
        logger.debug(f"Found {len(found)} PR(s) for {stable_id}: {[f'#{p.number} {p.state}' for p in found]}")
        return found

    def create_pull_request(self, stable_id: StableId, base: str, title: str, body: str) -> PullRequest:
        logger.info(f"> github create {stable_id} -> {base} : {title}")
        with host_call(f"create pull for {stable_id}"):
            gh_pr = self.repo.create_pull(title=title, body=body, base=base, head=stable_id)
        return PullRequest(stable_id, gh_pr.number, stable_id, base, title, body, "open")

    def update_pull_request(self, pr: PullRequest, base: Optional[str] = None, title: Optional[str] = None,
                            body: Optional[str] = None) -> PullRequest:
        """Edit only the given fields of a PR."""
        fields = [name for name, value in (("base", base), ("title", title), ("body", body)) if value is not None]
        if not fields:
            return pr
        logger.info(f"> github update #{pr.number} ({', '.join(fields)}) : {title or pr.title}")
        with host_call(f"update pull #{pr.number}"):
            self.repo.get_pull(pr.number).edit(title=title, body=body, base=base)
        if base is not None:
            pr.base_branch = base
        if title is not None:
            pr.title = title
        if body is not None:
            pr.body = body
        return pr

    def format_stack_markdown(self, current: StableId, stack: Sequence[StackEntry]) -> str:
        """Format stack of PRs as markdown, top of the stack first, each with its state."""
        show_pr_titles = self.config.repo.show_pr_titles_in_stack
        lines: List[str] = []
        for entry in reversed(stack):
            suffix = " ⬅" if entry.stable_id == current else ""
            if entry.number is None:
                lines.append(f"- {entry.stable_id} (pending){suffix}")
                continue
            title_part = f"{entry.title} " if show_pr_titles and entry.title else ""
            lines.append(f"- {title_part}#{entry.number} ({entry.state}){suffix}")
        return "\n".join(lines)

    def format_history_table(self, stable_id: StableId, version: int, base_branch: str) -> str:
        """Compare links between the published versions of one commit."""
        repo_url = self.config.repo.repo_url
        if version <= 1 or not repo_url:
            return ""
        prefix = self.config.repo.version_tag_prefix

        def tag(v: int) -> str:
            return short_ref(version_tag_ref(prefix, stable_id, v))

        lines = [
            f"**Latest update:** v{version} ([compare vs v{version - 1}]"
            f"({repo_url}/compare/{tag(version - 1)}..{tag(version)}))",
            "",
            "<details>",
            "<summary><strong>Patch history</strong></summary>",
            "",
            "| Version | Base |" + "".join(f" v{v} |" for v in range(1, version)),
            "| :--- | :--- |" + " :--- |" * (version - 1),
        ]
        for row in range(version, 0, -1):
            cells = [f"v{row}", f"[Base]({repo_url}/compare/{base_branch}..{tag(row)})"]
            for col in range(1, version):
                cells.append(f"[v{col}]({repo_url}/compare/{tag(col)}..{tag(row)})" if col < row else "")
            lines.append("| " + " | ".join(cells) + " |")
        lines += ["", "</details>"]
        return "\n".join(lines)

    def format_body(self, commit: Commit, stack: Sequence[StackEntry], version: int, base_branch: str,
                    parent: Optional[StableId], child: Optional[StableId],
                    public_branch: Optional[str] = None) -> str:
        """Format PR body with stack info, patch history and the metadata block."""
        body = strip_stable_id_trailer(commit.body, self.config.repo.stable_id_key)
        parts = [WARNING_COMMENT]
        if body:
            parts.append(body)
        parts.append("---")
        if public_branch:
            parts.append(f"This PR is on branch [{public_branch}](../tree/{public_branch}).")
        parts.append(f"**Stack**:\n{self.format_stack_markdown(commit.stable_id, stack)}")
        history = self.format_history_table(commit.stable_id, version, base_branch)
        if history:
            parts.append(history)
        meta = StackMetadata(stable_id=commit.stable_id, parent_stable_id=parent, child_stable_id=child)
        parts.append(render_metadata(meta))
        return "\n\n".join(parts)

    def format_initial_body(self, commit: Commit, parent: Optional[StableId], child: Optional[StableId]) -> str:
        """Body a PR is opened with, before the numbers of the PRs around it are known.

        The stack section is left out rather than rendered with placeholders,
        so the creation notification only carries the commit message.
        """
        body = strip_stable_id_trailer(commit.body, self.config.repo.stable_id_key)
        parts = [WARNING_COMMENT]
        if body:
            parts.append(body)
        meta = StackMetadata(stable_id=commit.stable_id, parent_stable_id=parent, child_stable_id=child)
        parts.append(render_metadata(meta))
        return "\n\n".join(parts)
