"""PyGithub objects behind the protocols GitHubClient talks to."""

import logging
from typing import Any, List, Optional

from github import Auth, Github
from github.GithubObject import NotSet
from github.PullRequest import PullRequest as PyGithubPullRequest
from github.Repository import Repository

from . import GitHubPullRequestProtocol, GitHubRefProtocol, GitHubRepoProtocol, PyGithubProtocol

logger = logging.getLogger(__name__)

def or_not_set(value: Optional[Any]) -> Any:
    """PyGithub leaves a field alone only when it is NotSet, not when it is None or empty."""
    return NotSet if value is None or value == "" else value

class PyGithubPullRequestAdapter(GitHubPullRequestProtocol):
    def __init__(self, pr: PyGithubPullRequest) -> None:
        self._pr = pr

    @property
    def number(self) -> int:
        return self._pr.number

    @property
    def title(self) -> str:
        return self._pr.title

    @property
    def body(self) -> Optional[str]:
        return self._pr.body

    @property
    def state(self) -> str:
        return self._pr.state

    @property
    def merged(self) -> bool:
        return self._pr.merged

    @property
    def base(self) -> GitHubRefProtocol:
        return self._pr.base

    @property
    def head(self) -> GitHubRefProtocol:
        return self._pr.head

    def edit(self, title: Optional[str] = None, body: Optional[str] = None,
             state: Optional[str] = None, base: Optional[str] = None) -> None:
        self._pr.edit(title=or_not_set(title), body=or_not_set(body),
                      state=or_not_set(state), base=or_not_set(base))

class PyGithubRepoAdapter(GitHubRepoProtocol):
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        return PyGithubPullRequestAdapter(self._repo.get_pull(number))

    def get_pulls(self, state: str = "open", head: str = "", base: str = "") -> List[GitHubPullRequestProtocol]:
        """List pull requests. Pages are fetched here, so errors surface in the caller's host_call."""
        pulls = self._repo.get_pulls(state=state, head=or_not_set(head), base=or_not_set(base))
        return [PyGithubPullRequestAdapter(pr) for pr in pulls]

    def create_pull(self, title: str, body: str, base: str, head: str,
                    maintainer_can_modify: bool = True, draft: bool = False) -> GitHubPullRequestProtocol:
        pr = self._repo.create_pull(base=base, head=head, title=title, body=body,
                                    maintainer_can_modify=maintainer_can_modify, draft=draft)
        return PyGithubPullRequestAdapter(pr)

class PyGithubAdapter(PyGithubProtocol):
    """Entry point: wraps a connected github.Github."""
    def __init__(self, github: Github) -> None:
        self._github = github

    @classmethod
    def from_token(cls, token: str, host: str = "github.com", timeout: float = 60.0) -> 'PyGithubAdapter':
        """Connect to github.com or a GitHub Enterprise host."""
        base_url = "https://api.github.com" if host == "github.com" else f"https://{host}/api/v3"
        logger.debug(f"Connecting to {base_url}")
        return cls(Github(base_url=base_url, auth=Auth.Token(token), timeout=int(timeout)))

    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        return PyGithubRepoAdapter(self._github.get_repo(full_name_or_id))
