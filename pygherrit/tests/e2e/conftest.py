"""Fixtures for end-to-end tests against a local bare remote and fake GitHub."""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Generator, List, Optional

import pytest
import yaml
from _pytest.monkeypatch import MonkeyPatch

from pygherrit.config import Config
from pygherrit.config.config_parser import parse_config
from pygherrit.git import RealGit
from pygherrit.github import GitHubClient
from pygherrit.sync import StackSync, SyncResult
from pygherrit.tests.utils import git
from pygherrit.tests.e2e.fake_pygithub import FakeGithub, FakeRepository

logger = logging.getLogger(__name__)

OWNER = "testowner"
NAME = "teststack"

@dataclass
class RepoContext:
    """Local clone, its bare remote and the fake GitHub behind them."""
    repo_dir: str
    remote_dir: str
    fake: FakeGithub
    branch: str = "feature"
    commit_count: int = field(default=0)

    @property
    def config(self) -> Config:
        return Config(parse_config(RealGit(Config({}), self.repo_dir), self.repo_dir))

    @property
    def git_cmd(self) -> RealGit:
        return RealGit(self.config, self.repo_dir)

    @property
    def github(self) -> GitHubClient:
        return GitHubClient(self.config, self.fake)

    @property
    def repo(self) -> FakeRepository:
        return self.fake.get_repo(f"{OWNER}/{NAME}")

    def git(self, *args: str, check: bool = True) -> str:
        return git(self.repo_dir, *args, check=check)

    def remote_git(self, *args: str) -> str:
        return git(self.remote_dir, *args)

    def make_commit(self, subject: str, stable_id: Optional[str], body: str = "") -> str:
        """Commit a new file, with a stable id trailer unless stable_id is None."""
        self.commit_count += 1
        file_name = f"file{self.commit_count}.txt"
        with open(os.path.join(self.repo_dir, file_name), "w") as f:
            f.write(f"{subject}\n")
        self.git("add", file_name)
        message = subject
        if body:
            message += f"\n\n{body}"
        if stable_id is not None:
            message += f"\n\ngherrit-pr-id: {stable_id}"
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")

    def amend(self, content: str) -> str:
        """Change the newest commit's tree, keeping its message."""
        with open(os.path.join(self.repo_dir, f"file{self.commit_count}.txt"), "a") as f:
            f.write(f"{content}\n")
        self.git("commit", "-q", "-a", "--amend", "--no-edit")
        return self.git("rev-parse", "HEAD")

    def remote_refs(self) -> Dict[str, str]:
        """Phantom branches and version tags on the bare remote (everything but main)."""
        output = self.remote_git("for-each-ref", "--format=%(refname) %(objectname)")
        refs = dict(line.split(" ", 1) for line in output.splitlines() if line)
        return {name: sha for name, sha in refs.items() if name != "refs/heads/main"}

    def stack_sync(self, **kwargs: object) -> StackSync:
        return StackSync(self.config, self.git_cmd, self.github, **kwargs)  # type: ignore[arg-type]

    def sync(self) -> SyncResult:
        return self.stack_sync().run()

    def pr_bases(self, *stable_ids: str) -> List[str]:
        return [self.repo.pull_for(sid).base_ref for sid in stable_ids]

@pytest.fixture
def repo_ctx(tmp_path, monkeypatch: MonkeyPatch) -> Generator[RepoContext, None, None]:
    """A clone checked out on a new branch 'feature' off main, with main pushed to a bare remote."""
    remote_dir = str(tmp_path / "remote.git")
    repo_dir = str(tmp_path / NAME)
    os.makedirs(repo_dir)

    git(str(tmp_path), "init", "-q", "--bare", remote_dir)
    git(repo_dir, "init", "-q")
    git(repo_dir, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo_dir, "config", "user.name", "Test User")
    git(repo_dir, "config", "user.email", "test@example.com")
    git(repo_dir, "config", "commit.gpgsign", "false")
    git(repo_dir, "remote", "add", "origin", f"file://{remote_dir}")

    with open(os.path.join(repo_dir, ".gherrit.yaml"), "w") as f:
        yaml.safe_dump({'repo': {'github_repo_owner': OWNER, 'github_repo_name': NAME}}, f)
    with open(os.path.join(repo_dir, "README.md"), "w") as f:
        f.write(f"# {NAME} test repository\n")
    git(repo_dir, "add", "README.md", ".gherrit.yaml")
    git(repo_dir, "commit", "-q", "-m", "Initial commit")
    git(repo_dir, "push", "-q", "-u", "origin", "main")
    git(repo_dir, "checkout", "-q", "-b", "feature")

    # RealGit and the CLI resolve the repository from the working directory
    monkeypatch.chdir(repo_dir)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    logger.info(f"Test repository at {repo_dir}, remote at {remote_dir}")
    yield RepoContext(repo_dir, remote_dir, FakeGithub())
