"""Pydantic models for config types."""

from typing import Optional
from pydantic import BaseModel, Field

class RepoConfig(BaseModel):
    """Repository configuration."""
    remote: str = "origin"
    upstream_branch: str = "main"
    github_host: str = "github.com"
    github_repo_owner: Optional[str] = None
    github_repo_name: Optional[str] = None
    stable_id_key: str = "gherrit-pr-id"
    version_tag_prefix: str = "refs/tags/gherrit"
    show_pr_titles_in_stack: bool = False

    class Config:
        """Pydantic config."""
        extra = "allow"

    @property
    def repo_url(self) -> Optional[str]:
        """Web URL of the repository, if owner and name are known."""
        if self.github_repo_owner and self.github_repo_name:
            return f"https://{self.github_host}/{self.github_repo_owner}/{self.github_repo_name}"
        return None

class UserConfig(BaseModel):
    """User configuration."""
    log_git_commands: bool = True

    class Config:
        """Pydantic config."""
        extra = "allow"

class ToolConfig(BaseModel):
    """Tool configuration."""
    concurrency: int = 0
    pretend: bool = False
    timeout: float = 60.0

    class Config:
        """Pydantic config."""
        extra = "allow"

class GherritConfig(BaseModel):
    """Full pygherrit configuration."""
    repo: RepoConfig = Field(default_factory=RepoConfig)
    user: UserConfig = Field(default_factory=UserConfig)
    tool: ToolConfig = Field(default_factory=ToolConfig)

    class Config:
        """Pydantic config."""
        extra = "allow"
