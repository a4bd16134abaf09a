"""Config module."""

from typing import Any, Dict
from .models import RepoConfig, UserConfig, GherritConfig, ToolConfig

class Config(GherritConfig):
    """Validated config built from the nested dict that parse_config returns.

    Tool settings live under tool.pygherrit in that dict; a flat tool section
    is accepted too.
    """
    def __init__(self, sections: Dict[str, Dict[str, Any]]):
        tool = sections.get('tool', {})
        super().__init__(
            repo=RepoConfig.model_validate(sections.get('repo', {})),
            user=UserConfig.model_validate(sections.get('user', {})),
            tool=ToolConfig.model_validate(tool.get('pygherrit', tool)),
        )

def default_config() -> Config:
    """Config with every default, for callers that have no repository to read."""
    return Config({'repo': {}, 'user': {}, 'tool': {}})
