"""Config parser logic."""

import os
import re
from typing import Any, Dict, Optional, Tuple
import logging
import yaml

from ...typing import GitInterface

# Get module logger
logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".gherrit.yaml"

SectionConfig = Dict[str, Any]  # Use Any since yaml can return various types
Config = Dict[str, SectionConfig]

# git@github.com:owner/repo.git, ssh://git@github.com/owner/repo, https://github.com/owner/repo.git
REMOTE_URL_RE = re.compile(r'^(?:[\w.+-]+://)?(?:[^@/]+@)?(?P<host>[^/:]+)[:/](?P<owner>[^/]+)/(?P<name>[^/]+?)(?:\.git)?/?$')

def parse_remote_url(remote_url: str) -> Optional[Tuple[str, str, str]]:
    """Split a GitHub remote URL into (host, owner, name)."""
    match = REMOTE_URL_RE.match(remote_url.strip())
    if not match:
        return None
    return match.group('host'), match.group('owner'), match.group('name')

def parse_config(git_cmd: GitInterface, repo_root: Optional[str] = None) -> Config:
    """Parse config from defaults, the repository config file and the git remote."""
    config: Config = {
        'repo': {
            'remote': 'origin',
            'upstream_branch': 'main',
            'github_host': 'github.com',
            'stable_id_key': 'gherrit-pr-id',
            'version_tag_prefix': 'refs/tags/gherrit',
            'show_pr_titles_in_stack': False,
        },
        'user': {},
        'tool': {
            'pygherrit': {
                'concurrency': 0,
                'pretend': False,
                'timeout': 60.0,
            }
        }
    }

    if repo_root is None:
        try:
            repo_root = git_cmd.must_git("rev-parse --show-toplevel").strip()
        except Exception as e:
            logger.debug(f"Could not find repository root: {e}")
            repo_root = os.getcwd()

    config_path = os.path.join(repo_root, CONFIG_FILE_NAME)
    try:
        with open(config_path, 'r') as f:
            logger.debug(f"Found {CONFIG_FILE_NAME}, loading...")
            file_config = yaml.safe_load(f)
            logger.debug(f"Config from {CONFIG_FILE_NAME}: {file_config}")
            if file_config:
                for section in ('repo', 'user'):
                    if isinstance(file_config.get(section), dict):
                        config[section].update(file_config[section])
                if isinstance(file_config.get('tool'), dict):
                    config['tool']['pygherrit'].update(file_config['tool'])
    except FileNotFoundError:
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")

    # Try to extract repo owner/name from git remote if not in config
    if not config['repo'].get('github_repo_owner') or not config['repo'].get('github_repo_name'):
        remote = config['repo']['remote']
        try:
            remote_url = git_cmd.must_git(f"remote get-url {remote}").strip()
            parsed = parse_remote_url(remote_url)
            if parsed:
                _host, owner, name = parsed
                if not config['repo'].get('github_repo_owner'):
                    config['repo']['github_repo_owner'] = owner
                if not config['repo'].get('github_repo_name'):
                    config['repo']['github_repo_name'] = name
            else:
                logger.debug(f"Remote URL {remote_url} does not look like a GitHub repository")
        except Exception as e:
            logger.warning(f"Failed to parse git remote '{remote}': {e}")

    return config
