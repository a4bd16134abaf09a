"""Shared utilities for pygherrit tests."""
import logging
import subprocess

logger = logging.getLogger(__name__)

def git(repo_dir: str, *args: str, check: bool = True) -> str:
    """Run git in repo_dir and return its stripped stdout.

    Arguments are passed as a list, so commit messages need no shell quoting.
    With check=False a failing command returns whatever it printed.
    """
    logger.debug(f"Running git {' '.join(args)} in {repo_dir}")
    result = subprocess.run(["git", *args], check=check, cwd=repo_dir, capture_output=True, text=True)
    if result.returncode and result.stderr:
        logger.debug(f"git stderr: {result.stderr.strip()}")
    return result.stdout.strip()
