"""CLI entry point."""

import os
import sys
import click
import logging
from typing import Any, Dict, NoReturn, Optional, Tuple
from click import Context

from ...config import Config, default_config
from ...config.config_parser import parse_config
from ...config.models import GherritConfig
from ...git import RealGit, current_branch
from ...github import GitHubClient, find_github_token
from ...manage import BranchManagementGate, GitConfigBranchStore
from ...pretty import print_header, print_status
from ...sync import StackSync, SyncResult
from ...typing import ConfigError, GherritError, GitError, PartialSyncError

# Get module logger
logger = logging.getLogger(__name__)

def fail(err: GherritError) -> NoReturn:
    """Log the cause of a failed run and exit with the error's code."""
    for line in str(err).splitlines():
        logger.error(line)
    sys.exit(err.exit_code)

class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None, **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command: str) -> None:
        """Add an alias for a command."""
        self.aliases[alias] = command

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)

@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """pygherrit - one GitHub pull request per commit, kept in sync on every push."""
    ctx.obj = {}

def setup_git(directory: Optional[str] = None) -> Tuple[Config, RealGit]:
    """Setup Git command and config."""
    if directory:
        os.chdir(directory)

    # Check git dir
    git_cmd = RealGit(default_config())
    try:
        git_cmd.run_cmd("rev-parse --git-dir")
    except GitError as e:
        fail(ConfigError(f"Not in a git repository: {e}"))

    cfg = parse_config(git_cmd)
    config = Config(cfg)
    return config, RealGit(config)

def make_github_client(config: GherritConfig) -> GitHubClient:
    """Create a GitHub client backed by PyGithub.

    Without a token the client is created unconnected and fails with a
    ConfigError on first use, so runs that never reach GitHub still work.
    """
    from ...github.adapters import PyGithubAdapter

    host = config.repo.github_host
    token = find_github_token(host)
    if not token:
        logger.debug(f"No GitHub token found for {host}")
        return GitHubClient(config)
    return GitHubClient(config, PyGithubAdapter.from_token(token, host, config.tool.timeout))

def report(result: SyncResult) -> None:
    """Summarize a finished run."""
    if not result.managed or not result.stack:
        return
    pushed = f"{len(result.batch)} ref(s) pushed" if result.pushed else "no refs pushed"
    print_header(f"{result.branch}: {len(result.stack)} commit(s), {pushed}", file=sys.stderr)
    if result.report:
        r = result.report
        logger.info(f"PRs: {len(r.created)} created, {len(r.updated)} updated, {len(r.unchanged)} unchanged")
        for stable_id, pr in r.prs.items():
            logger.info(f"  #{pr.number} {stable_id}: {pr.title}")

def run_sync(directory: Optional[str], verbose: int, pretend: bool, allow_partial: bool = False) -> None:
    """Run one sync and exit non-zero on failure.

    With allow_partial, PRs that failed to sync after the push only produce
    warnings: the refs are live, and a re-run retries the PRs.
    """
    from ... import setup_logging
    setup_logging(verbose)

    config, git_cmd = setup_git(directory)
    if pretend:
        config.tool.pretend = True
    github = make_github_client(config)
    try:
        result = StackSync(config, git_cmd, github).run()
    except PartialSyncError as e:
        if not allow_partial:
            fail(e)
        for line in str(e).splitlines():
            logger.warning(line)
        if e.succeeded:
            logger.warning(f"Synced: {', '.join(e.succeeded)}")
        logger.warning("Letting the push through; run `pygherrit sync` to retry the failed pull requests")
        return
    except GherritError as e:
        fail(e)
    report(result)

directory_option = click.option(
    '-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
    help='Run as if pygherrit was started in DIRECTORY instead of the current working directory')
verbose_option = click.option(
    '-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
pretend_option = click.option(
    '--pretend', is_flag=True, help="Don't actually push or create/update pull requests, just show what would happen")

@cli.command(name="sync", help="Push the current stack and create or update one pull request per commit")
@directory_option
@verbose_option
@pretend_option
def sync(directory: Optional[str], verbose: int, pretend: bool) -> None:
    """Sync command."""
    run_sync(directory, verbose, pretend)

@cli.group(name="hook", help="Entry points called from git hooks")
def hook() -> None:
    pass

@hook.command(name="pre-push", help="Sync the stack before git pushes the current branch")
@click.argument('remote', required=False)
@click.argument('url', required=False)
@directory_option
@verbose_option
@pretend_option
def pre_push(remote: Optional[str], url: Optional[str], directory: Optional[str], verbose: int, pretend: bool) -> None:
    """Pre-push hook. A non-zero exit refuses the push git was about to make.

    PR failures after the refs went out do not refuse it.
    """
    logger.debug(f"pre-push called for remote={remote} url={url}")
    run_sync(directory, verbose, pretend, allow_partial=True)

@cli.command(name="status", help="Show the stack with its pull requests and published versions")
@directory_option
@verbose_option
def status(directory: Optional[str], verbose: int) -> None:
    """Status command."""
    from ... import setup_logging
    setup_logging(verbose)

    config, git_cmd = setup_git(directory)
    github = make_github_client(config)
    if github.client is None:
        logger.warning("No GitHub token found; showing refs only")
    try:
        branch = current_branch(git_cmd)
        rows = StackSync(config, git_cmd, github).status()
    except GherritError as e:
        fail(e)
    print_status(branch, rows)

def set_managed(directory: Optional[str], verbose: int, managed: bool, public: bool = False,
                force: bool = False) -> None:
    from ... import setup_logging
    setup_logging(verbose)

    config, git_cmd = setup_git(directory)
    try:
        branch = current_branch(git_cmd)
        gate = BranchManagementGate(config, GitConfigBranchStore(git_cmd))
        if managed:
            gate.manage(branch, public=public, force=force)
        else:
            gate.unmanage(branch, force=force)
    except GherritError as e:
        fail(e)

force_option = click.option(
    '--force', is_flag=True, help="Overwrite pushRemote/remote/merge branch config that was changed by hand")

@cli.command(name="manage", help="Sync the current branch as a stack on every push")
@click.option('--public/--private', default=False,
              help="Public stacks push the branch itself too; private ones (the default) only sync the stack")
@force_option
@directory_option
@verbose_option
def manage(public: bool, force: bool, directory: Optional[str], verbose: int) -> None:
    set_managed(directory, verbose, True, public, force)

@cli.command(name="unmanage", help="Push the current branch as a plain git branch")
@force_option
@directory_option
@verbose_option
def unmanage(force: bool, directory: Optional[str], verbose: int) -> None:
    set_managed(directory, verbose, False, force=force)

# Add command aliases
cli.add_alias('push', 'sync')
cli.add_alias('st', 'status')

def main() -> None:
    """Main entry point."""
    cli(obj={})

if __name__ == "__main__":
    main()
