"""Keeping one PR per commit chained base-to-head on GitHub."""

import concurrent.futures
from concurrent.futures import Future
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from ..typing import Commit, Stack, StableId, ClosedPullRequestError, TransportError, PartialSyncError
from ..config.models import GherritConfig
from ..github import GitHubClient, PullRequest, StackEntry, normalize_body

# Get module logger
logger = logging.getLogger(__name__)

@dataclass
class ChainLink:
    """Desired PR for one commit: head is its phantom branch, base the one below it."""
    commit: Commit
    base_branch: str
    parent: Optional[StableId]
    child: Optional[StableId]
    version: int
    pr: Optional[PullRequest] = None

    @property
    def stable_id(self) -> StableId:
        return self.commit.stable_id

    @property
    def head_branch(self) -> str:
        return self.commit.stable_id

@dataclass
class SyncReport:
    created: List[StableId] = field(default_factory=list)
    updated: List[StableId] = field(default_factory=list)
    unchanged: List[StableId] = field(default_factory=list)
    failed: Dict[StableId, str] = field(default_factory=dict)
    prs: Dict[StableId, PullRequest] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[StableId]:
        return [sid for sid in self.prs if sid not in self.failed]

def select_pull_request(stable_id: StableId, candidates: Sequence[PullRequest]) -> Optional[PullRequest]:
    """Pick the open PR for a phantom branch.

    A branch whose PRs are all closed or merged cannot be pushed to again.
    """
    open_prs = [p for p in candidates if p.is_open]
    if open_prs:
        if len(open_prs) > 1:
            logger.warning(f"{stable_id} has {len(open_prs)} open PRs, using the newest")
        return max(open_prs, key=lambda p: p.number)
    if candidates:
        last = max(candidates, key=lambda p: p.number)
        raise ClosedPullRequestError(stable_id, last.number, last.state)
    return None

class PrChainSynchronizer:
    """Creates and updates the PR of every commit, strictly bottom to top."""
    def __init__(self, config: GherritConfig, github: GitHubClient):
        self.config = config
        self.github = github
        self.concurrency: int = config.tool.concurrency

    def plan_links(self, stack: Stack, versions: Mapping[StableId, int]) -> List[ChainLink]:
        links: List[ChainLink] = []
        for i, commit in enumerate(stack):
            parent = stack.parent_of(i)
            child = stack.child_of(i)
            base = parent.stable_id if parent else self.config.repo.upstream_branch
            links.append(ChainLink(
                commit, base,
                parent.stable_id if parent else None,
                child.stable_id if child else None,
                versions.get(commit.stable_id, 1),
            ))
        return links

    def lookup(self, links: Sequence[ChainLink]) -> None:
        """Find the existing PR of every link. Runs before anything is pushed."""
        ids = [link.stable_id for link in links]
        if self.concurrency > 0 and len(ids) > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.concurrency) as executor:
                futures: Sequence[Future[List[PullRequest]]] = [
                    executor.submit(self.github.find_pull_requests, sid) for sid in ids
                ]
                concurrent.futures.wait(futures)
                found = [future.result() for future in futures]
        else:
            found = [self.github.find_pull_requests(sid) for sid in ids]

        for link, candidates in zip(links, found):
            link.pr = select_pull_request(link.stable_id, candidates)
            if link.pr:
                logger.debug(f"{link.stable_id}: found PR #{link.pr.number}")

    def stack_entries(self, links: Sequence[ChainLink]) -> List[StackEntry]:
        return [StackEntry(link.stable_id, link.pr.number, link.commit.subject, link.pr.state) if link.pr
                else StackEntry(link.stable_id, None, link.commit.subject)
                for link in links]

    def desired_body(self, link: ChainLink, links: Sequence[ChainLink], public_branch: Optional[str] = None) -> str:
        return self.github.format_body(link.commit, self.stack_entries(links), link.version,
                                       link.base_branch, link.parent, link.child, public_branch)

    def sync(self, links: Sequence[ChainLink], public_branch: Optional[str] = None) -> SyncReport:
        """Create missing PRs, then edit fields that differ from the desired state.

        Bodies are rendered in two steps. A PR is opened with its commit
        message and metadata only, since GitHub assigns numbers on creation
        and the stack section needs all of them. Once every PR exists the full
        body is rendered, so each new PR gets exactly one body edit and
        existing PRs are edited only when something differs.

        A failure on one PR does not undo the others. Failures are collected
        and raised together as PartialSyncError after every PR was attempted.
        """
        report = SyncReport()

        for link in links:
            if link.pr is not None:
                continue
            try:
                link.pr = self.github.create_pull_request(
                    link.stable_id, link.base_branch, link.commit.subject,
                    self.github.format_initial_body(link.commit, link.parent, link.child))
                report.created.append(link.stable_id)
            except TransportError as e:
                logger.error(f"Failed to create PR for {link.stable_id}: {e}")
                report.failed[link.stable_id] = str(e)

        for link in links:
            pr = link.pr
            if pr is None:
                continue
            report.prs[link.stable_id] = pr
            changes: Dict[str, str] = {}
            if pr.base_branch != link.base_branch:
                changes['base'] = link.base_branch
            if pr.title != link.commit.subject:
                changes['title'] = link.commit.subject
            body = self.desired_body(link, links, public_branch)
            if normalize_body(pr.body) != normalize_body(body):
                changes['body'] = body
            if not changes:
                if link.stable_id not in report.created:
                    report.unchanged.append(link.stable_id)
                continue
            try:
                self.github.update_pull_request(pr, **changes)
                if link.stable_id not in report.created:
                    report.updated.append(link.stable_id)
            except TransportError as e:
                logger.error(f"Failed to update PR #{pr.number} for {link.stable_id}: {e}")
                report.failed[link.stable_id] = str(e)

        if report.failed:
            raise PartialSyncError(report.succeeded, report.failed)
        return report
