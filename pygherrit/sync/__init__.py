"""Stack sync pipeline: extract, allocate, plan, push, reconcile PRs."""

import time
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from ..typing import GitInterface, Stack, StableId
from ..config.models import GherritConfig
from ..git import current_branch, get_local_commit_stack
from ..versions import Allocation, read_remote_snapshot, allocate_versions
from ..refs import RefBatch, plan_ref_updates
from ..push import AtomicPushExecutor, GitRemote
from ..github import GitHubClient
from ..github.types import StackMetadata
from ..manage import BranchManagementGate, BranchStateStore, GitConfigBranchStore
from .chain import ChainLink, PrChainSynchronizer, SyncReport

# Get module logger
logger = logging.getLogger(__name__)

class Remote(Protocol):
    """A remote that can be read with ls-remote patterns and updated atomically."""
    def list_refs(self, patterns: List[str]) -> Dict[str, str]:
        ...

    def apply(self, batch: RefBatch) -> None:
        ...

@dataclass
class SyncResult:
    branch: str
    managed: bool = True
    stack: Stack = field(default_factory=Stack)
    allocations: List[Allocation] = field(default_factory=list)
    batch: RefBatch = field(default_factory=RefBatch)
    pushed: bool = False
    report: Optional[SyncReport] = None

    def versions(self) -> Dict[StableId, int]:
        return {a.stable_id: a.version for a in self.allocations}

@dataclass
class StatusRow:
    stable_id: StableId
    subject: str
    commit_hash: str
    # Highest published version, 0 if never pushed
    version: int
    changed: bool
    number: Optional[int] = None
    pr_state: Optional[str] = None
    metadata_ok: Optional[bool] = None

class StackSync:
    """Runs one synchronization of the current branch's stack.

    The stages can also be called one by one; run() strings them together.
    Everything before publish() only reads remote state, so a failure there
    leaves the remote untouched.
    """
    def __init__(self, config: GherritConfig, git_cmd: GitInterface, github: GitHubClient,
                 remote: Optional[Remote] = None, store: Optional[BranchStateStore] = None):
        self.config = config
        self.git_cmd = git_cmd
        self.github = github
        self.remote: Remote = remote or GitRemote(git_cmd, config.repo.remote, config.tool.timeout)
        self.gate = BranchManagementGate(config, store or GitConfigBranchStore(git_cmd))
        self.executor = AtomicPushExecutor(self.remote, pretend=config.tool.pretend)
        self.chain = PrChainSynchronizer(config, github)

    def extract(self, head: str = "HEAD") -> Stack:
        return get_local_commit_stack(self.config, self.git_cmd, head=head)

    def allocate(self, stack: Stack) -> List[Allocation]:
        snapshot = read_remote_snapshot(self.remote, stack.ids(), self.config.repo.version_tag_prefix)
        return allocate_versions(stack, snapshot)

    def plan(self, allocations: List[Allocation]) -> RefBatch:
        return plan_ref_updates(allocations, self.config.repo.version_tag_prefix)

    def lookup(self, stack: Stack, allocations: List[Allocation]) -> List[ChainLink]:
        links = self.chain.plan_links(stack, {a.stable_id: a.version for a in allocations})
        self.chain.lookup(links)
        return links

    def publish(self, batch: RefBatch) -> bool:
        return self.executor.execute(batch)

    def reconcile(self, links: List[ChainLink], public_branch: Optional[str] = None) -> SyncReport:
        return self.chain.sync(links, public_branch)

    def run(self, head: str = "HEAD", branch: Optional[str] = None) -> SyncResult:
        start_time = time.time()
        branch = branch or current_branch(self.git_cmd)
        if not self.gate.should_sync(branch):
            return SyncResult(branch, managed=False)
        # Public branches are pushed too, so PR bodies can point at them
        public_branch = branch if self.gate.state(branch).public else None

        result = SyncResult(branch)
        result.stack = self.extract(head)
        if not result.stack:
            logger.info("No commits to sync")
            return result

        result.allocations = self.allocate(result.stack)
        result.batch = self.plan(result.allocations)
        links = self.lookup(result.stack, result.allocations)

        result.pushed = self.publish(result.batch)
        if self.config.tool.pretend:
            for link in links:
                action = f"update #{link.pr.number}" if link.pr else "create PR"
                logger.info(f"Pretend: would {action} for {link.stable_id} (base {link.base_branch})")
            return result

        result.report = self.reconcile(links, public_branch)
        logger.debug(f"Sync of {len(result.stack)} commit(s) took {time.time() - start_time:.2f}s")
        return result

    def status(self, head: str = "HEAD") -> List[StatusRow]:
        """Read-only view of the stack against remote refs and PRs, bottom first."""
        stack = self.extract(head)
        rows: List[StatusRow] = []
        for alloc in self.allocate(stack):
            commit = alloc.commit
            rows.append(StatusRow(commit.stable_id, commit.subject, commit.commit_hash,
                                  alloc.log.max_version, alloc.changed))
        if not rows or self.github.client is None:
            return rows

        owner = self.config.repo.github_repo_owner
        for i, row in enumerate(rows):
            candidates = self.github.find_pull_requests(row.stable_id)
            if not candidates:
                continue
            open_prs = [p for p in candidates if p.is_open]
            pr = max(open_prs or candidates, key=lambda p: p.number)
            row.number = pr.number
            row.pr_state = pr.state
            parent = stack.parent_of(i)
            child = stack.child_of(i)
            expected = StackMetadata(stable_id=row.stable_id,
                                     parent_stable_id=parent.stable_id if parent else None,
                                     child_stable_id=child.stable_id if child else None)
            row.metadata_ok = pr.metadata == expected
            logger.debug(f"{owner}:{row.stable_id} #{pr.number} metadata={pr.metadata}")
        return rows
