"""Reading and atomically updating refs on the git remote."""

import shlex
import logging
from typing import Dict, List, Optional, Protocol, Sequence

from ..typing import GitInterface, GitError, GherritError, PushRejected, PushTransportError, RemoteReadError
from ..refs import RefBatch

# Get module logger
logger = logging.getLogger(__name__)

# Push output that means a lease or ref-existence check failed
REJECTION_MARKERS = (
    "[rejected]",
    "stale info",
    "atomic push failed",
    "already exists",
    "fetch first",
    "non-fast-forward",
)

class RefTransaction(Protocol):
    """Applies a RefBatch all-or-none, raising ConflictError or TransportError."""
    def apply(self, batch: RefBatch) -> None:
        ...

def parse_ls_remote(output: str) -> Dict[str, str]:
    """Parse `git ls-remote` output into {ref: sha}, skipping peeled tag lines."""
    refs: Dict[str, str] = {}
    for line in output.splitlines():
        parts = line.strip().split()
        if len(parts) != 2:
            continue
        sha, ref = parts
        if ref.endswith("^{}"):
            continue
        refs[ref] = sha
    return refs

def porcelain_rejections(output: str) -> List[str]:
    """Lines of `git push --porcelain` output for refs that were not updated."""
    return [line for line in output.splitlines() if line.startswith("!")]

def classify_push_failure(output: str) -> GherritError:
    """Map failed push output to a conflict or a transport error."""
    lowered = output.lower()
    if any(marker in lowered for marker in REJECTION_MARKERS):
        return PushRejected(output.strip())
    return PushTransportError(f"Push failed: {output.strip()}")

class GitRemote:
    """A git remote reached through the local git binary."""
    def __init__(self, git_cmd: GitInterface, remote: str, timeout: Optional[float] = None):
        self.git_cmd = git_cmd
        self.remote = remote
        self.timeout = timeout

    def list_refs(self, patterns: Sequence[str]) -> Dict[str, str]:
        args = ["ls-remote", self.remote] + list(patterns)
        try:
            output = self.git_cmd.must_git(" ".join(shlex.quote(a) for a in args), self.timeout)
        except GitError as e:
            raise RemoteReadError(f"Could not read refs from {self.remote}: {e}") from e
        return parse_ls_remote(output)

    def apply(self, batch: RefBatch) -> None:
        if not batch:
            return
        args = ["push", "--atomic", "--no-verify", "--porcelain", self.remote]
        args += [u.lease_arg() for u in batch]
        args += [u.refspec() for u in batch]
        try:
            output = self.git_cmd.must_git(" ".join(shlex.quote(a) for a in args), self.timeout)
        except GitError as e:
            raise classify_push_failure(f"{e.stdout}\n{e.stderr}") from e
        rejected = porcelain_rejections(output)
        if rejected:
            raise PushRejected("\n".join(rejected))

class AtomicPushExecutor:
    """Publishes a RefBatch through a RefTransaction.

    There is no retry here. A rejected batch changed nothing on the remote
    and the next run re-reads the refs and allocates again.
    """
    def __init__(self, transaction: RefTransaction, pretend: bool = False):
        self.transaction = transaction
        self.pretend = pretend

    def execute(self, batch: RefBatch) -> bool:
        """Apply the batch. Returns True if refs were written."""
        if not batch:
            logger.info("All commits are up to date, nothing to push")
            return False
        if self.pretend:
            logger.info(f"Pretend: would update {len(batch)} ref(s) atomically")
            for update in batch:
                logger.info(f"  {update}")
            return False
        logger.info(f"Pushing {len(batch)} ref(s) atomically")
        for update in batch:
            logger.debug(f"  {update}")
        self.transaction.apply(batch)
        return True
