"""Remote ref names and the batch of ref updates published per run."""

import re
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence, Tuple

from ..typing import StableId
from ..util import short

if TYPE_CHECKING:
    from ..versions import Allocation

# Get module logger
logger = logging.getLogger(__name__)

HEADS_PREFIX = "refs/heads/"
TAGS_PREFIX = "refs/tags/"

def phantom_branch_ref(stable_id: StableId) -> str:
    """Full remote ref of the phantom branch carrying a commit's latest content."""
    return f"{HEADS_PREFIX}{stable_id}"

def version_tag_ref(prefix: str, stable_id: StableId, version: int) -> str:
    """Full remote ref of an immutable version tag."""
    return f"{prefix}/{stable_id}/v{version}"

def short_ref(ref: str) -> str:
    """Strip refs/heads/ or refs/tags/ so the name can be used in web URLs."""
    for p in (HEADS_PREFIX, TAGS_PREFIX):
        if ref.startswith(p):
            return ref[len(p):]
    return ref

def version_tag_pattern(prefix: str) -> 're.Pattern[str]':
    return re.compile(rf'^{re.escape(prefix)}/(?P<stable_id>[^/]+)/v(?P<version>[1-9][0-9]*)$')

def parse_version_tag(prefix: str, ref: str) -> Optional[Tuple[StableId, int]]:
    """Split a version tag ref into (stable id, version), None if it is not one."""
    match = version_tag_pattern(prefix).match(ref)
    if not match:
        return None
    return StableId(match.group('stable_id')), int(match.group('version'))

@dataclass(frozen=True)
class RefUpdate:
    """Compare-and-swap update of one remote ref.

    expected_old of None means the ref must not exist yet.
    """
    name: str
    expected_old: Optional[str]
    new: str

    def lease_arg(self) -> str:
        return f"--force-with-lease={self.name}:{self.expected_old or ''}"

    def refspec(self) -> str:
        return f"{self.new}:{self.name}"

    def __str__(self) -> str:
        return f"{self.name}: {short(self.expected_old)} -> {short(self.new)}"

@dataclass(frozen=True)
class RefBatch:
    """Ref updates applied all-or-none. Ref names are unique within a batch."""
    updates: Tuple[RefUpdate, ...] = ()

    def __post_init__(self) -> None:
        names = [u.name for u in self.updates]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Ref batch updates {', '.join(dupes)} more than once")

    def __len__(self) -> int:
        return len(self.updates)

    def __iter__(self) -> Iterator[RefUpdate]:
        return iter(self.updates)

    def __bool__(self) -> bool:
        return bool(self.updates)

    def names(self) -> List[str]:
        return [u.name for u in self.updates]

def plan_ref_updates(allocations: Sequence['Allocation'], prefix: str) -> RefBatch:
    """Turn version allocations into one batch.

    Every changed commit moves its phantom branch under the lease of the head
    observed during allocation, and creates its new version tag, which must
    not exist yet. Unchanged commits contribute nothing.
    """
    updates: List[RefUpdate] = []
    for alloc in allocations:
        if not alloc.changed:
            logger.debug(f"{alloc.stable_id} unchanged at v{alloc.version}, nothing to publish")
            continue
        sha = alloc.commit.commit_hash
        updates.append(RefUpdate(phantom_branch_ref(alloc.stable_id), alloc.expected_head, sha))
        updates.append(RefUpdate(version_tag_ref(prefix, alloc.stable_id, alloc.version), None, sha))
    batch = RefBatch(tuple(updates))
    logger.debug(f"Planned {len(batch)} ref update(s)")
    return batch
