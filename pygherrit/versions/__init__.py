"""Per-commit version history derived from the remote ref namespace."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..typing import Commit, Stack, StableId
from ..refs import HEADS_PREFIX, phantom_branch_ref, parse_version_tag, version_tag_ref

# Get module logger
logger = logging.getLogger(__name__)

# Above this many stable ids, list whole namespaces instead of one pattern per id
MAX_LS_REMOTE_PATTERNS = 50

class RemoteRefReader(Protocol):
    """Reads remote refs matching ls-remote patterns, as a {ref: sha} map."""
    def list_refs(self, patterns: Sequence[str]) -> Dict[str, str]:
        ...

@dataclass(frozen=True)
class VersionEntry:
    version: int
    fingerprint: str

@dataclass(frozen=True)
class VersionLog:
    """Append-only version history of one stable id.

    Entries are kept sorted by version. The fingerprint of an entry is the
    commit the version tag points at.
    """
    stable_id: StableId
    entries: Tuple[VersionEntry, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.entries, key=lambda e: e.version))
        versions = [e.version for e in ordered]
        if len(set(versions)) != len(versions):
            raise ValueError(f"Version log of {self.stable_id} repeats a version: {versions}")
        if any(v < 1 for v in versions):
            raise ValueError(f"Version log of {self.stable_id} has a version below 1: {versions}")
        object.__setattr__(self, 'entries', ordered)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def latest(self) -> Optional[VersionEntry]:
        return self.entries[-1] if self.entries else None

    @property
    def max_version(self) -> int:
        return self.entries[-1].version if self.entries else 0

    @property
    def next_version(self) -> int:
        return self.max_version + 1

    def versions(self) -> List[int]:
        return [e.version for e in self.entries]

    def fingerprint_of(self, version: int) -> Optional[str]:
        for e in self.entries:
            if e.version == version:
                return e.fingerprint
        return None

    def is_unchanged(self, commit_hash: str) -> bool:
        """True when the latest version already points at this commit."""
        return self.latest is not None and self.latest.fingerprint == commit_hash

    def append(self, fingerprint: str) -> 'VersionLog':
        """Return a new log with the next version added."""
        return VersionLog(self.stable_id, self.entries + (VersionEntry(self.next_version, fingerprint),))

@dataclass(frozen=True)
class RemoteSnapshot:
    """Phantom heads and version logs as observed in one remote read."""
    heads: Mapping[StableId, str] = field(default_factory=dict)
    logs: Mapping[StableId, VersionLog] = field(default_factory=dict)

    @classmethod
    def from_refs(cls, refs: Mapping[str, str], prefix: str,
                  stable_ids: Optional[Iterable[StableId]] = None) -> 'RemoteSnapshot':
        """Build a snapshot from a {ref: sha} map, keeping only the given stable ids."""
        wanted = set(stable_ids) if stable_ids is not None else None
        heads: Dict[StableId, str] = {}
        entries: Dict[StableId, List[VersionEntry]] = {}
        for ref, sha in refs.items():
            if ref.startswith(HEADS_PREFIX):
                stable_id = StableId(ref[len(HEADS_PREFIX):])
                if wanted is None or stable_id in wanted:
                    heads[stable_id] = sha
                continue
            parsed = parse_version_tag(prefix, ref)
            if parsed is None:
                logger.debug(f"Ignoring remote ref {ref}")
                continue
            stable_id, version = parsed
            if wanted is None or stable_id in wanted:
                entries.setdefault(stable_id, []).append(VersionEntry(version, sha))
        logs = {sid: VersionLog(sid, tuple(e)) for sid, e in entries.items()}
        return cls(heads, logs)

    def head_of(self, stable_id: StableId) -> Optional[str]:
        return self.heads.get(stable_id)

    def log_of(self, stable_id: StableId) -> VersionLog:
        return self.logs.get(stable_id) or VersionLog(stable_id)

@dataclass(frozen=True)
class Allocation:
    """Version decision for one commit of the stack."""
    commit: Commit
    log: VersionLog
    version: int
    expected_head: Optional[str]
    changed: bool

    @property
    def stable_id(self) -> StableId:
        return self.commit.stable_id

    @property
    def head_ref(self) -> str:
        return phantom_branch_ref(self.stable_id)

    def tag_ref(self, prefix: str) -> str:
        return version_tag_ref(prefix, self.stable_id, self.version)

def allocate(commit: Commit, log: VersionLog, expected_head: Optional[str]) -> Allocation:
    """Pick the version a commit is published as."""
    if log.is_unchanged(commit.commit_hash):
        return Allocation(commit, log, log.max_version, expected_head, changed=False)
    return Allocation(commit, log, log.next_version, expected_head, changed=True)

def allocate_versions(stack: Stack, snapshot: RemoteSnapshot) -> List[Allocation]:
    """Allocate versions for every commit, bottom first."""
    allocations: List[Allocation] = []
    for commit in stack:
        alloc = allocate(commit, snapshot.log_of(commit.stable_id), snapshot.head_of(commit.stable_id))
        state = f"v{alloc.version}" if alloc.changed else f"v{alloc.version} (unchanged)"
        logger.debug(f"  {commit.stable_id}: {state}")
        allocations.append(alloc)
    return allocations

def ls_remote_patterns(stable_ids: Sequence[StableId], prefix: str) -> List[str]:
    if len(stable_ids) > MAX_LS_REMOTE_PATTERNS:
        return [f"{HEADS_PREFIX}*", f"{prefix}/*"]
    patterns: List[str] = []
    for stable_id in stable_ids:
        patterns.append(phantom_branch_ref(stable_id))
        patterns.append(f"{prefix}/{stable_id}/*")
    return patterns

def read_remote_snapshot(reader: RemoteRefReader, stable_ids: Sequence[StableId], prefix: str) -> RemoteSnapshot:
    """Read phantom heads and version tags of the given stable ids in one remote call."""
    if not stable_ids:
        return RemoteSnapshot()
    refs = reader.list_refs(ls_remote_patterns(stable_ids, prefix))
    snapshot = RemoteSnapshot.from_refs(refs, prefix, stable_ids)
    logger.debug(f"Remote has {len(snapshot.heads)} phantom branch(es) and "
                 f"{sum(len(log) for log in snapshot.logs.values())} version tag(s) for this stack")
    return snapshot
