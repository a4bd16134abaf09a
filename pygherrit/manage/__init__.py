"""Per-branch opt-in state deciding whether pushes are synced."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

from ..typing import GitInterface, GitError, InvalidBranchStateError, BranchConfigDriftError
from ..config.models import GherritConfig

# Get module logger
logger = logging.getLogger(__name__)

MANAGED_CONFIG_KEY = "gherritManaged"

# Values of branch.<name>.gherritManaged
UNMANAGED = "false"
MANAGED_PRIVATE = "managedPrivate"
MANAGED_PUBLIC = "managedPublic"

# 'true' predates the private/public split and means private
MODE_VALUES = {
    "false": UNMANAGED,
    "true": MANAGED_PRIVATE,
    "managedprivate": MANAGED_PRIVATE,
    "managedpublic": MANAGED_PUBLIC,
}

BRANCH_CONFIG_KEYS = ("pushRemote", "remote", "merge")

@dataclass(frozen=True)
class BranchManagementState:
    branch_name: str
    mode: str
    # False when inferred because nothing is stored for the branch
    explicit: bool

    @property
    def managed(self) -> bool:
        return self.mode != UNMANAGED

    @property
    def public(self) -> bool:
        return self.mode == MANAGED_PUBLIC

    def __str__(self) -> str:
        how = "explicitly" if self.explicit else "by default"
        if not self.managed:
            return f"{self.branch_name} is unmanaged ({how})"
        kind = "public" if self.public else "private"
        return f"{self.branch_name} is managed ({kind}, {how})"

def expected_branch_config(mode: str, branch: str, default_remote: str) -> Dict[str, Optional[str]]:
    """Branch config keys a mode owns, with the value each must have (None for unset).

    Managed branches track themselves so `git pull` never rebases the stack onto
    someone else's work. Private stacks push to the local repository, which
    only runs the hook; public ones push the branch itself too. An unmanaged
    branch keeps whatever tracking it has and only must not carry a pushRemote.
    """
    if mode == UNMANAGED:
        return {"pushRemote": None}
    return {
        "pushRemote": "." if mode == MANAGED_PRIVATE else default_remote,
        "remote": ".",
        "merge": f"refs/heads/{branch}",
    }

class BranchStateStore(Protocol):
    """Key/value store holding the managed mode and branch config of each local branch."""
    def get_mode(self, branch: str) -> Optional[str]:
        ...

    def set_mode(self, branch: str, mode: str) -> None:
        ...

    def get_config(self, branch: str, key: str) -> Optional[str]:
        ...

    def set_config(self, branch: str, key: str, value: Optional[str]) -> None:
        """Set branch.<branch>.<key>, or unset it when value is None."""
        ...

    def tracking_branch(self, branch: str) -> Optional[str]:
        """Remote-tracking branch of a local branch as '<remote>/<branch>', if any."""
        ...

class GitConfigBranchStore:
    """Stores the managed mode as branch.<name>.gherritManaged in git config."""
    def __init__(self, git_cmd: GitInterface):
        self.git_cmd = git_cmd

    def _get(self, key: str) -> Optional[str]:
        try:
            return self.git_cmd.must_git(f"config --get {key}").strip()
        except GitError as e:
            # git config exits 1 when the key is missing
            if e.status == 1:
                return None
            raise

    def get_mode(self, branch: str) -> Optional[str]:
        key = f"branch.{branch}.{MANAGED_CONFIG_KEY}"
        try:
            value = self._get(key)
        except GitError as e:
            raise InvalidBranchStateError(f"Could not read {key}: {e}") from e
        if value is None:
            return None
        mode = MODE_VALUES.get(value.lower())
        if mode is None:
            raise InvalidBranchStateError(
                f"{key} is '{value}'; expected '{MANAGED_PUBLIC}', '{MANAGED_PRIVATE}', 'true' or 'false'. "
                "Run `pygherrit manage` or `pygherrit unmanage` to fix it."
            )
        return mode

    def set_mode(self, branch: str, mode: str) -> None:
        self.git_cmd.must_git(f"config branch.{branch}.{MANAGED_CONFIG_KEY} {mode}")

    def get_config(self, branch: str, key: str) -> Optional[str]:
        return self._get(f"branch.{branch}.{key}")

    def set_config(self, branch: str, key: str, value: Optional[str]) -> None:
        name = f"branch.{branch}.{key}"
        if value is not None:
            self.git_cmd.must_git(f"config {name} {value}")
        elif self._get(name) is not None:
            # --unset fails on a missing key
            self.git_cmd.must_git(f"config --unset {name}")

    def tracking_branch(self, branch: str) -> Optional[str]:
        remote = self._get(f"branch.{branch}.remote")
        merge = self._get(f"branch.{branch}.merge")
        if not remote or not merge or remote == ".":
            return None
        if merge.startswith("refs/heads/"):
            merge = merge[len("refs/heads/"):]
        return f"{remote}/{merge}"

def infer_initial_state(config: GherritConfig, branch: str, tracking: Optional[str]) -> bool:
    """Default managed flag for a branch with nothing stored.

    A branch that tracks some remote branch other than the upstream one was
    most likely checked out from a collaborator's branch, so it is left alone.
    """
    upstream = f"{config.repo.remote}/{config.repo.upstream_branch}"
    return tracking is None or tracking == upstream

class BranchManagementGate:
    """Decides whether a run on the current branch goes ahead, and switches branches between modes."""
    def __init__(self, config: GherritConfig, store: BranchStateStore):
        self.config = config
        self.store = store

    def state(self, branch: str) -> BranchManagementState:
        stored = self.store.get_mode(branch)
        if stored is not None:
            return BranchManagementState(branch, stored, explicit=True)
        tracking = self.store.tracking_branch(branch)
        managed = infer_initial_state(self.config, branch, tracking)
        logger.debug(f"No stored state for {branch} (tracking {tracking}), inferred managed={managed}")
        return BranchManagementState(branch, MANAGED_PRIVATE if managed else UNMANAGED, explicit=False)

    def should_sync(self, branch: str) -> bool:
        state = self.state(branch)
        if not state.managed:
            logger.info(f"Branch {state}; skipping sync. Run `pygherrit manage` to opt in.")
        return state.managed

    def drift(self, branch: str) -> List[Tuple[str, Optional[str], Optional[str]]]:
        """Branch config keys that differ from what the stored mode wrote: (key, current, expected).

        Nothing stored counts as unmanaged; an inferred state was never written.
        """
        stored = self.store.get_mode(branch) or UNMANAGED
        expected = expected_branch_config(stored, branch, self.config.repo.remote)
        drifted = []
        for key, value in expected.items():
            current = self.store.get_config(branch, key)
            if current != value:
                drifted.append((key, current, value))
        return drifted

    def set_mode(self, branch: str, mode: str, force: bool = False) -> BranchManagementState:
        old_mode = self.store.get_mode(branch) or UNMANAGED
        drifted = self.drift(branch)
        if drifted and not force:
            raise BranchConfigDriftError(branch, old_mode, drifted)
        for key, current, expected in drifted:
            logger.warning(f"Overwriting branch.{branch}.{key}: '{current or '<unset>'}' "
                           f"(expected '{expected or '<unset>'}')")

        self.store.set_mode(branch, mode)
        old_config = expected_branch_config(old_mode, branch, self.config.repo.remote)
        new_config = expected_branch_config(mode, branch, self.config.repo.remote)
        for key in BRANCH_CONFIG_KEYS:
            if key in new_config:
                self.store.set_config(branch, key, new_config[key])
            elif key in old_config:
                # Loopback tracking written for a managed branch means nothing once unmanaged
                self.store.set_config(branch, key, None)

        state = BranchManagementState(branch, mode, explicit=True)
        logger.info(f"Branch {state}")
        if mode == MANAGED_PRIVATE:
            logger.info("  Pushes go to the local repository (.) and sync the stack from the pre-push hook")
        elif mode == MANAGED_PUBLIC:
            logger.info(f"  Pushes go to '{self.config.repo.remote}' and sync the stack from the pre-push hook")
        return state

    def manage(self, branch: str, public: bool = False, force: bool = False) -> BranchManagementState:
        return self.set_mode(branch, MANAGED_PUBLIC if public else MANAGED_PRIVATE, force)

    def unmanage(self, branch: str, force: bool = False) -> BranchManagementState:
        return self.set_mode(branch, UNMANAGED, force)
