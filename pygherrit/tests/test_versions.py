"""Unit tests for version logs, remote snapshots and allocation."""

import pytest
from pygherrit.typing import Commit, Stack, StableId
from pygherrit.versions import (
    VersionEntry, VersionLog, RemoteSnapshot, allocate, allocate_versions,
    ls_remote_patterns, read_remote_snapshot, MAX_LS_REMOTE_PATTERNS,
)
from pygherrit.tests.fakes import MemoryRemote

PREFIX = "refs/tags/gherrit"
SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40


class TestVersionLog:
    def test_empty_log(self) -> None:
        log = VersionLog(StableId("G1"))
        assert log.latest is None
        assert log.max_version == 0
        assert log.next_version == 1
        assert not log.is_unchanged(SHA_A)

    def test_entries_are_sorted(self) -> None:
        log = VersionLog(StableId("G1"), (VersionEntry(3, SHA_C), VersionEntry(1, SHA_A)))
        assert log.versions() == [1, 3]
        assert log.latest == VersionEntry(3, SHA_C)
        # Gaps are allowed, the next version is still max + 1
        assert log.next_version == 4

    def test_repeated_version_rejected(self) -> None:
        with pytest.raises(ValueError):
            VersionLog(StableId("G1"), (VersionEntry(1, SHA_A), VersionEntry(1, SHA_B)))

    def test_unchanged_compares_latest_fingerprint_only(self) -> None:
        log = VersionLog(StableId("G1"), (VersionEntry(1, SHA_A), VersionEntry(2, SHA_B)))
        assert log.is_unchanged(SHA_B)
        assert not log.is_unchanged(SHA_A)

    def test_append_returns_new_log(self) -> None:
        log = VersionLog(StableId("G1"), (VersionEntry(1, SHA_A),))
        longer = log.append(SHA_B)
        assert log.versions() == [1]
        assert longer.versions() == [1, 2]
        assert longer.fingerprint_of(2) == SHA_B


class TestRemoteSnapshot:
    def test_from_refs(self) -> None:
        refs = {
            "refs/heads/G1": SHA_B,
            "refs/heads/main": SHA_C,
            f"{PREFIX}/G1/v1": SHA_A,
            f"{PREFIX}/G1/v2": SHA_B,
            f"{PREFIX}/G1/latest": SHA_B,
            f"{PREFIX}/G2/v1": SHA_C,
        }
        snapshot = RemoteSnapshot.from_refs(refs, PREFIX, [StableId("G1")])
        assert snapshot.head_of(StableId("G1")) == SHA_B
        assert snapshot.head_of(StableId("main")) is None
        assert snapshot.log_of(StableId("G1")).versions() == [1, 2]
        # Not asked for
        assert len(snapshot.log_of(StableId("G2"))) == 0

    def test_read_lists_each_id(self) -> None:
        remote = MemoryRemote({"refs/heads/G1": SHA_A, f"{PREFIX}/G1/v1": SHA_A, "refs/heads/other": SHA_B})
        snapshot = read_remote_snapshot(remote, [StableId("G1"), StableId("G2")], PREFIX)
        assert remote.list_calls == [["refs/heads/G1", f"{PREFIX}/G1/*", "refs/heads/G2", f"{PREFIX}/G2/*"]]
        assert snapshot.head_of(StableId("G1")) == SHA_A
        assert snapshot.head_of(StableId("G2")) is None

    def test_read_nothing_for_empty_stack(self) -> None:
        remote = MemoryRemote()
        read_remote_snapshot(remote, [], PREFIX)
        assert remote.list_calls == []

    def test_many_ids_list_whole_namespaces(self) -> None:
        ids = [StableId(f"G{i}") for i in range(MAX_LS_REMOTE_PATTERNS + 1)]
        assert ls_remote_patterns(ids, PREFIX) == ["refs/heads/*", f"{PREFIX}/*"]
        assert len(ls_remote_patterns(ids[:MAX_LS_REMOTE_PATTERNS], PREFIX)) == 2 * MAX_LS_REMOTE_PATTERNS


class TestAllocate:
    def test_first_push_is_v1(self) -> None:
        commit = Commit.from_strings("G1", SHA_A, "One")
        alloc = allocate(commit, VersionLog(StableId("G1")), None)
        assert alloc.changed
        assert alloc.version == 1
        assert alloc.expected_head is None
        assert alloc.tag_ref(PREFIX) == f"{PREFIX}/G1/v1"
        assert alloc.head_ref == "refs/heads/G1"

    def test_changed_commit_gets_next_version(self) -> None:
        commit = Commit.from_strings("G1", SHA_B, "One")
        log = VersionLog(StableId("G1"), (VersionEntry(1, SHA_A),))
        alloc = allocate(commit, log, SHA_A)
        assert alloc.changed
        assert alloc.version == 2
        assert alloc.expected_head == SHA_A

    def test_unchanged_commit_keeps_version(self) -> None:
        commit = Commit.from_strings("G1", SHA_A, "One")
        log = VersionLog(StableId("G1"), (VersionEntry(1, SHA_A),))
        alloc = allocate(commit, log, SHA_A)
        assert not alloc.changed
        assert alloc.version == 1

    def test_allocate_versions_is_pure(self) -> None:
        stack = Stack([Commit.from_strings("G1", SHA_A, "One"), Commit.from_strings("G2", SHA_B, "Two")])
        snapshot = RemoteSnapshot.from_refs({"refs/heads/G1": SHA_A, f"{PREFIX}/G1/v1": SHA_A}, PREFIX)
        first = allocate_versions(stack, snapshot)
        second = allocate_versions(stack, snapshot)
        assert first == second
        assert [(a.stable_id, a.version, a.changed) for a in first] == [("G1", 1, False), ("G2", 1, True)]
