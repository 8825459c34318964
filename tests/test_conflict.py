"""Tests for conflict detection and resolution strategies."""

from __future__ import annotations

from conftest import make_note

from notesync.conflict import (
    DEFAULT_STRATEGY,
    MERGE_SEPARATOR,
    detect_conflict,
    is_remote_newer,
    resolve,
)
from notesync.models import ConflictStrategy


class TestDetection:
    """Content-based detection."""

    def test_same_content_is_not_a_conflict(self):
        local = make_note("n", title="T", body="B", modified=1)
        remote = make_note("n", title="T", body="B", modified=9)
        assert not detect_conflict(local, remote)

    def test_body_difference(self):
        assert detect_conflict(make_note("n", body="a"), make_note("n", body="b"))

    def test_title_difference(self):
        assert detect_conflict(make_note("n", title="a"), make_note("n", title="b"))

    def test_remote_newer_is_strict(self):
        local = make_note("n", modified=5)
        assert is_remote_newer(local, make_note("n", modified=6))
        assert not is_remote_newer(local, make_note("n", modified=5))
        assert not is_remote_newer(local, make_note("n", modified=4))


class TestLocalWins:
    """The default strategy."""

    def test_default_is_local_wins(self):
        assert DEFAULT_STRATEGY is ConflictStrategy.LOCAL_WINS

    def test_keeps_local_content_with_fresh_stamp(self):
        local = make_note("n", title="L", body="local", modified=1)
        remote = make_note("n", title="R", body="remote", modified=9)
        resolved = resolve(local, remote)
        assert (resolved.title, resolved.body) == ("L", "local")
        assert resolved.modified_at > remote.modified_at

    def test_repeated_resolution_keeps_content(self):
        local = make_note("n", title="L", body="local", modified=1)
        remote = make_note("n", title="R", body="remote", modified=9)
        for _ in range(5):
            resolved = resolve(local, remote, ConflictStrategy.LOCAL_WINS)
            assert (resolved.title, resolved.body) == (local.title, local.body)


class TestServerWins:
    def test_returns_remote_unchanged(self):
        local = make_note("n", body="local", modified=1)
        remote = make_note("n", body="remote", modified=9)
        assert resolve(local, remote, ConflictStrategy.SERVER_WINS) == remote


class TestMerge:
    """Body concatenation with superset detection."""

    def test_superset_is_returned_unchanged(self):
        local = make_note("n", body="Hello world", modified=1)
        remote = make_note("n", body="Hello", modified=9)
        resolved = resolve(local, remote, ConflictStrategy.MERGE)
        assert resolved.body == "Hello world"
        assert resolved == local

    def test_concatenates_remote_then_local(self):
        local = make_note("n", title="", body="mine", modified=1)
        remote = make_note("n", title="Theirs", body="theirs", modified=9)
        resolved = resolve(local, remote, ConflictStrategy.MERGE)
        assert resolved.body == f"theirs{MERGE_SEPARATOR}mine"
        assert resolved.title == "Theirs"
        assert resolved.modified_at > remote.modified_at

    def test_local_title_preferred(self):
        local = make_note("n", title="Mine", body="a")
        remote = make_note("n", title="Theirs", body="b")
        assert resolve(local, remote, "merge").title == "Mine"

    def test_merging_the_merge_adds_no_markers(self):
        local = make_note("n", body="mine", modified=1)
        remote = make_note("n", body="theirs", modified=9)
        merged = resolve(local, remote, ConflictStrategy.MERGE)
        again = resolve(merged, remote, ConflictStrategy.MERGE)
        assert again.body.count(MERGE_SEPARATOR) == 1


class TestManual:
    def test_returns_local_untouched(self):
        local = make_note("n", body="local", modified=1)
        remote = make_note("n", body="remote", modified=9)
        assert resolve(local, remote, ConflictStrategy.MANUAL) == local


def test_no_conflict_returns_local_for_every_strategy():
    local = make_note("n", title="T", body="same", modified=1)
    remote = make_note("n", title="T", body="same", modified=9)
    for strategy in ConflictStrategy:
        assert resolve(local, remote, strategy) == local
