"""Unit tests for candidate selection."""
from datetime import timedelta

from models.messages import MessageThread
from orchestrator.selector import select_candidates
from conftest import T0, make_message


def test_only_newer_than_watermark_and_not_recent():
    threads = [
        MessageThread("t1", [make_message("old", -5), make_message("new1", 5)]),
        MessageThread("t2", [make_message("seen", 10), make_message("new2", 1)]),
    ]
    selection = select_candidates(threads, T0, ["seen"])
    assert [m.id for m in selection.batch] == ["new1", "new2"]
    assert selection.threads_scanned == 2
    assert selection.messages_scanned == 4


def test_timestamp_equal_to_watermark_is_not_new():
    threads = [MessageThread("t1", [make_message("same", 0)])]
    assert select_candidates(threads, T0, []).batch == []


def test_sorted_newest_first():
    threads = [MessageThread("t1", [make_message("a", 3), make_message("b", 1), make_message("c", 2)])]
    batch = select_candidates(threads, T0, []).batch
    assert [m.id for m in batch] == ["a", "c", "b"]


def test_exact_ties_keep_source_order():
    threads = [
        MessageThread("t1", [make_message("x", 2), make_message("y", 2)]),
        MessageThread("t2", [make_message("z", 2), make_message("w", 4)]),
    ]
    batch = select_candidates(threads, T0, []).batch
    assert [m.id for m in batch] == ["w", "x", "y", "z"]


def test_selection_is_idempotent():
    threads = [MessageThread("t1", [make_message("a", 3), make_message("b", 1)])]
    first = select_candidates(threads, T0, ["zzz"]).batch
    second = select_candidates(threads, T0, ["zzz"]).batch
    assert first == second


def test_empty_source():
    selection = select_candidates([], T0 - timedelta(days=1), [])
    assert selection.batch == []
    assert selection.threads_scanned == 0
