"""Unit tests for watermark / recency bookkeeping."""
from datetime import timedelta

from models.results import MessageResult
from orchestrator.updater import compute_progress, fold_recent_ids
from conftest import T0, make_message


def test_fold_appends_new_ids():
    assert fold_recent_ids(["a", "b"], ["c", "d"], 10) == ["a", "b", "c", "d"]


def test_fold_existing_id_keeps_position():
    assert fold_recent_ids(["a", "b"], ["a", "c"], 10) == ["a", "b", "c"]


def test_fold_evicts_oldest_first():
    assert fold_recent_ids(["a", "b", "c"], ["d", "e"], 3) == ["c", "d", "e"]


def test_fold_never_exceeds_capacity():
    folded = fold_recent_ids([str(i) for i in range(200)], [f"n{i}" for i in range(50)], 200)
    assert len(folded) == 200
    assert folded[-1] == "n49"
    assert folded[0] == "50"


def test_progress_after_full_success():
    batch = [make_message("a", 3), make_message("c", 2), make_message("b", 1)]
    results = [MessageResult.ok(m.id) for m in batch]
    progress = compute_progress(batch, results, T0, [], 200)
    assert progress.watermark == T0 + timedelta(minutes=3)
    assert set(progress.recent_ids) == {"a", "b", "c"}
    assert progress.recent_ids[-1] == "a"  # newest added last
    assert progress.inserted == 3


def test_placeholder_counts_as_inserted():
    batch = [make_message("a", 3), make_message("b", 1)]
    results = [MessageResult.placeholder("a", "boom"), MessageResult.ok("b")]
    progress = compute_progress(batch, results, T0, [], 200)
    assert progress.watermark == T0 + timedelta(minutes=3)
    assert "a" in progress.recent_ids


def test_failed_messages_do_not_advance_watermark():
    batch = [make_message("a", 3), make_message("b", 1)]
    results = [MessageResult.failed("a", "boom"), MessageResult.ok("b")]
    progress = compute_progress(batch, results, T0, ["x"], 200)
    assert progress.watermark == T0 + timedelta(minutes=1)
    assert progress.recent_ids == ["x", "b"]


def test_total_failure_leaves_state_unchanged():
    batch = [make_message("a", 3)]
    progress = compute_progress(batch, [MessageResult.failed("a", "boom")], T0, ["x"], 200)
    assert not progress.changed
    assert progress.watermark == T0
    assert progress.recent_ids == ["x"]


def test_watermark_never_moves_back():
    later = T0 + timedelta(hours=1)
    batch = [make_message("a", 3)]
    progress = compute_progress(batch, [MessageResult.ok("a")], later, [], 200)
    assert progress.watermark == later
