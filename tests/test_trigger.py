"""Tests for the scheduler wiring and the trigger entry points."""
from unittest.mock import MagicMock

from triggers.consolidate_trigger import build_engine, reset_for_reimport, run_consolidation
from triggers.scheduler import ConsolidatorScheduler
from triggers.state import RunInProgressError
from conftest import FakeSource


def test_scheduler_registers_single_interval_job():
    scheduler = MagicMock()
    ConsolidatorScheduler(scheduler=scheduler)

    scheduler.add_job.assert_called_once()
    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["id"] == "consolidate"
    assert kwargs["replace_existing"] is True
    assert scheduler.add_job.call_args.args[0] is run_consolidation


def test_run_consolidation_returns_report():
    engine = MagicMock()
    engine.run.return_value = "report"
    assert run_consolidation(engine) == "report"


def test_run_consolidation_skips_when_busy():
    engine = MagicMock()
    engine.run.side_effect = RunInProgressError("another run holds the lock")
    assert run_consolidation(engine) is None


def test_run_consolidation_swallows_failures():
    engine = MagicMock()
    engine.run.side_effect = RuntimeError("docs down")
    assert run_consolidation(engine) is None


def test_build_engine_uses_injected_collaborators(docs, state):
    source = FakeSource([])
    engine = build_engine(source=source, docs=docs, state=state)
    assert engine.source is source
    assert engine.docs is docs
    assert engine.state is state


def test_reset_for_reimport_delegates():
    engine = MagicMock()
    reset_for_reimport(engine)
    engine.reset.assert_called_once_with()
