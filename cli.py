#!/usr/bin/env python3
"""
GTD Consolidator — Command Line Interface
Operator controls for the Gmail label → Google Doc consolidation.

Usage:
    python cli.py init      # OAuth consent, seed watermark, create the doc
    python cli.py run       # one consolidation pass
    python cli.py reset     # reprocess from the beginning on the next run
    python cli.py status
"""
import argparse
import logging
import sys

from config.settings import config


def setup_logging(debug: bool = False):
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def cmd_init(args):
    """Create the consolidated doc and seed state."""
    from triggers.consolidate_trigger import initialize
    doc_id = initialize()
    print(f"Consolidated doc: https://docs.google.com/document/d/{doc_id}/edit")


def cmd_run(args):
    """Run one consolidation pass."""
    from triggers.consolidate_trigger import build_engine
    report = build_engine().run()

    print("\n" + "=" * 60)
    print("CONSOLIDATION RUN")
    print("=" * 60)
    print(f"Threads scanned:  {report.threads_scanned}")
    print(f"Messages scanned: {report.messages_scanned}")
    print(f"Selected:         {report.selected}")
    print(f"Inserted:         {report.inserted} (placeholders: {report.placeholders})")
    print(f"Failed:           {report.failed}")
    if report.watermark_after:
        print(f"Watermark:        {report.watermark_after.isoformat()}")
    print(f"Elapsed:          {report.elapsed_ms}ms")
    return 1 if report.failed else 0


def cmd_reset(args):
    """Reset watermark and recency list."""
    from triggers.consolidate_trigger import reset_for_reimport
    from triggers.state import RunInProgressError
    try:
        reset_for_reimport()
    except RunInProgressError as e:
        print(f"Reset refused: {e}. Retry once the current run finishes.")
        return 1
    print("Reset done. The next run reprocesses the label from the beginning.")


def cmd_status(args):
    """Show persisted state."""
    from orchestrator.engine import ConsolidationEngine
    from triggers.state import get_state_store

    state = get_state_store(config.state, config.postgres)
    status = ConsolidationEngine(config.consolidation, source=None, docs=None, state=state).status()

    print("GTD Consolidator — Status")
    print("=" * 40)
    print(f"Label:        {status['label']}")
    print(f"Mode:         {status['mode']}")
    print(f"State:        {config.state.backend}")
    print(f"Watermark:    {status['watermark']}")
    print(f"Recent ids:   {status['recent_ids']}/{config.consolidation.recent_ids_limit}")
    print(f"Document id:  {status['document_id'] or '(not created yet)'}")


def main():
    parser = argparse.ArgumentParser(description="GTD Consolidator — Gmail label to Google Doc")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init", help="Authorize, seed state, create the doc")
    subparsers.add_parser("run", help="Run one consolidation pass")
    subparsers.add_parser("reset", help="Reset watermark and recency list")
    subparsers.add_parser("status", help="Show persisted state")

    args = parser.parse_args()
    setup_logging(args.debug or config.debug)

    commands = {
        "init": cmd_init,
        "run": cmd_run,
        "reset": cmd_reset,
        "status": cmd_status,
    }
    if args.command not in commands:
        parser.print_help()
        return 0
    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
