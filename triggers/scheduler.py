"""
Consolidator Trigger Scheduler
Runs the consolidation on a fixed interval.

Usage:
    python3 -m triggers.scheduler
    python3 triggers/scheduler.py --run-once
    python3 triggers/scheduler.py --reset
"""
import logging
import signal
import sys
from pathlib import Path

# Ensure project root is on sys.path
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED

from config.settings import config

logger = logging.getLogger("consolidator.scheduler")


def _job_listener(event):
    """Log job execution results."""
    if event.exception:
        logger.error(
            f"Job {event.job_id} failed: {event.exception}",
            exc_info=event.traceback,
        )
    else:
        logger.info(f"Job {event.job_id} completed")


class ConsolidatorScheduler:
    """
    Interval runner for the consolidation job.
    max_instances=1 keeps runs from overlapping inside this process.
    """

    def __init__(self, scheduler=None):
        self.scheduler = scheduler or BlockingScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            }
        )
        self.scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        self._register_jobs()

    def _register_jobs(self):
        from triggers.consolidate_trigger import run_consolidation
        self.scheduler.add_job(
            run_consolidation,
            IntervalTrigger(seconds=config.triggers.consolidate_interval),
            id="consolidate",
            name="Gmail label consolidation",
            replace_existing=True,
        )
        logger.info(
            f"Registered: consolidate (every {config.triggers.consolidate_interval}s, "
            f"label={config.consolidation.label})"
        )

    def list_jobs(self):
        """Print all registered jobs."""
        jobs = self.scheduler.get_jobs()
        print(f"\nConsolidator Scheduler — {len(jobs)} jobs registered:")
        print("-" * 60)
        for job in jobs:
            next_run = getattr(job, "next_run_time", None)
            next_str = next_run.strftime("%Y-%m-%d %H:%M:%S %Z") if next_run else "pending"
            print(f"  {job.id:<20s} | {job.name:<28s} | next: {next_str}")
        print("-" * 60)

    def start(self):
        """Start the scheduler (blocking)."""
        logger.info("Consolidator scheduler starting...")
        self.list_jobs()
        print("\nPress Ctrl+C to stop.\n")
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler shutdown requested")
            self.stop()

    def stop(self):
        """Graceful shutdown."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")


def main():
    """CLI entry point."""
    import argparse

    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    parser = argparse.ArgumentParser(description="Consolidator Trigger Scheduler")
    parser.add_argument(
        "--list", action="store_true",
        help="List registered jobs and exit (don't start scheduler)",
    )
    parser.add_argument(
        "--run-once", action="store_true",
        help="Run the consolidation immediately and exit",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Reset watermark and recency list, then exit",
    )
    args = parser.parse_args()

    if args.reset:
        from triggers.consolidate_trigger import reset_for_reimport
        reset_for_reimport()
        return

    if args.run_once:
        from triggers.consolidate_trigger import run_consolidation
        run_consolidation()
        return

    scheduler = ConsolidatorScheduler()

    if args.list:
        scheduler.list_jobs()
        return

    # Handle SIGTERM gracefully
    def handle_sigterm(signum, frame):
        logger.info("SIGTERM received")
        scheduler.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_sigterm)

    scheduler.start()


if __name__ == "__main__":
    main()
