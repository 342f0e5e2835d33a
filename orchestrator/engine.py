"""
GTD Consolidator — Consolidation Engine
Incremental processing of labeled Gmail messages into one Google Doc,
newest-first:
  1. Scan → 2. Select → 3. Ensure doc → 4. Insert → 5. Commit watermark + recency

State is committed only after the whole batch went through, so a run cut
short redoes its work next time (at-least-once).
"""
import logging
import time
from typing import Dict

from config.settings import ConsolidationConfig
from models.results import RunReport, STATUS_FAILED, STATUS_PLACEHOLDER
from orchestrator.composer import make_inserter
from orchestrator.guarantor import DocumentGuarantor
from orchestrator.selector import select_candidates
from orchestrator.updater import compute_progress
from outputs.formatters import format_date

logger = logging.getLogger("consolidator.engine")


class ConsolidationEngine:
    """Runs one consolidation pass against an explicit configuration."""

    def __init__(self, settings: ConsolidationConfig, source, docs, state):
        self.settings = settings
        self.source = source
        self.docs = docs
        self.state = state
        self.guarantor = DocumentGuarantor(docs, state, title=settings.document_title)

    # -------------------------------------------------------
    # Operator actions
    # -------------------------------------------------------

    def initialize(self) -> str:
        """Seed the watermark if missing and make sure the doc exists."""
        self.state.seed_watermark()
        doc_id = self.guarantor.ensure()
        logger.info(
            f"Initialized. last_iso={self.state.get_watermark().isoformat()} doc_id={doc_id}"
        )
        return doc_id

    def reset(self):
        """Reprocess from the beginning on the next run. The doc is kept."""
        # Same lock as run(): a reset never interleaves with a commit
        with self.state.run_lock():
            self.state.reset_progress()
        logger.info("Reset done. Run the consolidation next.")

    def status(self) -> Dict:
        return {
            "label": self.settings.label,
            "mode": self.settings.output_mode,
            "watermark": self.state.get_watermark().isoformat(),
            "recent_ids": len(self.state.get_recent_ids()),
            "document_id": self.state.get_document_id(),
        }

    # -------------------------------------------------------
    # Run
    # -------------------------------------------------------

    def run(self) -> RunReport:
        """One consolidation pass. Errors propagate after the summary is logged."""
        t0 = time.monotonic()
        report = RunReport(mode=self.settings.output_mode, label=self.settings.label)
        try:
            inserter = make_inserter(
                self.settings.output_mode,
                self.docs,
                tz_name=self.settings.timezone,
                tmp_title_prefix=self.settings.tmp_title_prefix,
            )
            with self.state.run_lock():
                self._run(inserter, report)
        except Exception as e:
            report.error = f"{type(e).__name__}: {e}"
            raise
        finally:
            report.elapsed_ms = int((time.monotonic() - t0) * 1000)
            logger.info(f"Run summary: {report.summary()}")
        return report

    def _run(self, inserter, report: RunReport):
        settings = self.settings
        watermark = self.state.get_watermark()
        recent_ids = self.state.get_recent_ids()
        report.watermark_before = watermark
        report.document_id = self.state.get_document_id()

        logger.info(
            f"Consolidation run: label={settings.label} | mode={settings.output_mode} | "
            f"last_iso={watermark.isoformat()} | doc_id={report.document_id}"
        )

        # Gather candidates; a scan error aborts before anything is written
        threads = self.source.search(settings.query, settings.max_per_run)
        selection = select_candidates(threads, watermark, recent_ids)
        batch = selection.batch
        report.threads_scanned = selection.threads_scanned
        report.messages_scanned = selection.messages_scanned
        report.selected = len(batch)

        logger.info(
            f"Scanned: threads={selection.threads_scanned} | "
            f"messages={selection.messages_scanned} | new_eligible={len(batch)}"
        )
        if not batch:
            logger.info("No new messages to process.")
            return

        samples = [m.display_subject for m in batch[:settings.sample_subjects]]
        logger.info(f"Sample new subjects (up to {settings.sample_subjects}): {samples}")
        logger.info(
            f"Newest candidate date={format_date(batch[0].timestamp, settings.timezone)} | "
            f"Oldest candidate date={format_date(batch[-1].timestamp, settings.timezone)}"
        )

        doc_id = self.guarantor.ensure()
        report.document_id = doc_id

        logger.info(f"Inserting ({inserter.mode}) {len(batch)} messages into doc_id={doc_id} ...")
        results = inserter.insert(batch, doc_id)
        report.placeholders = sum(1 for r in results if r.status == STATUS_PLACEHOLDER)
        report.failed = sum(1 for r in results if r.status == STATUS_FAILED)

        progress = compute_progress(
            batch, results, watermark, recent_ids, settings.recent_ids_limit,
        )
        report.inserted = progress.inserted
        if not progress.changed:
            logger.warning("Nothing inserted this run — watermark not advanced")
            return

        self.state.commit_progress(progress.watermark, progress.recent_ids)
        report.watermark_after = progress.watermark
        logger.info(
            f"Updated state: last_iso={progress.watermark.isoformat()} | "
            f"recent_ids={len(progress.recent_ids)}"
        )
