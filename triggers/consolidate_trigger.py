"""
Consolidator Trigger — Gmail label → consolidated Google Doc
Module-level entry points used by the scheduler and the CLI.
"""
import logging
import sys
from pathlib import Path

# Ensure project root is on sys.path
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from config.settings import config
from triggers.state import RunInProgressError, get_state_store

logger = logging.getLogger("consolidator.trigger")


def build_engine(cfg=None, source=None, docs=None, state=None):
    """Wire the engine from config. Collaborators can be injected."""
    from orchestrator.engine import ConsolidationEngine

    cfg = cfg or config
    if state is None:
        state = get_state_store(cfg.state, cfg.postgres)
    if source is None:
        from triggers.gmail_client import GmailSource
        source = GmailSource.from_config(cfg.google)
    if docs is None:
        from triggers.docs_client import DocsClient
        docs = DocsClient.from_config(cfg.google)
    return ConsolidationEngine(cfg.consolidation, source, docs, state)


def run_consolidation(engine=None):
    """Main entry point — called by the scheduler on every tick."""
    logger.info("Consolidation trigger: checking label for new messages...")
    try:
        engine = engine or build_engine()
        return engine.run()
    except RunInProgressError as e:
        logger.warning(f"Consolidation trigger: skipped — {e}")
    except Exception as e:
        logger.error(f"Consolidation trigger: run failed, state untouched: {e}")
    return None


def initialize(engine=None) -> str:
    """One-time setup: seed the watermark and create the doc."""
    engine = engine or build_engine()
    return engine.initialize()


def reset_for_reimport(engine=None):
    """Operator reset. Only the state store is needed."""
    if engine is None:
        from orchestrator.engine import ConsolidationEngine
        state = get_state_store(config.state, config.postgres)
        engine = ConsolidationEngine(config.consolidation, source=None, docs=None, state=state)
    engine.reset()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")
    run_consolidation()
