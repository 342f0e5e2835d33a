"""
Destination document guarantor.
The only place the consolidated doc is ever created.
"""
import logging

from triggers.docs_client import DocumentNotFound

logger = logging.getLogger("consolidator.guarantor")


class DocumentGuarantor:
    """Returns a live doc id, recreating the doc if it was deleted or trashed."""

    def __init__(self, docs, state, title: str):
        self.docs = docs
        self.state = state
        self.title = title

    def _needs_new(self, doc_id) -> bool:
        if not doc_id:
            return True
        try:
            if not self.docs.is_live(doc_id):
                logger.warning(f"Consolidated doc {doc_id} is in the trash — recreating")
                return True
        except DocumentNotFound as e:
            logger.warning(f"Consolidated doc {doc_id} unreachable ({e}) — recreating")
            return True
        return False

    def ensure(self) -> str:
        doc_id = self.state.get_document_id()
        if self._needs_new(doc_id):
            doc_id = self.docs.create_document(self.title)
            self.state.set_document_id(doc_id)
            logger.info(f"Created new consolidated doc: {doc_id}")
        return doc_id
