"""
Batch composer / inserter.

Both inserters take a newest-first batch and leave the doc reading
newest-first: the whole batch above everything already there, newer
messages above older ones.

    BatchInserter       doc_plain: render every message, ONE batchUpdate;
                        if the backend rejects it, fall back to one prepend per message
    PerMessageInserter  doc_html:  HTML → temp Doc → copy, one prepend per message

A message whose own prepend fails gets a placeholder in its place, so one
unacceptable message never holds back the rest of the batch.
"""
import logging
import time
from typing import Callable, List

from config.settings import MODE_DOC_HTML, MODE_DOC_PLAIN, OUTPUT_MODES
from models.elements import Element
from models.messages import CandidateMessage
from models.results import MessageResult, STATUS_OK
from outputs.formatters import render_html, render_placeholder, render_plain, wrap_converted

logger = logging.getLogger("consolidator.composer")


def prepend_or_placeholder(
    docs,
    doc_id: str,
    message: CandidateMessage,
    build_unit: Callable[[], List[Element]],
    tz_name: str = "UTC",
) -> MessageResult:
    """Prepend one message's unit; on failure prepend its placeholder instead."""
    try:
        docs.prepend(doc_id, build_unit())
        return MessageResult.ok(message.id)
    except Exception as e:
        reason = str(e)
        logger.error(f"Error processing message (subject={message.display_subject}): {reason}")

    try:
        docs.prepend(doc_id, render_placeholder(message, reason, tz_name))
        return MessageResult.placeholder(message.id, reason)
    except Exception as e:
        logger.error(f"Placeholder insert failed (subject={message.display_subject}): {e}")
        return MessageResult.failed(message.id, f"{reason}; placeholder failed: {e}")


class BatchInserter:
    """Plain rendering; the whole batch is prepended as a single unit."""

    mode = MODE_DOC_PLAIN

    def __init__(self, docs, tz_name: str = "UTC"):
        self.docs = docs
        self.tz_name = tz_name

    def _render(self, message: CandidateMessage):
        """(unit, result) for one message; a render error yields its placeholder."""
        try:
            return render_plain(message, self.tz_name), MessageResult.ok(message.id)
        except Exception as e:
            logger.error(f"Render failed (subject={message.display_subject}): {e}")
            return (
                render_placeholder(message, str(e), self.tz_name),
                MessageResult.placeholder(message.id, str(e)),
            )

    def _insert_each(self, batch, rendered, doc_id: str) -> List[MessageResult]:
        # Oldest → newest so the doc still ends newest-first
        results: List[MessageResult] = [None] * len(batch)
        for i in reversed(range(len(batch))):
            message = batch[i]
            unit, rendered_result = rendered[i]
            if rendered_result.status == STATUS_OK:
                results[i] = prepend_or_placeholder(
                    self.docs, doc_id, message, lambda unit=unit: unit, self.tz_name,
                )
                continue
            # Already a placeholder: nothing further to fall back to
            try:
                self.docs.prepend(doc_id, unit)
                results[i] = rendered_result
            except Exception as e:
                logger.error(f"Placeholder insert failed (subject={message.display_subject}): {e}")
                results[i] = MessageResult.failed(
                    message.id, f"{rendered_result.reason}; placeholder failed: {e}",
                )
        return results

    def insert(self, batch: List[CandidateMessage], doc_id: str) -> List[MessageResult]:
        if not batch:
            raise ValueError("insert() requires a non-empty batch")

        rendered = [self._render(message) for message in batch]
        unit: List[Element] = [element for message_unit, _ in rendered for element in message_unit]

        try:
            self.docs.prepend(doc_id, unit)
        except Exception as e:
            logger.warning(
                f"Batch prepend of {len(batch)} messages into {doc_id} failed ({e}) "
                f"— retrying one message at a time"
            )
            return self._insert_each(batch, rendered, doc_id)

        logger.info(f"Prepended batch: {len(batch)} messages, {len(unit)} elements")
        return [result for _, result in rendered]


class PerMessageInserter:
    """HTML conversion per message; each message is prepended on its own."""

    mode = MODE_DOC_HTML

    def __init__(self, docs, tz_name: str = "UTC", tmp_title_prefix: str = "gtd_tmp_html_"):
        self.docs = docs
        self.tz_name = tz_name
        self.tmp_title_prefix = tmp_title_prefix

    def _convert(self, message: CandidateMessage) -> List[Element]:
        html = render_html(message, self.tz_name)
        tmp_id = self.docs.convert_html(html, f"{self.tmp_title_prefix}{int(time.time() * 1000)}")
        try:
            return self.docs.read_elements(tmp_id)
        finally:
            try:
                self.docs.trash(tmp_id)
            except Exception as e:
                logger.warning(f"Could not trash temp doc {tmp_id}: {e}")

    def insert(self, batch: List[CandidateMessage], doc_id: str) -> List[MessageResult]:
        if not batch:
            raise ValueError("insert() requires a non-empty batch")

        # Each prepend lands on top, so go oldest → newest to finish newest-first
        results: List[MessageResult] = [None] * len(batch)
        for i in reversed(range(len(batch))):
            message = batch[i]
            results[i] = prepend_or_placeholder(
                self.docs, doc_id, message,
                lambda message=message: wrap_converted(self._convert(message)),
                self.tz_name,
            )
        return results


def make_inserter(mode: str, docs, tz_name: str = "UTC", tmp_title_prefix: str = "gtd_tmp_html_"):
    """Inserter for an output mode. Unknown modes are fatal."""
    if mode not in OUTPUT_MODES:
        raise ValueError(f"Unknown OUTPUT_MODE: {mode!r} (expected one of {', '.join(OUTPUT_MODES)})")
    if mode == MODE_DOC_PLAIN:
        return BatchInserter(docs, tz_name)
    return PerMessageInserter(docs, tz_name, tmp_title_prefix)
