"""
Unit tests for the two inserters.
Both must leave the doc newest-first, above whatever was already there.
"""
import pytest

from config.settings import MODE_DOC_HTML, MODE_DOC_PLAIN
from models.elements import Paragraph
from models.results import STATUS_FAILED, STATUS_OK, STATUS_PLACEHOLDER
from orchestrator.composer import BatchInserter, PerMessageInserter, make_inserter
from conftest import make_message


@pytest.fixture
def doc_id(docs):
    doc_id = docs.create_document("gtd_consolidated_doc")
    docs.documents[doc_id] = [Paragraph("Subject: older")]
    return doc_id


def _batch():
    # newest-first, as the selector hands it over
    return [make_message("c", 3, subject="C"), make_message("b", 2, subject="B"), make_message("a", 1, subject="A")]


# -------------------------------------------------------
# Batch (doc_plain)
# -------------------------------------------------------

def test_batch_is_one_prepend_newest_first(docs, doc_id):
    results = BatchInserter(docs).insert(_batch(), doc_id)

    assert len(docs.prepend_calls) == 1
    assert docs.subjects(doc_id) == ["C", "B", "A", "older"]
    assert [r.status for r in results] == [STATUS_OK] * 3


def test_batch_render_failure_becomes_placeholder(docs, doc_id, monkeypatch):
    import orchestrator.composer as composer
    real_render = composer.render_plain

    def flaky_render(message, tz_name="UTC"):
        if message.id == "b":
            raise ValueError("bad body")
        return real_render(message, tz_name)

    monkeypatch.setattr(composer, "render_plain", flaky_render)
    results = BatchInserter(docs).insert(_batch(), doc_id)

    assert [r.status for r in results] == [STATUS_OK, STATUS_PLACEHOLDER, STATUS_OK]
    assert "[insert failed: B: bad body]" in docs.texts(doc_id)
    assert docs.subjects(doc_id) == ["C", "B", "A", "older"]


def test_rejected_batch_falls_back_to_single_messages(docs, doc_id):
    docs.fail_subjects = {"B"}
    results = BatchInserter(docs).insert(_batch(), doc_id)

    assert [r.status for r in results] == [STATUS_OK, STATUS_PLACEHOLDER, STATUS_OK]
    assert docs.subjects(doc_id) == ["C", "B", "A", "older"]
    assert "[insert failed: B: backend rejected content]" in docs.texts(doc_id)
    # rejected batch is not recorded; one successful prepend per message
    assert len(docs.prepend_calls) == 3


def test_fallback_fails_only_when_placeholders_are_rejected_too(docs, doc_id):
    docs.fail_subjects = {"Subject"}
    docs.fail_placeholders = True
    results = BatchInserter(docs).insert(_batch(), doc_id)

    assert all(r.status == STATUS_FAILED for r in results)
    assert docs.subjects(doc_id) == ["older"]


def test_empty_batch_is_rejected(docs, doc_id):
    with pytest.raises(ValueError):
        BatchInserter(docs).insert([], doc_id)
    with pytest.raises(ValueError):
        PerMessageInserter(docs).insert([], doc_id)


# -------------------------------------------------------
# Per message (doc_html)
# -------------------------------------------------------

def test_per_message_ends_newest_first(docs, doc_id):
    results = PerMessageInserter(docs).insert(_batch(), doc_id)

    assert docs.subjects(doc_id) == ["C", "B", "A", "older"]
    assert [r.message_id for r in results] == ["c", "b", "a"]
    assert len(docs.prepend_calls) == 3


def test_temp_docs_are_trashed(docs, doc_id):
    PerMessageInserter(docs).insert(_batch(), doc_id)
    temp_ids = [d for d in docs.documents if d.startswith("tmp-")]
    assert len(temp_ids) == 3
    assert set(temp_ids) <= docs.trashed


def test_failed_conversion_leaves_placeholder(docs, doc_id):
    docs.convert_error = RuntimeError("conversion refused")
    results = PerMessageInserter(docs).insert(_batch()[:1], doc_id)

    assert results[0].status == STATUS_PLACEHOLDER
    assert "[insert failed: C: conversion refused]" in docs.texts(doc_id)


def test_failed_prepend_then_placeholder(docs, doc_id):
    docs.fail_subjects = {"B"}
    results = PerMessageInserter(docs).insert(_batch(), doc_id)

    assert [r.status for r in results] == [STATUS_OK, STATUS_PLACEHOLDER, STATUS_OK]
    assert docs.subjects(doc_id) == ["C", "B", "A", "older"]


def test_placeholder_failure_marks_failed(docs, doc_id):
    docs.convert_error = RuntimeError("conversion refused")
    docs.fail_placeholders = True
    results = PerMessageInserter(docs).insert(_batch(), doc_id)

    assert all(r.status == STATUS_FAILED for r in results)
    assert docs.subjects(doc_id) == ["older"]


# -------------------------------------------------------
# Mode selection
# -------------------------------------------------------

def test_make_inserter_modes(docs):
    assert isinstance(make_inserter(MODE_DOC_PLAIN, docs), BatchInserter)
    assert isinstance(make_inserter(MODE_DOC_HTML, docs), PerMessageInserter)
    with pytest.raises(ValueError, match="doc_plain, doc_html"):
        make_inserter("doc_pdf", docs)
