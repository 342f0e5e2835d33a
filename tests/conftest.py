"""Shared fakes for the consolidation tests: an in-memory Gmail source and doc backend."""
import os
import re
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Ensure the project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.elements import Paragraph
from models.messages import CandidateMessage, MessageThread
from triggers.docs_client import DocumentNotFound
from triggers.state import FileStateStore

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_message(mid, minutes, subject=None, body="hello", html="", thread_id="t1"):
    return CandidateMessage(
        id=mid,
        timestamp=T0 + timedelta(minutes=minutes),
        subject=subject if subject is not None else f"subject {mid}",
        sender="Alice <alice@example.com>",
        recipients="me@example.com",
        plain_body=body,
        html_body=html,
        thread_id=thread_id,
    )


def one_thread(*messages, thread_id="t1"):
    return [MessageThread(id=thread_id, messages=list(messages))]


class FakeSource:
    """Returns canned threads; the cap truncates the thread list like a real search."""

    def __init__(self, threads=None, error=None):
        self.threads = threads or []
        self.error = error
        self.calls = []

    def search(self, query, limit):
        self.calls.append((query, limit))
        if self.error:
            raise self.error
        return self.threads[:limit]


class FakeDocs:
    """In-memory document backend: each doc is a list of Elements."""

    def __init__(self):
        self.documents = {}
        self.trashed = set()
        self.created = []
        self.prepend_calls = []
        self.fail_subjects = set()       # prepend fails if a real unit mentions one of these
        self.fail_placeholders = False   # placeholder prepends fail too
        self.convert_error = None
        self._next = 0

    def _new_id(self, prefix):
        self._next += 1
        return f"{prefix}-{self._next}"

    def create_document(self, title):
        doc_id = self._new_id("doc")
        self.documents[doc_id] = []
        self.created.append(doc_id)
        return doc_id

    def is_live(self, doc_id):
        if doc_id not in self.documents:
            raise DocumentNotFound(f"{doc_id} not found")
        return doc_id not in self.trashed

    def trash(self, doc_id):
        self.trashed.add(doc_id)

    def prepend(self, doc_id, elements):
        texts = [getattr(e, "text", "") for e in elements]
        is_placeholder = any(t.startswith("[insert failed") for t in texts)
        if is_placeholder and self.fail_placeholders:
            raise RuntimeError("placeholder rejected")
        if not is_placeholder and any(s in t for s in self.fail_subjects for t in texts):
            raise RuntimeError("backend rejected content")
        self.prepend_calls.append((doc_id, list(elements)))
        self.documents[doc_id][:0] = list(elements)

    def convert_html(self, html, title):
        if self.convert_error:
            raise self.convert_error
        doc_id = self._new_id("tmp")
        subject = re.search(r"Subject:</strong> (.*?)</div>", html).group(1)
        self.documents[doc_id] = [Paragraph(f"Subject: {subject}"), Paragraph("converted body")]
        return doc_id

    def read_elements(self, doc_id):
        return list(self.documents[doc_id])

    def texts(self, doc_id):
        return [getattr(e, "text", "<break>") for e in self.documents[doc_id]]

    def subjects(self, doc_id):
        return [t[len("Subject: "):] for t in self.texts(doc_id) if t.startswith("Subject: ")]


@pytest.fixture
def state(tmp_path):
    return FileStateStore(tmp_path / "state.json")


@pytest.fixture
def docs():
    return FakeDocs()
