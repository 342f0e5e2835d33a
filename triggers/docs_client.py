"""
GTD Consolidator — Google Docs / Drive Client
Destination backend for the consolidated document.

Docs API v1: create, read body, batchUpdate (all inserts happen at index 1).
Drive API v3: trashed check, trash, HTML → Google Doc conversion.

Every prepend is ONE documents.batchUpdate: requests inside a batch are
applied in order, so elements are emitted in reverse and each lands at the
top, pushing the previous one down.
"""
import io
import logging
import re
import time
from typing import Dict, List, Optional

from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from models.elements import Element, Image, ListItem, PageBreak, Paragraph, TableRow

logger = logging.getLogger("consolidator.docs")

GOOGLE_DOC_MIME = "application/vnd.google-apps.document"
_TOP = 1  # first insertable index of a document body
_RATE_LIMIT_WINDOW = 60

# Characters the Docs API silently drops from inserted text; dropping them
# ourselves keeps the computed ranges right.
_STRIPPED_CHARS = re.compile(r"[\x00-\x08\x0c-\x1f\ue000-\uf8ff]")


class DocumentNotFound(Exception):
    """Document does not exist or is not accessible with our credentials."""


def sanitize_text(text: str) -> str:
    text = (text or "").replace("\r", "").replace("\n", " ").replace("\x0b", " ")
    return _STRIPPED_CHARS.sub("", text)


def utf16_len(text: str) -> int:
    """Docs API indexes are UTF-16 code units."""
    return len(text.encode("utf-16-le")) // 2


# ---------------------------------------------------------------------------
# Element → batchUpdate requests
# ---------------------------------------------------------------------------

def _text_requests(text: str, named_style: str, bullets: bool = False) -> List[Dict]:
    text = sanitize_text(text)
    length = utf16_len(text)
    paragraph_range = {"startIndex": _TOP, "endIndex": _TOP + length + 1}
    requests = [
        {"insertText": {"location": {"index": _TOP}, "text": text + "\n"}},
        {"updateParagraphStyle": {
            "range": paragraph_range,
            "paragraphStyle": {"namedStyleType": named_style},
            "fields": "namedStyleType",
        }},
    ]
    if length:
        # Inserted text inherits the style of whatever sat at the top before
        requests.append({"updateTextStyle": {
            "range": {"startIndex": _TOP, "endIndex": _TOP + length},
            "textStyle": {},
            "fields": "bold,italic,underline,strikethrough,link",
        }})
    if bullets:
        requests.append({"createParagraphBullets": {
            "range": paragraph_range,
            "bulletPreset": "BULLET_DISC_CIRCLE_SQUARE",
        }})
    else:
        requests.append({"deleteParagraphBullets": {"range": paragraph_range}})
    return requests


def element_requests(element: Element) -> List[Dict]:
    """Requests that insert one element at the top of the body."""
    if isinstance(element, Paragraph):
        return _text_requests(element.text, element.heading or "NORMAL_TEXT")
    if isinstance(element, ListItem):
        return _text_requests(element.text, "NORMAL_TEXT", bullets=True)
    if isinstance(element, TableRow):
        return _text_requests(element.text, "NORMAL_TEXT")
    if isinstance(element, PageBreak):
        return [{"insertPageBreak": {"location": {"index": _TOP}}}]
    if isinstance(element, Image):
        paragraph_range = {"startIndex": _TOP, "endIndex": _TOP + 2}
        return [
            {"insertText": {"location": {"index": _TOP}, "text": "\n"}},
            {"insertInlineImage": {"location": {"index": _TOP}, "uri": element.uri}},
            {"updateParagraphStyle": {
                "range": paragraph_range,
                "paragraphStyle": {"namedStyleType": "NORMAL_TEXT"},
                "fields": "namedStyleType",
            }},
            {"deleteParagraphBullets": {"range": paragraph_range}},
        ]
    raise TypeError(f"Unsupported document element: {element!r}")


def build_prepend_requests(elements: List[Element]) -> List[Dict]:
    """Requests that place `elements`, in order, above the existing body."""
    requests = []
    for element in reversed(elements):
        requests.extend(element_requests(element))
    return requests


# ---------------------------------------------------------------------------
# Document body → Elements
# ---------------------------------------------------------------------------

def _inline_image_uri(inline_objects: Dict, object_id: Optional[str]) -> Optional[str]:
    obj = inline_objects.get(object_id or "", {})
    embedded = obj.get("inlineObjectProperties", {}).get("embeddedObject", {})
    return embedded.get("imageProperties", {}).get("contentUri")


def _paragraph_text(paragraph: Dict) -> str:
    parts = [el["textRun"].get("content", "") for el in paragraph.get("elements", []) if "textRun" in el]
    return "".join(parts).rstrip("\n")


def _parse_paragraph(paragraph: Dict, inline_objects: Dict) -> List[Element]:
    extras: List[Element] = []
    for el in paragraph.get("elements", []):
        if "inlineObjectElement" in el:
            uri = _inline_image_uri(inline_objects, el["inlineObjectElement"].get("inlineObjectId"))
            if uri:
                extras.append(Image(uri))
        elif "pageBreak" in el:
            extras.append(PageBreak())

    text = _paragraph_text(paragraph)
    out: List[Element] = []
    if text or not extras:
        if "bullet" in paragraph:
            out.append(ListItem(text))
        else:
            style = paragraph.get("paragraphStyle", {}).get("namedStyleType", "NORMAL_TEXT")
            heading = style if style.startswith("HEADING") or style in ("TITLE", "SUBTITLE") else None
            out.append(Paragraph(text, heading))
    out.extend(extras)
    return out


def _cell_text(cell: Dict) -> str:
    texts = [_paragraph_text(item["paragraph"]) for item in cell.get("content", []) if "paragraph" in item]
    return " ".join(t for t in texts if t)


def parse_document(doc: Dict) -> List[Element]:
    """Flatten a documents.get resource into Elements (tables → one TableRow per row)."""
    inline_objects = doc.get("inlineObjects", {})
    elements: List[Element] = []
    for item in doc.get("body", {}).get("content", []):
        if "paragraph" in item:
            elements.extend(_parse_paragraph(item["paragraph"], inline_objects))
        elif "table" in item:
            for row in item["table"].get("tableRows", []):
                elements.append(TableRow(tuple(_cell_text(c) for c in row.get("tableCells", []))))
        # sectionBreak / tableOfContents carry no content
    # A body always ends with an empty paragraph
    while elements and elements[-1] == Paragraph(""):
        elements.pop()
    return elements


def _is_not_found(error: HttpError) -> bool:
    status = error.resp.status
    if status == 404:
        return True
    # 403 also covers quota errors; those are retried, not treated as missing
    return status == 403 and "rate limit" not in str(error.reason or "").lower()


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class DocsClient:
    """Google Docs + Drive wrapper with write throttling."""

    def __init__(self, docs_service, drive_service, num_retries: int = 3,
                 writes_per_min: int = 55):
        self.docs = docs_service
        self.drive = drive_service
        self.num_retries = num_retries
        self.writes_per_min = writes_per_min

        # Rate limiting state
        self._write_count = 0
        self._rate_window_start = time.time()

    @classmethod
    def from_config(cls, google_config=None):
        from config.settings import config
        from triggers.google_auth import authenticate, build_service
        google_config = google_config or config.google
        creds = authenticate(google_config)
        return cls(
            build_service("docs", "v1", creds),
            build_service("drive", "v3", creds),
            num_retries=google_config.num_retries,
            writes_per_min=google_config.docs_writes_per_min,
        )

    # -------------------------------------------------------
    # Rate Limiting
    # -------------------------------------------------------

    def _check_rate_limit(self):
        """Pause until the window rolls over once the per-minute write budget is spent."""
        now = time.time()
        if now - self._rate_window_start > _RATE_LIMIT_WINDOW:
            self._write_count = 0
            self._rate_window_start = now

        if self._write_count >= self.writes_per_min:
            wait = max(0.0, _RATE_LIMIT_WINDOW - (now - self._rate_window_start))
            logger.warning(f"Docs write budget spent ({self._write_count}/min) — sleeping {wait:.1f}s")
            time.sleep(wait)
            self._write_count = 0
            self._rate_window_start = time.time()

        self._write_count += 1

    def _execute(self, request, write: bool = False):
        if write:
            self._check_rate_limit()
        return request.execute(num_retries=self.num_retries)

    # -------------------------------------------------------
    # Documents
    # -------------------------------------------------------

    def create_document(self, title: str) -> str:
        doc = self._execute(self.docs.documents().create(body={"title": title}), write=True)
        logger.info(f"Created doc '{title}': {doc['documentId']}")
        return doc["documentId"]

    def is_live(self, doc_id: str) -> bool:
        """True if the file exists and is not in the trash. Raises DocumentNotFound."""
        try:
            meta = self._execute(self.drive.files().get(fileId=doc_id, fields="id,trashed"))
        except HttpError as e:
            if _is_not_found(e):
                raise DocumentNotFound(f"Document {doc_id} not accessible: HTTP {e.resp.status}") from e
            raise
        return not meta.get("trashed", False)

    def trash(self, doc_id: str):
        self._execute(self.drive.files().update(fileId=doc_id, body={"trashed": True}), write=True)
        logger.debug(f"Trashed doc {doc_id}")

    def read_elements(self, doc_id: str) -> List[Element]:
        doc = self._execute(self.docs.documents().get(documentId=doc_id))
        return parse_document(doc)

    def prepend(self, doc_id: str, elements: List[Element]):
        """Insert `elements` above all existing content in a single batchUpdate."""
        requests = build_prepend_requests(elements)
        if not requests:
            return
        self._execute(
            self.docs.documents().batchUpdate(documentId=doc_id, body={"requests": requests}),
            write=True,
        )
        logger.debug(f"Prepended {len(elements)} elements ({len(requests)} requests) to {doc_id}")

    # -------------------------------------------------------
    # Conversion
    # -------------------------------------------------------

    def convert_html(self, html: str, title: str) -> str:
        """Upload HTML with Google Doc as the target type; Drive converts it. Returns the new doc id."""
        media = MediaIoBaseUpload(io.BytesIO(html.encode("utf-8")), mimetype="text/html", resumable=False)
        created = self._execute(
            self.drive.files().create(
                body={"name": title, "mimeType": GOOGLE_DOC_MIME},
                media_body=media,
                fields="id",
            ),
            write=True,
        )
        return created["id"]
