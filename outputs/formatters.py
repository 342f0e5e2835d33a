"""
GTD Consolidator — Message Formatters
Renders a CandidateMessage for the consolidated doc:
  - plain Elements (batch mode)
  - an HTML page for Drive conversion (per-message mode)
  - a placeholder unit that stands in for a message that failed
"""
import re
from datetime import datetime, timezone
from typing import List
from zoneinfo import ZoneInfo

from models.elements import Element, PageBreak, Paragraph
from models.messages import CandidateMessage
from triggers.gmail_client import strip_html

START_MARKER = "--- EMAIL START ---"
END_MARKER = "--- EMAIL END ---"
MARKER_HEADING = "HEADING_6"
NO_BODY = "(no body)"


# ============================================================
# Helpers
# ============================================================

def format_date(dt: datetime, tz_name: str = "UTC") -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d %H:%M:%S %Z")


def escape_html(s) -> str:
    """Minimal HTML escape so header fields can't inject tags."""
    return str(s).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def body_text(message: CandidateMessage) -> str:
    """Plain body, else the HTML body with tags stripped, else a marker."""
    if message.plain_body and message.plain_body.strip():
        return message.plain_body
    if message.html_body and message.html_body.strip():
        stripped = strip_html(message.html_body)
        if stripped:
            return stripped
    return NO_BODY


def _frame(message: CandidateMessage, date_str: str, body: List[Element]) -> List[Element]:
    return [
        Paragraph(START_MARKER, MARKER_HEADING),
        Paragraph(f"Subject: {message.display_subject}"),
        Paragraph(f"From: {message.sender or ''}"),
        Paragraph(f"To: {message.recipients or ''}"),
        Paragraph(f"Date: {date_str}"),
        Paragraph(""),
        *body,
        Paragraph(END_MARKER),
        PageBreak(),
    ]


# ============================================================
# Renderers
# ============================================================

def render_plain(message: CandidateMessage, tz_name: str = "UTC") -> List[Element]:
    """One message as plain paragraphs, one per body line."""
    lines = re.split(r"\r?\n", body_text(message))
    return _frame(message, format_date(message.timestamp, tz_name), [Paragraph(line) for line in lines])


def wrap_converted(converted: List[Element]) -> List[Element]:
    """Markers around content converted from HTML (headers are already inside it)."""
    return [
        Paragraph(START_MARKER, MARKER_HEADING),
        *converted,
        Paragraph(END_MARKER),
        PageBreak(),
    ]


def render_html(message: CandidateMessage, tz_name: str = "UTC") -> str:
    """Full HTML page for Drive conversion; prefers the HTML body."""
    if message.html_body and message.html_body.strip():
        body_html = message.html_body
    else:
        plain = message.plain_body if message.plain_body and message.plain_body.strip() else NO_BODY
        body_html = "<pre>" + escape_html(plain) + "</pre>"

    return (
        '<html><head><meta charset="utf-8"></head><body>'
        f"<div><strong>Subject:</strong> {escape_html(message.display_subject)}</div>"
        f"<div><strong>From:</strong> {escape_html(message.sender or '')}</div>"
        f"<div><strong>To:</strong> {escape_html(message.recipients or '')}</div>"
        f"<div><strong>Date:</strong> {escape_html(format_date(message.timestamp, tz_name))}</div>"
        "<hr/>"
        f"{body_html}"
        "</body></html>"
    )


def render_placeholder(message: CandidateMessage, reason: str, tz_name: str = "UTC") -> List[Element]:
    """Same frame as a real message, with the failure in place of the body."""
    date_str = format_date(message.timestamp, tz_name) if message.timestamp else ""
    return _frame(
        message, date_str,
        [Paragraph(f"[insert failed: {message.display_subject}: {reason}]")],
    )
