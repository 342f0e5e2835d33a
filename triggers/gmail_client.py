"""
GTD Consolidator — Gmail Source
Label search over the Gmail API v1, mapped into CandidateMessage objects.

The per-run cap bounds how many threads are listed; every message of each
listed thread becomes a candidate. Selection against the watermark happens
later, in orchestrator/selector.py.
"""
import base64
import logging
import re
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional, Tuple

from models.messages import CandidateMessage, MessageThread

logger = logging.getLogger("consolidator.gmail")


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------

def get_header(headers: List[Dict], name: str) -> str:
    """Extract a specific header value (case-insensitive)."""
    name_lower = name.lower()
    for h in headers:
        if h.get("name", "").lower() == name_lower:
            return h.get("value", "")
    return ""


def _decode(data: str) -> str:
    # Gmail returns base64url, sometimes without padding
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def extract_bodies(payload: Dict) -> Tuple[str, str]:
    """
    Walk a message payload and return (plain, html).
    The first text/plain and the first text/html part win; attachments are skipped.
    """
    plain = ""
    html = ""
    stack = [payload]
    while stack:
        part = stack.pop(0)
        if part.get("filename"):
            continue
        mime_type = part.get("mimeType", "")
        data = part.get("body", {}).get("data")
        if mime_type == "text/plain" and data and not plain:
            plain = _decode(data)
        elif mime_type == "text/html" and data and not html:
            html = _decode(data)
        stack.extend(part.get("parts", []))
    return plain, html


def strip_html(html: str) -> str:
    """Simple HTML tag stripper that keeps line structure."""
    # Remove style and script blocks
    html = re.sub(r"<style[^>]*>.*?</style>", "", html, flags=re.DOTALL | re.IGNORECASE)
    html = re.sub(r"<script[^>]*>.*?</script>", "", html, flags=re.DOTALL | re.IGNORECASE)
    # Block-level tags become line breaks
    html = re.sub(r"<(br|/p|/div|/li|/tr|/h[1-6])[^>]*>", "\n", html, flags=re.IGNORECASE)
    # Remove HTML tags
    text = re.sub(r"<[^>]+>", "", html)
    # Decode common entities
    text = text.replace("&nbsp;", " ").replace("&lt;", "<").replace("&gt;", ">")
    text = text.replace("&quot;", '"').replace("&#39;", "'").replace("&amp;", "&")
    # Collapse runs of spaces and blank lines
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s*\n\s*\n+", "\n\n", text)
    return text.strip()


def parse_timestamp(msg: Dict) -> Optional[datetime]:
    """internalDate (epoch ms) first, the Date header as fallback."""
    internal = msg.get("internalDate")
    if internal:
        try:
            return datetime.fromtimestamp(int(internal) / 1000, tz=timezone.utc)
        except (ValueError, TypeError, OverflowError):
            pass
    date_str = get_header(msg.get("payload", {}).get("headers", []), "Date")
    if not date_str:
        return None
    try:
        dt = parsedate_to_datetime(date_str)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_candidate(msg: Dict, thread_id: str = "") -> Optional[CandidateMessage]:
    """Map one Gmail API message resource to a CandidateMessage."""
    timestamp = parse_timestamp(msg)
    if timestamp is None:
        logger.warning(f"Message {msg.get('id')} has no usable date — skipped")
        return None
    payload = msg.get("payload", {})
    headers = payload.get("headers", [])
    plain, html = extract_bodies(payload)
    return CandidateMessage(
        id=msg["id"],
        timestamp=timestamp,
        subject=get_header(headers, "Subject"),
        sender=get_header(headers, "From"),
        recipients=get_header(headers, "To"),
        plain_body=plain,
        html_body=html,
        thread_id=thread_id or msg.get("threadId", ""),
    )


# ---------------------------------------------------------------------------
# Gmail API fetching
# ---------------------------------------------------------------------------

class GmailSource:
    """Message source backed by a googleapiclient Gmail service."""

    def __init__(self, service, num_retries: int = 3, page_delay: float = 0.2):
        self.service = service
        self.num_retries = num_retries
        self.page_delay = page_delay

    @classmethod
    def from_config(cls, google_config=None):
        from config.settings import config
        from triggers.google_auth import authenticate, build_service
        google_config = google_config or config.google
        creds = authenticate(google_config)
        return cls(build_service("gmail", "v1", creds), num_retries=google_config.num_retries)

    def fetch_thread_ids(self, query: str, limit: int) -> List[str]:
        """Fetch up to `limit` thread IDs matching the query, handling pagination."""
        thread_ids: List[str] = []
        page_token = None

        while len(thread_ids) < limit:
            kwargs = {
                "userId": "me",
                "q": query,
                "maxResults": min(100, limit - len(thread_ids)),
            }
            if page_token:
                kwargs["pageToken"] = page_token

            result = self.service.users().threads().list(**kwargs).execute(
                num_retries=self.num_retries
            )
            threads = result.get("threads", [])
            if not threads:
                break
            thread_ids.extend(t["id"] for t in threads)

            page_token = result.get("nextPageToken")
            if not page_token:
                break
            time.sleep(self.page_delay)

        return thread_ids[:limit]

    def fetch_thread(self, thread_id: str) -> Dict:
        """Fetch full thread detail including all messages."""
        return self.service.users().threads().get(
            userId="me", id=thread_id, format="full",
        ).execute(num_retries=self.num_retries)

    def search(self, query: str, limit: int) -> List[MessageThread]:
        """
        Label/filter search bounded to `limit` threads.
        Any API error propagates: a partial scan must not be treated as complete.
        """
        thread_ids = self.fetch_thread_ids(query, limit)
        logger.info(f"Gmail search '{query}': {len(thread_ids)} threads (cap {limit})")

        threads = []
        for tid in thread_ids:
            data = self.fetch_thread(tid)
            messages = []
            for msg in data.get("messages", []):
                candidate = to_candidate(msg, thread_id=tid)
                if candidate:
                    messages.append(candidate)
            threads.append(MessageThread(id=tid, messages=messages))
        return threads
