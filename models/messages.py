"""GTD Consolidator — Source message models."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List


@dataclass
class CandidateMessage:
    """One Gmail message observed during a run. Never persisted."""
    id: str
    timestamp: datetime          # timezone-aware UTC
    subject: str = ""
    sender: str = ""
    recipients: str = ""
    plain_body: str = ""
    html_body: str = ""
    thread_id: str = ""

    @property
    def display_subject(self) -> str:
        return self.subject or "(no subject)"


@dataclass
class MessageThread:
    """A thread returned by the label search, messages in thread order."""
    id: str
    messages: List[CandidateMessage] = field(default_factory=list)
