"""GTD Consolidator — Per-message results and the run report."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

STATUS_OK = "ok"
STATUS_PLACEHOLDER = "placeholder"  # failed, failure marker inserted in its place
STATUS_FAILED = "failed"            # failed, nothing inserted


@dataclass
class MessageResult:
    """Outcome of inserting one batch member."""
    message_id: str
    status: str
    reason: Optional[str] = None

    @classmethod
    def ok(cls, message_id: str) -> "MessageResult":
        return cls(message_id, STATUS_OK)

    @classmethod
    def placeholder(cls, message_id: str, reason: str) -> "MessageResult":
        return cls(message_id, STATUS_PLACEHOLDER, reason)

    @classmethod
    def failed(cls, message_id: str, reason: str) -> "MessageResult":
        return cls(message_id, STATUS_FAILED, reason)

    @property
    def inserted(self) -> bool:
        """Placeholders count as inserted: the watermark advances over them."""
        return self.status in (STATUS_OK, STATUS_PLACEHOLDER)


@dataclass
class RunReport:
    """Summary of one consolidation run, emitted whatever the outcome."""
    mode: str
    label: str
    threads_scanned: int = 0
    messages_scanned: int = 0
    selected: int = 0
    inserted: int = 0
    placeholders: int = 0
    failed: int = 0
    watermark_before: Optional[datetime] = None
    watermark_after: Optional[datetime] = None
    document_id: Optional[str] = None
    elapsed_ms: int = 0
    error: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.watermark_after is not None

    def summary(self) -> str:
        line = (
            f"label={self.label} | mode={self.mode} | threads={self.threads_scanned} | "
            f"messages={self.messages_scanned} | selected={self.selected} | "
            f"inserted={self.inserted} | placeholders={self.placeholders} | "
            f"failed={self.failed} | elapsed={self.elapsed_ms}ms"
        )
        if self.error:
            line += f" | error={self.error}"
        return line
