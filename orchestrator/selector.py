"""
Candidate selection — which scanned messages are new.

A message is new iff its timestamp is after the watermark AND its id is not
in the recency list. New messages are returned newest-first; Python's sort
is stable, so exact ties keep source iteration order.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List

from models.messages import CandidateMessage, MessageThread


@dataclass
class Selection:
    batch: List[CandidateMessage] = field(default_factory=list)
    threads_scanned: int = 0
    messages_scanned: int = 0


def is_eligible(message: CandidateMessage, watermark: datetime, recent_ids) -> bool:
    return message.timestamp > watermark and message.id not in recent_ids


def select_candidates(
    threads: Iterable[MessageThread],
    watermark: datetime,
    recent_ids: Iterable[str],
) -> Selection:
    recent = set(recent_ids)
    selection = Selection()
    eligible = []
    for thread in threads:
        selection.threads_scanned += 1
        for message in thread.messages:
            selection.messages_scanned += 1
            if is_eligible(message, watermark, recent):
                eligible.append(message)

    selection.batch = sorted(eligible, key=lambda m: m.timestamp, reverse=True)
    return selection
