"""
Watermark / recency bookkeeping after a batch has been inserted.
Pure functions: the engine commits the returned Progress in one write.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from models.messages import CandidateMessage
from models.results import MessageResult


@dataclass
class Progress:
    watermark: datetime
    recent_ids: List[str]
    inserted: int

    @property
    def changed(self) -> bool:
        return self.inserted > 0


def fold_recent_ids(recent_ids: Iterable[str], new_ids: Iterable[str], limit: int) -> List[str]:
    """
    Append ids not already present, then keep only the newest `limit`.
    An id that is already present keeps its position.
    """
    folded = list(recent_ids)
    seen = set(folded)
    for mid in new_ids:
        if mid not in seen:
            folded.append(mid)
            seen.add(mid)
    if limit <= 0:
        return []
    return folded[-limit:]


def compute_progress(
    batch: List[CandidateMessage],
    results: List[MessageResult],
    watermark: datetime,
    recent_ids: List[str],
    limit: int,
) -> Progress:
    """New watermark = max timestamp over inserted messages; never moves back."""
    by_id = {r.message_id: r for r in results}
    inserted = [m for m in batch if by_id.get(m.id) is not None and by_id[m.id].inserted]

    newest: Optional[datetime] = max((m.timestamp for m in inserted), default=None)
    new_watermark = watermark if newest is None or newest <= watermark else newest

    if not inserted:
        return Progress(watermark=watermark, recent_ids=list(recent_ids), inserted=0)

    return Progress(
        watermark=new_watermark,
        # Oldest first, so the newest ids are the last evicted
        recent_ids=fold_recent_ids(recent_ids, [m.id for m in reversed(inserted)], limit),
        inserted=len(inserted),
    )
