"""Display order for the public queue.

Running work first (by start time), then assigned priorities ascending, then
unassigned (0), then held (-1). Ties fall back to creation time.
"""
import sys
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from leaderboard.database.models import SubmissionStatus

RUNNING_STATUSES = {SubmissionStatus.RUNNING.value, SubmissionStatus.STARTING.value}

UNASSIGNED_PRIORITY = 0
HELD_PRIORITY = -1

_UNASSIGNED_RANK = sys.maxsize - 1
_HELD_RANK = sys.maxsize


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, SubmissionStatus) else str(status)


def priority_rank(priority_score: Optional[int]) -> int:
    score = priority_score or 0
    if score > 0:
        return score
    if score == UNASSIGNED_PRIORITY:
        return _UNASSIGNED_RANK
    return _HELD_RANK


def is_held(row: Any) -> bool:
    return (row.priority_score or 0) <= HELD_PRIORITY


def queue_sort_key(row: Any) -> Tuple[int, datetime, int, datetime]:
    created = row.created_at or datetime.min
    if _status_value(row.status) in RUNNING_STATUSES:
        return (0, row.started_at or datetime.min, 0, created)
    return (1, datetime.min, priority_rank(row.priority_score), created)


def order_queue(rows: Iterable[Any]) -> List[Any]:
    return sorted(rows, key=queue_sort_key)


def queue_positions(rows: List[Any]) -> List[Optional[int]]:
    """1-based position among non-held rows; held rows have no position."""
    positions: List[Optional[int]] = []
    seen = 0
    for row in rows:
        if is_held(row):
            positions.append(None)
            continue
        seen += 1
        positions.append(seen)
    return positions


def model_display_name(params: Optional[Mapping[str, Any]]) -> str:
    params = params or {}
    model_id = params.get("modelId")
    if model_id:
        parts = model_id.split("/")
        return parts[1] if len(parts) > 1 else model_id

    gguf_url = params.get("ggufUrl")
    if gguf_url:
        filename = gguf_url.rstrip("/").split("/")[-1] or gguf_url
        return filename[:27] + "..." if len(filename) > 30 else filename

    return "Unknown"


def queue_view(rows: Iterable[Any]) -> List[Dict[str, Any]]:
    ordered = order_queue(rows)
    items = []
    for row, position in zip(ordered, queue_positions(ordered)):
        items.append(
            {
                "id": row.id,
                "status": _status_value(row.status),
                "modelName": model_display_name(row.params),
                "priorityScore": row.priority_score,
                "queuePosition": position,
                "held": is_held(row),
                "createdAt": row.created_at,
                "startedAt": row.started_at,
            }
        )
    return items
