"""Progress and timing metrics derived from a session.

Everything here is a pure function of its arguments.  Times are in
milliseconds.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from stocktake.schemas.session import CountProgress, RosterItem, Session


@dataclass(frozen=True)
class SessionStatistics:
    total: int
    counted: int
    remaining: int
    percentage: int
    time_spent: int
    avg_time_per_item: float
    estimated_remaining_time: float

    def as_dict(self) -> dict:
        return asdict(self)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_ms(start: datetime, end: datetime) -> int:
    return max(int((end - start).total_seconds() * 1000), 0)


def percentage(counted: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up rounding, not banker's rounding.
    return min(int(counted * 100 / total + 0.5), 100)


def recompute_progress(progress: CountProgress, items: list[RosterItem]) -> CountProgress:
    """Return *progress* with total/counted/percentage re-derived from *items*."""
    counted = sum(1 for item in items if item.counted)
    return progress.model_copy(update={
        "total": len(items),
        "counted": counted,
        "percentage": percentage(counted, len(items)),
    })


def compute_statistics(session: Session, now: datetime | None = None) -> SessionStatistics:
    """Progress metrics for *session* as of *now*.

    A finished session is measured up to its end time rather than *now*.
    """
    total = len(session.items)
    counted = sum(1 for item in session.items if item.counted)
    remaining = total - counted

    end = session.count_progress.end_time or now or utcnow()
    time_spent = elapsed_ms(session.count_progress.start_time, end)
    avg = time_spent / counted if counted > 0 else 0

    return SessionStatistics(
        total=total,
        counted=counted,
        remaining=remaining,
        percentage=percentage(counted, total),
        time_spent=time_spent,
        avg_time_per_item=avg,
        estimated_remaining_time=remaining * avg,
    )


def format_duration(milliseconds: float) -> str:
    """Compact human duration: ``1h 5m``, ``3m 12s`` or ``42s``."""
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
