from datetime import date, datetime
from typing import Iterable, List, Optional

from .models import (
    AdherenceSummary,
    DoseStatus,
    HistoryStats,
    MedicationHistory,
    ReconciledDose,
    TimingBucket,
)
from .timing import classify_history, classify_timing, round_half_up


def percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(part * 100.0 / whole)


def aggregate(doses: Iterable[ReconciledDose]) -> AdherenceSummary:
    counts = {status: 0 for status in DoseStatus}
    on_time = 0
    for dose in doses:
        counts[dose.status] += 1
        if dose.status is DoseStatus.TAKEN:
            timing = classify_timing(dose)
            # taken via a log event only has no intake time, so never on time
            if timing is not None and timing.bucket is TimingBucket.ON_TIME:
                on_time += 1

    total = sum(counts.values())
    taken = counts[DoseStatus.TAKEN]
    return AdherenceSummary(
        total=total,
        taken=taken,
        missed=counts[DoseStatus.MISSED],
        pending=counts[DoseStatus.PENDING],
        skipped=counts[DoseStatus.SKIPPED],
        adherence_rate=percent(taken, total),
        on_time_rate=percent(on_time, taken),
    )


def filter_doses(
    doses: Iterable[ReconciledDose],
    start: Optional[date] = None,
    end: Optional[date] = None,
    prescription_id: Optional[str] = None,
    status: Optional[DoseStatus] = None,
) -> List[ReconciledDose]:
    out = []
    for dose in doses:
        day = dose.instant.scheduled_date
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        if prescription_id is not None and dose.instant.prescription_id != prescription_id:
            continue
        if status is not None and dose.status is not status:
            continue
        out.append(dose)
    return out


def sort_doses(doses: Iterable[ReconciledDose], descending: bool = False) -> List[ReconciledDose]:
    return sorted(doses, key=lambda d: d.instant.scheduled_at, reverse=descending)


def next_pending(
    doses: Iterable[ReconciledDose], prescription_id: str, now: datetime
) -> Optional[ReconciledDose]:
    """Earliest still-pending dose of the prescription on ``now``'s day.

    An earlier pending dose that is already overdue still counts as next.
    """
    today = filter_doses(
        doses,
        start=now.date(),
        end=now.date(),
        prescription_id=prescription_id,
        status=DoseStatus.PENDING,
    )
    ordered = sort_doses(today)
    return ordered[0] if ordered else None


def taken_on(history: Iterable[MedicationHistory], day: date) -> int:
    # counts by intended day, not by when the dose was actually taken
    return sum(1 for entry in history if entry.scheduled_date == day)


HISTORY_SORT_KEYS = {
    "scheduled": lambda e: e.scheduled_at,
    "actual": lambda e: e.actual_taken_datetime,
}


def filter_history(
    history: Iterable[MedicationHistory],
    start: Optional[date] = None,
    end: Optional[date] = None,
    prescription_name: Optional[str] = None,
) -> List[MedicationHistory]:
    """History entries whose actual taken date lies in ``start..end``."""
    out = []
    for entry in history:
        taken_on_day = entry.actual_taken_datetime.date()
        if start is not None and taken_on_day < start:
            continue
        if end is not None and taken_on_day > end:
            continue
        if prescription_name is not None and entry.prescription_name != prescription_name:
            continue
        out.append(entry)
    return out


def sort_history(
    history: Iterable[MedicationHistory], by: str = "actual", descending: bool = False
) -> List[MedicationHistory]:
    try:
        key = HISTORY_SORT_KEYS[by]
    except KeyError:
        raise ValueError(f"unknown history sort key: {by!r}") from None
    return sorted(history, key=key, reverse=descending)


def history_stats(
    history: Iterable[MedicationHistory],
    start: Optional[date] = None,
    end: Optional[date] = None,
    prescription_name: Optional[str] = None,
) -> HistoryStats:
    """Summary over history entries alone, filtered on the actual taken date."""
    history = list(history)
    names = {entry.prescription_name for entry in history}
    entries = filter_history(history, start, end, prescription_name)

    on_time = sum(
        1 for e in entries if classify_history(e).bucket is TimingBucket.ON_TIME
    )
    return HistoryStats(
        total=len(entries),
        on_time=on_time,
        corrected=sum(1 for e in entries if e.is_corrected),
        on_time_rate=percent(on_time, len(entries)),
        prescription_names=tuple(sorted(names)),
    )
