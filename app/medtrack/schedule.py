from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, List, Optional

from .models import DoseInstant, DoseSchedule, Prescription


def iso_weekday(day: date) -> int:
    # 1=Monday .. 7=Sunday; a 0=Sunday source convention maps Sunday to 7
    return day.isoweekday()


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def expand_day(schedules: Iterable[DoseSchedule], day: date) -> List[DoseInstant]:
    weekday = iso_weekday(day)
    doses = [
        DoseInstant(
            prescription_id=rule.prescription_id,
            scheduled_at=datetime.combine(day, rule.dose_time),
            quantity=rule.quantity,
            schedule_id=rule.id,
        )
        for rule in schedules
        if rule.is_active and weekday in rule.days_of_week
    ]
    # sorted() is stable, so rules at the same time keep their input order
    return sorted(doses, key=lambda d: d.scheduled_at)


def expand(
    schedules: Iterable[DoseSchedule], start: date, end: Optional[date] = None
) -> List[DoseInstant]:
    """Expand rules into dose instants for ``start`` or the inclusive range
    ``start..end``. Overlapping rules are not deduplicated.
    """
    rules = list(schedules)
    doses: List[DoseInstant] = []
    for day in iter_days(start, end if end is not None else start):
        doses.extend(expand_day(rules, day))
    return doses


def expand_for_prescriptions(
    prescriptions: Iterable[Prescription],
    schedules: Iterable[DoseSchedule],
    start: date,
    end: Optional[date] = None,
) -> List[DoseInstant]:
    active = {p.id for p in prescriptions if p.is_active}
    # rules for prescriptions outside the snapshot simply produce nothing
    return expand((r for r in schedules if r.prescription_id in active), start, end)
