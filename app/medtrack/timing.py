import math
from datetime import datetime
from typing import Optional

from .models import (
    MedicationHistory,
    ReconciledDose,
    TimingBucket,
    TimingClassification,
)

ON_TIME_MINUTES = 15
MODERATE_MINUTES = 60
CORRECTION_MINUTES = 1


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def offset_minutes(scheduled: datetime, actual: datetime) -> int:
    # positive = late, negative = early
    return round_half_up((actual - scheduled).total_seconds() / 60.0)


def bucket_for(offset: int) -> TimingBucket:
    magnitude = abs(offset)
    if magnitude <= ON_TIME_MINUTES:
        return TimingBucket.ON_TIME
    if magnitude <= MODERATE_MINUTES:
        return TimingBucket.MODERATE_DEVIATION
    return TimingBucket.LARGE_DEVIATION


def classify(
    scheduled: datetime, actual: datetime, stored_corrected: Optional[bool] = None
) -> TimingClassification:
    offset = offset_minutes(scheduled, actual)
    return TimingClassification(
        offset_minutes=offset,
        bucket=bucket_for(offset),
        corrected=abs(offset) > CORRECTION_MINUTES,
        stored_corrected=stored_corrected,
    )


def classify_history(entry: MedicationHistory) -> TimingClassification:
    return classify(entry.scheduled_at, entry.actual_taken_datetime, entry.is_corrected)


def classify_timing(dose: ReconciledDose) -> Optional[TimingClassification]:
    """Classify against the dose's single linked history event.

    Returns None when there is no actual intake time to compare: pending
    doses, doses decided by a log event, and ambiguous history matches.
    """
    entry = dose.history
    if entry is None:
        return None
    return classify(dose.instant.scheduled_at, entry.actual_taken_datetime, entry.is_corrected)


def describe_offset(offset: int) -> str:
    if offset == 0:
        return "On time"
    if offset > 0:
        return f"{offset} min late"
    return f"{abs(offset)} min early"
