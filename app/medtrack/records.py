"""Pure record-keeping operations.

Each function returns new immutable records describing what a user action
changes; storing them is the caller's business.
"""

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from .models import (
    DoseInstant,
    DoseSchedule,
    DoseStatus,
    MedicationHistory,
    MedicationLog,
    Prescription,
)
from .reconcile import LOG_MATCH_TOLERANCE


def _new_id() -> str:
    return str(uuid.uuid4())


def record_taken(
    prescription: Prescription,
    instant: DoseInstant,
    now: datetime,
    actual_at: Optional[datetime] = None,
    scheduled_override: Optional[datetime] = None,
    notes: str = "",
) -> Tuple[MedicationHistory, MedicationLog]:
    """Mark a dose taken.

    ``actual_at`` is the user-entered intake time; when given the history entry
    is flagged as corrected, otherwise ``now`` is used. ``scheduled_override``
    replaces the intended schedule recorded on the history entry (the user
    saying "this was really the 9:00 dose").
    """
    taken_at = actual_at or now
    intended = scheduled_override or instant.scheduled_at
    entry = MedicationHistory(
        id=_new_id(),
        prescription_id=prescription.id,
        prescription_name=prescription.name,
        dosage=prescription.dosage,
        scheduled_date=intended.date(),
        scheduled_time=intended.time().replace(microsecond=0),
        actual_taken_datetime=taken_at,
        quantity_taken=instant.quantity,
        is_corrected=actual_at is not None,
        notes=notes,
    )
    log = MedicationLog(
        id=_new_id(),
        prescription_id=prescription.id,
        scheduled_time=intended,
        status=DoseStatus.TAKEN,
        taken_time=taken_at,
        quantity_taken=instant.quantity,
    )
    return entry, log


def _status_log(instant: DoseInstant, status: DoseStatus, notes: str) -> MedicationLog:
    return MedicationLog(
        id=_new_id(),
        prescription_id=instant.prescription_id,
        scheduled_time=instant.scheduled_at,
        status=status,
        notes=notes,
    )


def record_missed(instant: DoseInstant, notes: str = "") -> MedicationLog:
    return _status_log(instant, DoseStatus.MISSED, notes)


def record_skipped(instant: DoseInstant, notes: str = "") -> MedicationLog:
    return _status_log(instant, DoseStatus.SKIPPED, notes)


def upsert_log(logs: Iterable[MedicationLog], log: MedicationLog) -> List[MedicationLog]:
    # logs have no unique key; same prescription within the tolerance window is "the same" log
    out = []
    replaced = False
    for existing in logs:
        same = (
            not replaced
            and existing.prescription_id == log.prescription_id
            and abs(existing.scheduled_time - log.scheduled_time) < LOG_MATCH_TOLERANCE
        )
        if same:
            out.append(replace(log, id=existing.id or log.id))
            replaced = True
        else:
            out.append(existing)
    if not replaced:
        out.append(log)
    return out


def correct_log_time(log: MedicationLog, taken_time: datetime) -> MedicationLog:
    return replace(log, taken_time=taken_time, is_time_corrected=True)


def edit_history(
    entry: MedicationHistory,
    actual_at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> MedicationHistory:
    changes = {}
    if notes is not None:
        changes["notes"] = notes
    if actual_at is not None and actual_at != entry.actual_taken_datetime:
        changes["actual_taken_datetime"] = actual_at
        changes["is_corrected"] = True
    return replace(entry, **changes) if changes else entry


def delete_history(
    history: Iterable[MedicationHistory], entry_id: str
) -> List[MedicationHistory]:
    return [h for h in history if h.id != entry_id]


def deactivate_prescription(prescription: Prescription) -> Prescription:
    return replace(prescription, is_active=False)


def reactivate_prescription(
    prescription: Prescription, schedules: Iterable[DoseSchedule]
) -> Tuple[Prescription, List[DoseSchedule]]:
    rules = [
        replace(rule, is_active=True) if rule.prescription_id == prescription.id else rule
        for rule in schedules
    ]
    return replace(prescription, is_active=True), rules
