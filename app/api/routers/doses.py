import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from app.api.auth import require_capability
from app.medtrack.aggregate import (
    aggregate,
    filter_doses,
    filter_history,
    history_stats,
    next_pending,
    sort_doses,
    sort_history,
    taken_on,
)
from app.medtrack.config import load_settings
from app.medtrack.models import DoseStatus, MedicationHistory, ReconciledDose
from app.medtrack.reconcile import find_ambiguities, reconcile_all
from app.medtrack.schedule import expand_for_prescriptions
from app.medtrack.snapshot import Snapshot, load_snapshot
from app.medtrack.timing import classify_history, classify_timing, describe_offset

router = APIRouter(tags=["doses"])
logger = logging.getLogger(__name__)

HISTORY_DEFAULT_DAYS = 30


class SummaryOut(BaseModel):
    start: date
    end: date
    prescription_id: Optional[str] = None
    total: int
    taken: int
    missed: int
    pending: int
    skipped: int
    adherence_rate: int
    on_time_rate: int


class HistoryStatsOut(BaseModel):
    start: date
    end: date
    prescription_name: Optional[str] = None
    total: int
    on_time: int
    corrected: int
    on_time_rate: int
    prescription_names: List[str]


def get_snapshot(user_id: str) -> Snapshot:
    settings = load_settings()
    try:
        return load_snapshot(user_id, dsn=settings.dsn, tz_name=settings.tz_name)
    except Exception:
        logger.exception("load_snapshot failed user=%s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error"
        )


def get_now(snap: Snapshot = Depends(get_snapshot)) -> datetime:
    # database clock read in the snapshot transaction, already naive local
    return snap.as_of


def _date_range(
    start: Optional[date], end: Optional[date], today: date, default_days: int = 0
) -> Tuple[date, date]:
    end = end or (start if start and not default_days else today)
    start = start or (end - timedelta(days=default_days))
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="end is before start"
        )
    return start, end


def _reconciled(snap: Snapshot, start: date, end: date) -> List[ReconciledDose]:
    instants = expand_for_prescriptions(snap.prescriptions, snap.schedules, start, end)
    return reconcile_all(instants, snap.logs, snap.history)


def _dose_row(dose: ReconciledDose, snap: Snapshot, now: datetime) -> Dict[str, Any]:
    rx = snap.prescription(dose.instant.prescription_id)
    timing = classify_timing(dose)
    row = {
        "prescription_id": dose.instant.prescription_id,
        "prescription_name": rx.name if rx else None,
        "dosage": rx.dosage if rx else None,
        "unit": rx.unit if rx else None,
        "scheduled_at": dose.instant.scheduled_at.isoformat(),
        "quantity": dose.instant.quantity,
        "status": dose.status.value,
        "source": dose.source.kind if dose.source else None,
        "is_future": dose.is_future(now),
        "ambiguous": dose.is_ambiguous,
        "history_ids": [h.id for h in dose.history_matches],
        "log_id": dose.log.id if dose.log else None,
        "actual_taken_at": (
            dose.actual_taken_at.isoformat() if dose.actual_taken_at else None
        ),
        "timing": None,
    }
    if timing is not None:
        row["timing"] = {
            "offset_minutes": timing.offset_minutes,
            "bucket": timing.bucket.value,
            "corrected": timing.corrected,
            "stored_corrected": timing.stored_corrected,
            "flag_mismatch": timing.flag_mismatch,
            "label": describe_offset(timing.offset_minutes),
        }
    return row


@router.get("/people/{user_id}/doses")
def list_doses(
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    prescription_id: Optional[str] = None,
    dose_status: Optional[DoseStatus] = Query(None, alias="status"),
    order: Literal["asc", "desc"] = "asc",
    snap: Snapshot = Depends(get_snapshot),
    now: datetime = Depends(get_now),
    caps=Depends(require_capability("reports")),
) -> Dict[str, Any]:
    start, end = _date_range(start, end, now.date())
    doses = filter_doses(
        _reconciled(snap, start, end), prescription_id=prescription_id, status=dose_status
    )
    doses = sort_doses(doses, descending=(order == "desc"))
    rows = [_dose_row(d, snap, now) for d in doses]
    logger.info("list_doses user=%s %s..%s -> %d", user_id, start, end, len(rows))
    return {"rows": rows, "count": len(rows)}


@router.get("/people/{user_id}/doses/summary", response_model=SummaryOut)
def doses_summary(
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    prescription_id: Optional[str] = None,
    snap: Snapshot = Depends(get_snapshot),
    now: datetime = Depends(get_now),
    caps=Depends(require_capability("reports")),
):
    start, end = _date_range(start, end, now.date())
    doses = filter_doses(_reconciled(snap, start, end), prescription_id=prescription_id)
    summary = aggregate(doses)
    return SummaryOut(
        start=start, end=end, prescription_id=prescription_id, **summary.to_dict()
    )


@router.get("/people/{user_id}/history/stats", response_model=HistoryStatsOut)
def history_summary(
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    prescription_name: Optional[str] = None,
    snap: Snapshot = Depends(get_snapshot),
    now: datetime = Depends(get_now),
    caps=Depends(require_capability("reports")),
):
    start, end = _date_range(start, end, now.date(), default_days=HISTORY_DEFAULT_DAYS)
    stats = history_stats(snap.history, start, end, prescription_name)
    return HistoryStatsOut(
        start=start,
        end=end,
        prescription_name=prescription_name,
        total=stats.total,
        on_time=stats.on_time,
        corrected=stats.corrected,
        on_time_rate=stats.on_time_rate,
        prescription_names=list(stats.prescription_names),
    )


def _history_row(entry: MedicationHistory) -> Dict[str, Any]:
    timing = classify_history(entry)
    return {
        "id": entry.id,
        "prescription_id": entry.prescription_id,
        "prescription_name": entry.prescription_name,
        "dosage": entry.dosage,
        "scheduled_at": entry.scheduled_at.isoformat(),
        "actual_taken_at": entry.actual_taken_datetime.isoformat(),
        "quantity_taken": entry.quantity_taken,
        "is_corrected": entry.is_corrected,
        "notes": entry.notes,
        "offset_minutes": timing.offset_minutes,
        "bucket": timing.bucket.value,
        "label": describe_offset(timing.offset_minutes),
    }


@router.get("/people/{user_id}/history")
def list_history(
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    prescription_name: Optional[str] = None,
    sort: Literal["scheduled", "actual"] = "actual",
    order: Literal["asc", "desc"] = "desc",
    snap: Snapshot = Depends(get_snapshot),
    now: datetime = Depends(get_now),
    caps=Depends(require_capability("reports")),
) -> Dict[str, Any]:
    start, end = _date_range(start, end, now.date(), default_days=HISTORY_DEFAULT_DAYS)
    entries = filter_history(snap.history, start, end, prescription_name)
    entries = sort_history(entries, by=sort, descending=(order == "desc"))
    rows = [_history_row(e) for e in entries]
    logger.info("list_history user=%s %s..%s -> %d", user_id, start, end, len(rows))
    return {"start": start.isoformat(), "end": end.isoformat(), "rows": rows, "count": len(rows)}


@router.get("/people/{user_id}/today")
def today_overview(
    user_id: str,
    snap: Snapshot = Depends(get_snapshot),
    now: datetime = Depends(get_now),
    caps=Depends(require_capability("reports")),
) -> Dict[str, Any]:
    today = now.date()
    doses = _reconciled(snap, today, today)
    prescriptions = []
    for rx in snap.prescriptions:
        if not rx.is_active:
            continue
        nxt = next_pending(doses, rx.id, now)
        prescriptions.append(
            {
                "prescription_id": rx.id,
                "prescription_name": rx.name,
                "dosage": rx.dosage,
                "next_pending": _dose_row(nxt, snap, now) if nxt else None,
            }
        )
    return {
        "date": today.isoformat(),
        "active_prescriptions": len(prescriptions),
        "taken_today": taken_on(snap.history, today),
        "prescriptions": prescriptions,
    }


@router.get("/admin/people/{user_id}/integrity")
def integrity_report(
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    snap: Snapshot = Depends(get_snapshot),
    now: datetime = Depends(get_now),
    caps=Depends(require_capability("admin")),
) -> Dict[str, Any]:
    start, end = _date_range(start, end, now.date(), default_days=HISTORY_DEFAULT_DAYS)
    doses = _reconciled(snap, start, end)
    ambiguous = [
        {
            "prescription_id": w.prescription_id,
            "scheduled_at": w.scheduled_at.isoformat(),
            "history_ids": list(w.history_ids),
            "message": w.message,
        }
        for w in find_ambiguities(doses)
    ]
    mismatches = []
    for dose in doses:
        timing = classify_timing(dose)
        if timing is not None and timing.flag_mismatch:
            mismatches.append(
                {
                    "history_id": dose.history.id,
                    "scheduled_at": dose.instant.scheduled_at.isoformat(),
                    "offset_minutes": timing.offset_minutes,
                    "stored_corrected": timing.stored_corrected,
                }
            )
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "ambiguous": ambiguous,
        "flag_mismatches": mismatches,
    }
