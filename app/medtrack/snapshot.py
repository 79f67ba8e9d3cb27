"""Load one user's rules, logs and history from Postgres as a single snapshot.

All four collections are read inside one REPEATABLE READ transaction so the
engine never sees a history entry whose rule or log was read at a different
moment.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

import psycopg
from psycopg.rows import dict_row

from . import db
from .models import DoseSchedule, MedicationHistory, MedicationLog, Prescription
from .timeutil import local_zone, to_local_naive
from .validation import validate_schedule

logger = logging.getLogger(__name__)

PRESCRIPTIONS_SQL = """
SELECT id, name, dosage, unit, units_per_dose, notes, is_active
FROM prescriptions
WHERE user_id = %(user_id)s
ORDER BY created_at
"""

SCHEDULES_SQL = """
SELECT ds.id, ds.prescription_id, ds.dose_time, ds.quantity, ds.days_of_week, ds.is_active
FROM dose_schedules ds
JOIN prescriptions p ON p.id = ds.prescription_id
WHERE p.user_id = %(user_id)s
ORDER BY ds.dose_time, ds.created_at
"""

LOGS_SQL = """
SELECT id, prescription_id, scheduled_time, taken_time, quantity_taken,
       status, is_time_corrected, notes
FROM medication_logs
WHERE user_id = %(user_id)s
ORDER BY scheduled_time
"""

HISTORY_SQL = """
SELECT id, prescription_id, prescription_name, dosage, scheduled_date, scheduled_time,
       actual_taken_datetime, quantity_taken, is_corrected, notes
FROM medication_history
WHERE user_id = %(user_id)s
ORDER BY actual_taken_datetime
"""


@dataclass(frozen=True)
class Snapshot:
    user_id: str
    as_of: datetime
    prescriptions: Tuple[Prescription, ...] = ()
    schedules: Tuple[DoseSchedule, ...] = ()
    logs: Tuple[MedicationLog, ...] = ()
    history: Tuple[MedicationHistory, ...] = ()

    def prescription(self, prescription_id: str) -> Optional[Prescription]:
        for p in self.prescriptions:
            if p.id == prescription_id:
                return p
        return None


def _rows(cur, sql: str, user_id: str) -> List[dict]:
    cur.execute(sql, {"user_id": user_id})
    return list(cur.fetchall())


def _valid_schedules(rows: List[dict]) -> List[DoseSchedule]:
    rules = []
    for row in rows:
        rule = DoseSchedule.from_record(row)
        ok, errors = validate_schedule(rule)
        if not ok:
            logger.warning("dropping dose schedule id=%s errors=%s", rule.id, errors)
            continue
        rules.append(rule)
    return rules


def load_snapshot(
    user_id: str, dsn: Optional[str] = None, tz_name: Optional[str] = None
) -> Snapshot:
    zone = local_zone(tz_name)
    with db.pg(dsn, autocommit=False) as conn:
        conn.isolation_level = psycopg.IsolationLevel.REPEATABLE_READ
        with conn.transaction():
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT now() AS as_of")
                as_of = to_local_naive(cur.fetchone()["as_of"], zone)
                prescriptions = _rows(cur, PRESCRIPTIONS_SQL, user_id)
                schedules = _rows(cur, SCHEDULES_SQL, user_id)
                logs = _rows(cur, LOGS_SQL, user_id)
                history = _rows(cur, HISTORY_SQL, user_id)

    snap = Snapshot(
        user_id=user_id,
        as_of=as_of,
        prescriptions=tuple(Prescription.from_record(r) for r in prescriptions),
        schedules=tuple(_valid_schedules(schedules)),
        logs=tuple(MedicationLog.from_record(r, zone) for r in logs),
        history=tuple(MedicationHistory.from_record(r, zone) for r in history),
    )
    logger.debug(
        "snapshot user=%s prescriptions=%d schedules=%d logs=%d history=%d",
        user_id,
        len(snap.prescriptions),
        len(snap.schedules),
        len(snap.logs),
        len(snap.history),
    )
    return snap
