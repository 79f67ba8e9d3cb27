from datetime import date, datetime, time

import pytest
from dateutil import tz

from app.medtrack.models import (
    DoseSchedule,
    DoseStatus,
    MedicationHistory,
    MedicationLog,
    Prescription,
)
from app.medtrack.validation import validate_prescription, validate_schedule


def test_valid_schedule():
    ok, errors = validate_schedule(DoseSchedule("rx1", time(8, 0), 1, frozenset({1, 7})))
    assert ok
    assert errors == []


def test_empty_weekdays_and_bad_quantity_are_both_reported():
    ok, errors = validate_schedule(DoseSchedule("rx1", time(8, 0), 0, frozenset()))
    assert not ok
    assert len(errors) == 2


def test_weekday_out_of_range():
    ok, errors = validate_schedule(DoseSchedule("rx1", time(8, 0), 1, frozenset({0, 7})))
    assert not ok
    assert "[0]" in errors[0]


def test_not_a_schedule():
    assert validate_schedule({"dose_time": "08:00"}) == (False, ["Input is not a DoseSchedule."])


def test_prescription_validation():
    assert validate_prescription(Prescription(id="rx1", name="Aspirin"))[0]
    ok, errors = validate_prescription(Prescription(id="rx1", name=" ", units_per_dose=0))
    assert not ok
    assert len(errors) == 2


def test_schedule_from_record_accepts_short_times():
    rule = DoseSchedule.from_record(
        {"id": 5, "prescription_id": "rx1", "dose_time": "08:00", "quantity": 2, "days_of_week": [1, 3]}
    )
    assert rule.dose_time == time(8, 0)
    assert rule.days_of_week == frozenset({1, 3})
    assert rule.id == "5"


def test_log_from_record_converts_aware_timestamps_to_local_naive():
    zone = tz.gettz("America/New_York")
    log = MedicationLog.from_record(
        {
            "prescription_id": "rx1",
            "scheduled_time": "2024-01-10T13:00:00Z",
            "status": "Taken",
            "taken_time": "2024-01-10T13:05:00+00:00",
        },
        zone,
    )
    assert log.scheduled_time == datetime(2024, 1, 10, 8, 0)
    assert log.taken_time == datetime(2024, 1, 10, 8, 5)
    assert log.status is DoseStatus.TAKEN


def test_log_from_record_rejects_unknown_status():
    with pytest.raises(ValueError):
        MedicationLog.from_record(
            {"prescription_id": "rx1", "scheduled_time": "2024-01-10T08:00:00", "status": "done"}
        )


def test_history_from_record():
    entry = MedicationHistory.from_record(
        {
            "id": "h1",
            "prescription_id": "rx1",
            "prescription_name": "Aspirin",
            "scheduled_date": "2024-01-10",
            "scheduled_time": "08:00:00",
            "actual_taken_datetime": datetime(2024, 1, 10, 8, 12),
            "quantity_taken": 1,
            "is_corrected": True,
            "notes": None,
        }
    )
    assert entry.scheduled_at == datetime(2024, 1, 10, 8, 0)
    assert entry.scheduled_date == date(2024, 1, 10)
    assert entry.notes == ""
