import logging
from datetime import date, datetime, time

from app.medtrack.models import (
    DoseInstant,
    DoseStatus,
    HistorySource,
    LogSource,
    MedicationHistory,
    MedicationLog,
)
from app.medtrack.reconcile import (
    find_ambiguities,
    match_log,
    reconcile,
    reconcile_all,
)

AT = datetime(2024, 1, 10, 8, 0, 0)


def instant(at=AT, rx="rx1"):
    return DoseInstant(prescription_id=rx, scheduled_at=at)


def hist(id="h1", rx="rx1", d=date(2024, 1, 10), t=time(8, 0), actual=None, corrected=False):
    return MedicationHistory(
        id=id,
        prescription_id=rx,
        scheduled_date=d,
        scheduled_time=t,
        actual_taken_datetime=actual or datetime.combine(d, t),
        is_corrected=corrected,
    )


def log(at, status=DoseStatus.TAKEN, rx="rx1", id=None):
    return MedicationLog(prescription_id=rx, scheduled_time=at, status=status, id=id)


def test_history_match_wins_over_log():
    entry = hist()
    skipped = log(AT, DoseStatus.SKIPPED, id="l1")
    dose = reconcile(instant(), [skipped], [entry])
    assert dose.status is DoseStatus.TAKEN
    assert isinstance(dose.source, HistorySource)
    assert dose.history is entry
    # log retained as supplementary data only
    assert dose.log is skipped


def test_history_matches_on_intended_schedule_not_actual_time():
    late = hist(actual=datetime(2024, 1, 10, 11, 45))
    assert reconcile(instant(), [], [late]).status is DoseStatus.TAKEN

    other_slot = hist(t=time(8, 0, 1), actual=AT)
    assert reconcile(instant(), [], [other_slot]).status is DoseStatus.PENDING


def test_history_for_other_prescription_or_day_does_not_match():
    entries = [hist(rx="rx2"), hist(d=date(2024, 1, 11))]
    assert reconcile(instant(), [], entries).status is DoseStatus.PENDING


def test_log_within_tolerance_sets_status():
    dose = reconcile(instant(), [log(datetime(2024, 1, 10, 8, 0, 30), DoseStatus.MISSED)], [])
    assert dose.status is DoseStatus.MISSED
    assert isinstance(dose.source, LogSource)
    assert dose.history is None


def test_log_outside_tolerance_falls_back_to_pending():
    dose = reconcile(instant(), [log(datetime(2024, 1, 10, 8, 5, 0))], [])
    assert dose.status is DoseStatus.PENDING
    assert dose.source is None
    assert dose.log is None


def test_tolerance_bound_is_exclusive():
    assert match_log(instant(), [log(datetime(2024, 1, 10, 8, 1, 0))]) is None
    assert match_log(instant(), [log(datetime(2024, 1, 10, 7, 59, 1))]) is not None


def test_log_for_other_prescription_is_ignored():
    assert reconcile(instant(), [log(AT, rx="rx2")], []).status is DoseStatus.PENDING


def test_closest_log_wins():
    far = log(datetime(2024, 1, 10, 8, 0, 50), DoseStatus.SKIPPED, id="far")
    near = log(datetime(2024, 1, 10, 7, 59, 50), DoseStatus.MISSED, id="near")
    assert match_log(instant(), [far, near]).id == "near"


def test_past_dose_without_events_stays_pending():
    dose = reconcile(instant(datetime(2000, 1, 1, 8, 0)), [], [])
    assert dose.status is DoseStatus.PENDING
    assert dose.is_future(datetime(2024, 1, 1)) is False


def test_duplicate_history_is_reported_not_guessed(caplog):
    a, b = hist(id="h1"), hist(id="h2", actual=datetime(2024, 1, 10, 9, 0))
    with caplog.at_level(logging.WARNING, logger="app.medtrack.reconcile"):
        dose = reconcile(instant(), [], [a, b])
    assert dose.status is DoseStatus.TAKEN
    assert dose.is_ambiguous
    assert dose.history is None
    assert dose.history_matches == (a, b)
    assert "ambiguous history match" in caplog.text

    (warning,) = find_ambiguities([dose])
    assert warning.history_ids == ("h1", "h2")
    assert warning.scheduled_at == AT


def test_reconcile_all_agrees_with_reconcile():
    instants = [
        instant(datetime(2024, 1, 10, 8, 0)),
        instant(datetime(2024, 1, 10, 20, 0)),
        instant(datetime(2024, 1, 11, 8, 0)),
        instant(datetime(2024, 1, 11, 8, 0), rx="rx2"),
    ]
    logs = [
        log(datetime(2024, 1, 10, 20, 0, 20), DoseStatus.SKIPPED),
        log(datetime(2024, 1, 11, 7, 59, 30), DoseStatus.MISSED, id="before"),
        log(datetime(2024, 1, 11, 8, 0, 30), DoseStatus.TAKEN, id="after"),
        log(datetime(2024, 1, 11, 8, 0, 10), DoseStatus.MISSED, rx="rx2"),
    ]
    history = [hist(), hist(id="h9", d=date(2024, 1, 11))]
    assert reconcile_all(instants, logs, history) == [
        reconcile(i, logs, history) for i in instants
    ]
