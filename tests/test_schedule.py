from datetime import date, datetime, time

from app.medtrack.models import DoseSchedule, Prescription
from app.medtrack.schedule import expand, expand_day, expand_for_prescriptions, iso_weekday


def rule(t="08:00", days=range(1, 8), rx="rx1", quantity=1, active=True, id=None):
    return DoseSchedule(
        prescription_id=rx,
        dose_time=time.fromisoformat(t),
        quantity=quantity,
        days_of_week=frozenset(days),
        is_active=active,
        id=id,
    )


def test_daily_rule_yields_one_instant_per_day():
    doses = expand([rule("08:30")], date(2024, 1, 1), date(2024, 1, 10))
    assert len(doses) == 10
    assert all(d.scheduled_time == time(8, 30) for d in doses)
    assert [d.scheduled_date.day for d in doses] == list(range(1, 11))


def test_monday_only_over_two_weeks():
    # 2024-01-08 and 2024-01-15 are Mondays
    doses = expand([rule(days={1})], date(2024, 1, 8), date(2024, 1, 21))
    assert [d.scheduled_at for d in doses] == [
        datetime(2024, 1, 8, 8, 0),
        datetime(2024, 1, 15, 8, 0),
    ]


def test_sunday_is_weekday_seven():
    sunday = date(2024, 1, 14)
    assert iso_weekday(sunday) == 7
    assert len(expand_day([rule(days={7})], sunday)) == 1
    assert expand_day([rule(days={1})], sunday) == []


def test_expand_is_idempotent():
    rules = [rule("20:00", days={1, 3, 5}), rule("08:00")]
    assert expand(rules, date(2024, 1, 1), date(2024, 1, 7)) == expand(
        rules, date(2024, 1, 1), date(2024, 1, 7)
    )


def test_single_day_ordered_by_time_of_day():
    rules = [rule("21:00", rx="b"), rule("07:15", rx="a"), rule("12:00:30", rx="c")]
    doses = expand(rules, date(2024, 1, 10))
    assert [d.scheduled_time for d in doses] == [time(7, 15), time(12, 0, 30), time(21, 0)]
    assert [d.prescription_id for d in doses] == ["a", "c", "b"]


def test_instant_carries_rule_quantity_and_id():
    (dose,) = expand([rule(quantity=3, id="s1")], date(2024, 1, 10))
    assert dose.quantity == 3
    assert dose.schedule_id == "s1"
    assert dose.scheduled_at.tzinfo is None


def test_inactive_rule_produces_nothing():
    assert expand([rule(active=False)], date(2024, 1, 1), date(2024, 1, 7)) == []


def test_overlapping_rules_are_not_deduplicated():
    doses = expand([rule("08:00"), rule("08:00")], date(2024, 1, 10))
    assert len(doses) == 2
    assert doses[0].scheduled_at == doses[1].scheduled_at


def test_reversed_range_is_empty():
    assert expand([rule()], date(2024, 1, 10), date(2024, 1, 9)) == []


def test_expand_for_prescriptions_skips_inactive_and_unknown():
    prescriptions = [
        Prescription(id="on", name="Metformin"),
        Prescription(id="off", name="Old", is_active=False),
    ]
    rules = [rule(rx="on"), rule(rx="off"), rule(rx="missing")]
    doses = expand_for_prescriptions(prescriptions, rules, date(2024, 1, 10))
    assert [d.prescription_id for d in doses] == ["on"]
