from datetime import date, datetime

from ohms_booking.models import Appointment
from ohms_booking.refund import calculate_refund, is_refunded, quote_for, sort_refund_queue

WORK_DATE = date(2025, 3, 10)


def quote(deposit, cancel, changed=False):
    q = calculate_refund(deposit, cancel, WORK_DATE, changed)
    return q.amount, q.percentage


def test_lead_time_tiers():
    assert quote(200000, datetime(2025, 3, 7, 10, 0)) == (200000, 100)
    assert quote(200000, datetime(2025, 3, 8, 23, 59)) == (200000, 100)
    assert quote(200000, datetime(2025, 3, 9, 8, 0)) == (100000, 50)
    assert quote(200000, datetime(2025, 3, 10, 7, 0)) == (0, 0)
    assert quote(200000, datetime(2025, 3, 11, 7, 0)) == (0, 0)


def test_doctor_change_overrides_lead_time():
    assert quote(200000, datetime(2025, 3, 10, 9, 0), changed=True) == (200000, 100)


def test_half_refund_is_floored_and_degenerate_deposits_are_fine():
    assert quote(199999, date(2025, 3, 9)) == (99999, 50)
    assert quote(0, date(2025, 3, 1)) == (0, 100)
    assert quote(-200000, date(2025, 3, 1)) == (200000, 100)


def cancelled(id, cancel_time, deposit=200000, changed=None):
    return Appointment(
        id=id,
        work_date=WORK_DATE,
        start_time="09:00",
        end_time="09:10",
        status="CANCELLED",
        deposit=deposit,
        cancel_time=cancel_time,
        is_remove_by_change_schedule=changed,
    )


def test_quote_for_appointment_uses_absolute_deposit():
    refunded = cancelled("r", datetime(2025, 3, 1, 9, 0), deposit=-200000)
    assert is_refunded(refunded)
    assert quote_for(refunded).amount == 200000
    assert quote_for(cancelled("c", datetime(2025, 3, 10, 8, 0), changed=True)).percentage == 100


def test_schedule_removal_without_cancel_time_is_fully_refunded():
    removed = cancelled("moved", None, changed=True)
    assert (quote_for(removed).amount, quote_for(removed).percentage) == (200000, 100)
    assert quote_for(cancelled("open", None)).amount == 0
    assert sort_refund_queue([cancelled("late", datetime(2025, 3, 10, 8, 0)), removed])[0].id == "moved"


def test_refund_queue_puts_owed_money_first():
    no_refund = cancelled("late", datetime(2025, 3, 10, 8, 0))
    refunded = cancelled("done", datetime(2025, 3, 9, 8, 0), deposit=-200000)
    owed_old = cancelled("owed-old", datetime(2025, 3, 1, 8, 0))
    owed_new = cancelled("owed-new", datetime(2025, 3, 9, 9, 0))

    queue = sort_refund_queue([no_refund, refunded, owed_old, owed_new])
    assert [a.id for a in queue] == ["owed-new", "owed-old", "late", "done"]
