from datetime import date
from decimal import Decimal

from app.constants import STATUS_PAID, STATUS_PENDING
from app.services.virtual_transactions import get_installment_info


def test_non_installment_transactions_have_no_info(make_single, make_fixed):
    assert get_installment_info(make_single(), []) is None
    assert get_installment_info(make_fixed(), []) is None
    assert get_installment_info(make_single(installments=1), []) is None


def test_totals_and_end_date(make_installments):
    tx = make_installments(installments=12, due_date=date(2024, 1, 31), amount=Decimal("250.00"))

    info = get_installment_info(tx, [], reference_date=date(2023, 12, 1))

    assert info.total_installments == 12
    assert info.paid_installments == 0
    assert info.pending_installments == 12
    assert info.start_date == date(2024, 1, 31)
    assert info.end_date == date(2024, 12, 31)
    assert info.installment_amount == Decimal("250.00")
    assert info.total_amount == Decimal("3000.00")
    assert info.current_installment == 1


def test_end_date_is_clamped(make_installments):
    tx = make_installments(installments=2, due_date=date(2024, 1, 31))

    info = get_installment_info(tx, [], reference_date=date(2024, 1, 1))

    assert info.end_date == date(2024, 2, 29)


def test_paid_overrides_are_counted(make_installments, make_override):
    tx = make_installments(installments=4, due_date=date(2024, 1, 15))
    overrides = [
        make_override(tx, date(2024, 1, 15), status=STATUS_PAID, paid_date=date(2024, 1, 15)),
        make_override(tx, date(2024, 2, 15), status=STATUS_PAID, paid_date=date(2024, 2, 14)),
        make_override(tx, date(2024, 3, 15), status=STATUS_PENDING),
    ]

    info = get_installment_info(tx, overrides, reference_date=date(2024, 1, 1))

    assert info.paid_installments == 2
    assert info.pending_installments == 2
    # First unpaid installment on or after the reference date
    assert info.current_installment == 3


def test_current_installment_follows_reference_date(make_installments):
    tx = make_installments(installments=6, due_date=date(2024, 1, 15))

    assert get_installment_info(tx, [], reference_date=date(2024, 3, 15)).current_installment == 3
    assert get_installment_info(tx, [], reference_date=date(2024, 3, 16)).current_installment == 4


def test_cancelled_months_are_never_current(make_installments):
    tx = make_installments(installments=4, due_date=date(2024, 1, 15), cancelled_occurrences=["2024-02"])

    info = get_installment_info(tx, [], reference_date=date(2024, 2, 1))

    assert info.current_installment == 3


def test_current_defaults_to_last_when_series_is_over(make_installments):
    tx = make_installments(installments=3, due_date=date(2024, 1, 15))

    info = get_installment_info(tx, [], reference_date=date(2025, 1, 1))

    assert info.current_installment == 3


def test_long_series_ignore_lookahead_bound(make_installments):
    tx = make_installments(installments=360, due_date=date(2024, 1, 10))

    info = get_installment_info(tx, [], reference_date=date(2024, 1, 1))

    assert info.end_date == date(2053, 12, 10)
