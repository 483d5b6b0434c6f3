from datetime import date
from decimal import Decimal

from app.constants import STATUS_OVERDUE, STATUS_PAID, STATUS_PENDING, TYPE_INCOME
from app.services.occurrence_filters import (
    filter_occurrences,
    mark_overdue,
    sort_occurrences,
    summarize_occurrences,
)
from app.services.virtual_transactions import expand_transactions


def _march(records):
    return expand_transactions(records, date(2024, 3, 1), date(2024, 3, 31))


def test_status_filter_sees_override_status(make_fixed, make_override):
    rent = make_fixed(id=1)
    gym = make_fixed(id=2, description="Gym", category="Health")
    paid_rent = make_override(rent, date(2024, 3, 31), id=10, status=STATUS_PAID, paid_date=date(2024, 3, 30))

    occurrences = _march([rent, gym, paid_rent])

    paid = filter_occurrences(occurrences, status=STATUS_PAID)
    pending = filter_occurrences(occurrences, status=STATUS_PENDING)

    assert [occ.real_id for occ in paid] == [10]
    assert [occ.parent_id for occ in pending] == [2]


def test_field_filters(make_fixed, make_single):
    rent = make_fixed(id=1, account_name="Checking", category="Housing")
    salary = make_fixed(id=2, type=TYPE_INCOME, account_name="Savings", category="Salary")
    book = make_single(id=3, due_date=date(2024, 3, 3), category="Books")
    book.tags = []

    occurrences = _march([rent, salary, book])

    assert {occ.parent_id for occ in filter_occurrences(occurrences, type=TYPE_INCOME)} == {2}
    assert {occ.parent_id for occ in filter_occurrences(occurrences, account="Checking")} == {1, 3}
    assert {occ.parent_id for occ in filter_occurrences(occurrences, category="Books")} == {3}
    assert filter_occurrences(occurrences, tag="missing") == []
    assert len(filter_occurrences(occurrences)) == 3


def test_sort_newest_first(make_fixed, make_single):
    occurrences = expand_transactions(
        [make_fixed(id=1, due_date=date(2024, 1, 10)), make_single(id=2, due_date=date(2024, 2, 20))],
        date(2024, 1, 1),
        date(2024, 3, 31),
    )

    ordered = sort_occurrences(occurrences)

    assert [occ.due_date for occ in ordered] == [
        date(2024, 3, 10),
        date(2024, 2, 20),
        date(2024, 2, 10),
        date(2024, 1, 10),
    ]
    assert [occ.due_date for occ in sort_occurrences(occurrences, descending=False)][0] == date(2024, 1, 10)


def test_mark_overdue_only_touches_unpaid_past_occurrences(make_fixed, make_override):
    rent = make_fixed(id=1, due_date=date(2024, 1, 10))
    paid = make_override(rent, date(2024, 1, 10), id=20, status=STATUS_PAID, paid_date=date(2024, 1, 10))

    occurrences = expand_transactions([rent, paid], date(2024, 1, 1), date(2024, 3, 31))
    marked = mark_overdue(occurrences, today=date(2024, 2, 15))

    statuses = {occ.due_date: occ.status for occ in marked}
    assert statuses == {
        date(2024, 1, 10): STATUS_PAID,
        date(2024, 2, 10): STATUS_OVERDUE,
        date(2024, 3, 10): STATUS_PENDING,
    }


def test_summarize_occurrences(make_fixed):
    occurrences = _march(
        [
            make_fixed(id=1, amount=Decimal("1200.00")),
            make_fixed(id=2, type=TYPE_INCOME, amount=Decimal("4000.00")),
        ]
    )

    totals = summarize_occurrences(occurrences)

    assert totals == {
        "income_sum": Decimal("4000.00"),
        "expense_sum": Decimal("1200.00"),
        "net_sum": Decimal("2800.00"),
    }
