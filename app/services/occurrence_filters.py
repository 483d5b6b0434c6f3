# app/services/occurrence_filters.py
#
# Occurrence Filters
# Post-expansion filtering, ordering and totals. Filters run on the expanded
# list because an override can carry a different status/category/account
# than its root.

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from app.constants import STATUS_OVERDUE, STATUS_PENDING, TYPE_EXPENSE, TYPE_INCOME
from app.services.virtual_transactions import VirtualOccurrence


def filter_occurrences(
    occurrences: Iterable[VirtualOccurrence],
    type: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    account: Optional[str] = None,
    tag: Optional[str] = None,
) -> List[VirtualOccurrence]:
    """Keep occurrences matching every given filter (None = no filter)."""
    result = []
    for occ in occurrences:
        if type and occ.type != type:
            continue
        if status and occ.status != status:
            continue
        if category and occ.category != category:
            continue
        if account and occ.account_name != account:
            continue
        if tag and tag not in occ.tags:
            continue
        result.append(occ)
    return result


def sort_occurrences(occurrences: Iterable[VirtualOccurrence], descending: bool = True) -> List[VirtualOccurrence]:
    """Order by due date (newest first by default); ties broken by id."""
    return sorted(
        occurrences,
        key=lambda occ: (occ.due_date, str(occ.id)),
        reverse=descending,
    )


def mark_overdue(occurrences: Iterable[VirtualOccurrence], today: Optional[date] = None) -> List[VirtualOccurrence]:
    """
    Flip PENDING occurrences dated before `today` to OVERDUE, in place.

    Only applied when config.DERIVE_OVERDUE_STATUS is on.
    """
    if today is None:
        today = date.today()

    result = list(occurrences)
    for occ in result:
        if occ.status == STATUS_PENDING and occ.paid_date is None and occ.due_date < today:
            occ.status = STATUS_OVERDUE
    return result


def summarize_occurrences(occurrences: Iterable[VirtualOccurrence]) -> Dict[str, Decimal]:
    income = Decimal("0")
    expense = Decimal("0")
    for occ in occurrences:
        if occ.type == TYPE_INCOME:
            income += Decimal(str(occ.amount))
        elif occ.type == TYPE_EXPENSE:
            expense += Decimal(str(occ.amount))
    return {
        "income_sum": income,
        "expense_sum": expense,
        "net_sum": income - expense,
    }
