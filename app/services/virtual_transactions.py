# app/services/virtual_transactions.py
#
# Virtual Transactions
# Projects stored root transactions (fixed monthly or installment series) into
# calendar occurrences for a date range. Only the root row is persisted; a
# single month can be replaced by an override row or skipped through the
# root's `cancelled_occurrences`.
#
# Records are read by attribute, so ORM `Transaction` instances and any object
# with the same fields work.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from app.constants import DEFAULT_MAX_LOOKAHEAD_YEARS, STATUS_PAID, STATUS_PENDING
from app.services.month_keys import MonthKey, OccurrenceId, RealId, SyntheticId

logger = logging.getLogger(__name__)


# ---- Result Types ----

@dataclass
class VirtualOccurrence:
    """
    One series instance for one month (or a single transaction), computed per
    request and never persisted.
    """

    id: OccurrenceId
    real_id: Optional[int]
    parent_id: int
    owner_id: Optional[str]
    account_name: Optional[str]
    category: Optional[str]
    type: str
    description: str
    amount: Decimal
    due_date: date
    paid_date: Optional[date]
    status: str
    notes: Optional[str]
    is_fixed: bool
    installments: Optional[int]
    current_installment: Optional[int]
    is_virtual: bool
    is_override: bool
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "real_id": self.real_id,
            "parent_id": self.parent_id,
            "owner_id": self.owner_id,
            "account_name": self.account_name,
            "category": self.category,
            "type": self.type,
            "description": self.description,
            "amount": self.amount,
            "due_date": self.due_date,
            "paid_date": self.paid_date,
            "status": self.status,
            "notes": self.notes,
            "is_fixed": self.is_fixed,
            "installments": self.installments,
            "current_installment": self.current_installment,
            "is_virtual": self.is_virtual,
            "is_override": self.is_override,
            "tags": list(self.tags),
        }


@dataclass
class InstallmentInfo:
    total_installments: int
    paid_installments: int
    pending_installments: int
    current_installment: int
    start_date: date
    end_date: date
    installment_amount: Decimal
    total_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_installments": self.total_installments,
            "paid_installments": self.paid_installments,
            "pending_installments": self.pending_installments,
            "current_installment": self.current_installment,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "installment_amount": self.installment_amount,
            "total_amount": self.total_amount,
        }


# ---- Record Helpers ----

def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def _tag_names(record) -> List[str]:
    tags = getattr(record, "tags", None) or []
    return [t.name if hasattr(t, "name") else str(t) for t in tags]


def _cancelled_keys(record) -> set[MonthKey]:
    keys = set()
    for raw in getattr(record, "cancelled_occurrences", None) or []:
        try:
            keys.add(MonthKey.parse(raw))
        except ValueError:
            logger.warning(f"Ignoring malformed cancelled occurrence {raw!r} on transaction {record.id}")
    return keys


def is_installment_transaction(transaction) -> bool:
    return transaction.installments is not None and transaction.installments > 1


def is_fixed_transaction(transaction) -> bool:
    return bool(transaction.is_fixed)


def is_recurring_transaction(transaction) -> bool:
    return is_fixed_transaction(transaction) or is_installment_transaction(transaction)


def get_total_installments(transaction) -> Optional[int]:
    return transaction.installments


def anchor_date(transaction) -> date:
    """Start of the series: `start_date`, falling back to `due_date`."""
    return _as_date(transaction.start_date or transaction.due_date)


def preferred_day(transaction) -> int:
    return transaction.day_of_month or anchor_date(transaction).day


def fixed_series_last_month(transaction) -> Optional[MonthKey]:
    """Last month of a fixed series that was ended, None while it is open."""
    if not is_fixed_transaction(transaction) or transaction.end_date is None:
        return None
    return MonthKey.from_date(_as_date(transaction.end_date))


# ---- Month Walk ----

def iter_month_candidates(
    transaction,
    max_lookahead_years: Optional[int] = DEFAULT_MAX_LOOKAHEAD_YEARS,
) -> Iterator[Tuple[int, MonthKey, date]]:
    """
    Lazily yield (index, month_key, occurrence_date) for a recurring root,
    starting at index 1 in the anchor month.

    Finite for installment series (`installments` months) and for fixed
    series that were ended (`end_date` set). Open fixed series run until the
    year is more than `max_lookahead_years` past the anchor year; pass None
    to disable that bound.
    """
    first = MonthKey.from_date(anchor_date(transaction))
    day = preferred_day(transaction)
    total = transaction.installments if is_installment_transaction(transaction) else None
    last = fixed_series_last_month(transaction)

    index = 1
    key = first
    while True:
        if total is not None and index > total:
            return
        if last is not None and key > last:
            return
        if max_lookahead_years is not None and key.year - first.year > max_lookahead_years:
            logger.debug(f"Transaction {transaction.id}: lookahead bound reached at {key}")
            return

        yield index, key, key.day(day)

        index += 1
        key = key.next()


def occurrence_index(transaction, month_key: MonthKey) -> Optional[int]:
    """
    1-based position of `month_key` in the series, or None if the series has
    no occurrence that month. Cancellations are not considered here.
    """
    if not is_recurring_transaction(transaction):
        return None

    offset = month_key.months_since(MonthKey.from_date(anchor_date(transaction)))
    if offset < 0:
        return None
    if is_installment_transaction(transaction) and offset >= transaction.installments:
        return None
    last = fixed_series_last_month(transaction)
    if last is not None and month_key > last:
        return None
    return offset + 1


def build_override_index(overrides: Iterable) -> Dict[MonthKey, Any]:
    """Map month key -> override record, keyed by `override_for_date`."""
    index: Dict[MonthKey, Any] = {}
    for override in overrides:
        override_for = _as_date(override.override_for_date)
        if override_for is None:
            continue
        index[MonthKey.from_date(override_for)] = override
    return index


# ---- Expansion ----

def as_occurrence(transaction) -> VirtualOccurrence:
    """
    Present a stored row as-is (no expansion): roots as their first
    occurrence, overrides under their parent.
    """
    parent_id = transaction.parent_transaction_id or transaction.id
    return VirtualOccurrence(
        id=RealId(transaction.id),
        real_id=transaction.id,
        parent_id=parent_id,
        owner_id=transaction.owner_id,
        account_name=transaction.account_name,
        category=transaction.category,
        type=transaction.type,
        description=transaction.description,
        amount=transaction.amount,
        due_date=_as_date(transaction.due_date),
        paid_date=_as_date(transaction.paid_date),
        status=transaction.status,
        notes=transaction.notes or None,
        is_fixed=is_fixed_transaction(transaction),
        installments=transaction.installments,
        current_installment=1 if is_installment_transaction(transaction) else None,
        is_virtual=False,
        is_override=bool(transaction.is_override),
        tags=_tag_names(transaction),
    )


def _single_occurrence(transaction) -> VirtualOccurrence:
    return VirtualOccurrence(
        id=RealId(transaction.id),
        real_id=transaction.id,
        parent_id=transaction.id,
        owner_id=transaction.owner_id,
        account_name=transaction.account_name,
        category=transaction.category,
        type=transaction.type,
        description=transaction.description,
        amount=transaction.amount,
        due_date=_as_date(transaction.due_date),
        paid_date=_as_date(transaction.paid_date),
        status=transaction.status,
        notes=transaction.notes or None,
        is_fixed=False,
        installments=None,
        current_installment=None,
        is_virtual=False,
        is_override=False,
        tags=_tag_names(transaction),
    )


def _override_occurrence(root, override, installment_number: Optional[int]) -> VirtualOccurrence:
    return VirtualOccurrence(
        id=RealId(override.id),
        real_id=override.id,
        parent_id=root.id,
        owner_id=override.owner_id,
        account_name=override.account_name,
        category=override.category,
        type=override.type,
        description=override.description,
        amount=override.amount,
        due_date=_as_date(override.due_date),
        paid_date=_as_date(override.paid_date),
        status=override.status,
        notes=override.notes or None,
        is_fixed=is_fixed_transaction(root),
        installments=root.installments,
        current_installment=installment_number,
        is_virtual=False,
        is_override=True,
        tags=_tag_names(override),
    )


def _synthetic_occurrence(
    root, month_key: MonthKey, occurrence_date: date, installment_number: Optional[int]
) -> VirtualOccurrence:
    return VirtualOccurrence(
        id=SyntheticId(str(root.id), month_key),
        real_id=None,
        parent_id=root.id,
        owner_id=root.owner_id,
        account_name=root.account_name,
        category=root.category,
        type=root.type,
        description=root.description,
        amount=root.amount,
        due_date=occurrence_date,
        paid_date=None,
        # Generated occurrences are never pre-marked as paid or overdue
        status=STATUS_PENDING,
        notes=root.notes or None,
        is_fixed=is_fixed_transaction(root),
        installments=root.installments,
        current_installment=installment_number,
        is_virtual=True,
        is_override=False,
        tags=_tag_names(root),
    )


def expand_transaction(
    transaction,
    range_start: date,
    range_end: date,
    overrides: Mapping[MonthKey, Any],
    max_lookahead_years: Optional[int] = DEFAULT_MAX_LOOKAHEAD_YEARS,
) -> List[VirtualOccurrence]:
    """
    Expand one root transaction into its occurrences within the closed range
    [range_start, range_end].

    `overrides` maps MonthKey -> override record and must only contain this
    root's children. Output is in chronological month order.
    """
    occurrences: List[VirtualOccurrence] = []

    # Single transaction: present iff its due date is in range
    if not is_recurring_transaction(transaction):
        due = _as_date(transaction.due_date)
        if range_start <= due <= range_end:
            occurrences.append(_single_occurrence(transaction))
        return occurrences

    installment_series = is_installment_transaction(transaction)
    cancelled = _cancelled_keys(transaction)

    for index, key, occurrence_date in iter_month_candidates(transaction, max_lookahead_years):
        # Dates only grow from here on
        if occurrence_date > range_end:
            break
        if key in cancelled:
            continue
        if occurrence_date < range_start:
            continue

        override = overrides.get(key)
        if override is not None:
            # Stored months always carry their position in the series
            occurrences.append(_override_occurrence(transaction, override, index))
        else:
            installment_number = index if installment_series else None
            occurrences.append(_synthetic_occurrence(transaction, key, occurrence_date, installment_number))

    return occurrences


def expand_transactions(
    transactions: Iterable,
    range_start: date,
    range_end: date,
    max_lookahead_years: Optional[int] = DEFAULT_MAX_LOOKAHEAD_YEARS,
) -> List[VirtualOccurrence]:
    """
    Expand a mixed list of root transactions and overrides for a date range.

    Overrides are matched to their root by `parent_transaction_id` and to the
    month by `override_for_date`. Records that are neither a root nor a
    complete override are ignored. The result is not sorted across roots.
    """
    roots = []
    overrides_by_parent: Dict[Any, Dict[MonthKey, Any]] = {}

    for tx in transactions:
        if tx.is_override and tx.parent_transaction_id is not None and tx.override_for_date is not None:
            key = MonthKey.from_date(_as_date(tx.override_for_date))
            overrides_by_parent.setdefault(tx.parent_transaction_id, {})[key] = tx
        elif tx.parent_transaction_id is None:
            roots.append(tx)

    all_occurrences: List[VirtualOccurrence] = []
    if range_start > range_end:
        return all_occurrences

    for root in roots:
        all_occurrences.extend(
            expand_transaction(
                root,
                range_start,
                range_end,
                overrides_by_parent.get(root.id, {}),
                max_lookahead_years=max_lookahead_years,
            )
        )

    logger.debug(
        f"Expanded {len(roots)} root transactions into {len(all_occurrences)} occurrences "
        f"for {range_start}..{range_end}"
    )
    return all_occurrences


# ---- Installment Info ----

def get_installment_info(
    transaction,
    overrides: Iterable,
    reference_date: Optional[date] = None,
) -> Optional[InstallmentInfo]:
    """
    Summary of an installment series: paid/pending counts, the current
    installment and the series end date.

    Returns None for anything that is not an installment series.

    The current installment is the first non-cancelled, unpaid month dated on
    or after `reference_date` (default: today). If none qualifies, it is the
    last installment.
    """
    if not is_installment_transaction(transaction):
        return None

    if reference_date is None:
        reference_date = date.today()

    total = get_total_installments(transaction)
    override_map = build_override_index(overrides)
    cancelled = _cancelled_keys(transaction)

    paid = 0
    current = 0
    last_date = None

    for index, key, occurrence_date in iter_month_candidates(transaction, max_lookahead_years=None):
        last_date = occurrence_date
        if key in cancelled:
            continue

        override = override_map.get(key)
        status = override.status if override is not None else STATUS_PENDING

        if status == STATUS_PAID:
            paid += 1
        elif current == 0 and occurrence_date >= reference_date:
            current = index

    if current == 0:
        current = total

    amount = Decimal(str(transaction.amount))
    return InstallmentInfo(
        total_installments=total,
        paid_installments=paid,
        pending_installments=total - paid,
        current_installment=current,
        start_date=anchor_date(transaction),
        end_date=last_date,
        installment_amount=amount,
        total_amount=amount * total,
    )
