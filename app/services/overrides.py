# app/services/overrides.py
#
# Override Lifecycle
# Writes that change how a series expands: per-month overrides, cancelled
# months, edits and deletes from one month on, whole-series updates and
# deletes. Each function commits its own unit of work and rolls back on
# database errors.

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.constants import STATUS_PENDING
from app.services.month_keys import MonthKey
from app.services.transaction_rules import (
    apply_changes,
    build_override_from_root,
    calculate_end_date,
)
from app.services.virtual_transactions import (
    anchor_date,
    build_override_index,
    is_installment_transaction,
    is_recurring_transaction,
    iter_month_candidates,
    occurrence_index,
    preferred_day,
)
from models import Tag, Transaction

logger = logging.getLogger(__name__)


class OccurrenceNotFoundError(LookupError):
    """The requested month is not a live occurrence of the series."""


def _month_bounds(month_key: MonthKey):
    return date(month_key.year, month_key.month, 1), month_key.day(31)


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error while trying to {action}: {e}", exc_info=True)
        raise


def _apply_tags(tx: Transaction, tags: Optional[List[Tag]]) -> None:
    # None leaves the tags alone, [] clears them
    if tags is not None:
        tx.tags = list(tags)


def _series_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    # The anchor of a series never moves with a series-wide edit
    return {key: value for key, value in changes.items() if key != "due_date"}


def _series_index(root: Transaction, month_key: MonthKey) -> int:
    if not is_recurring_transaction(root):
        raise OccurrenceNotFoundError(f"Transaction {root.id} is not a recurring series")
    index = occurrence_index(root, month_key)
    if index is None:
        raise OccurrenceNotFoundError(f"Transaction {root.id} has no occurrence in {month_key}")
    return index


def _drop_overrides_from(root: Transaction, month_key: MonthKey) -> int:
    """Detach every override of `month_key` or later; delete-orphan removes them."""
    later = [
        override
        for override in root.overrides
        if override.override_for_date is not None
        and MonthKey.from_date(override.override_for_date) >= month_key
    ]
    for override in later:
        root.overrides.remove(override)
    return len(later)


def require_occurrence(root: Transaction, month_key: MonthKey) -> int:
    """
    Series position of `month_key`.

    Raises OccurrenceNotFoundError if the month is outside the series or
    already cancelled.
    """
    index = occurrence_index(root, month_key)
    if index is None:
        raise OccurrenceNotFoundError(f"Transaction {root.id} has no occurrence in {month_key}")
    if str(month_key) in (root.cancelled_occurrences or []):
        raise OccurrenceNotFoundError(f"Occurrence {month_key} of transaction {root.id} is cancelled")
    return index


def find_override(db: Session, root: Transaction, month_key: MonthKey) -> Optional[Transaction]:
    first_day, last_day = _month_bounds(month_key)
    return (
        db.query(Transaction)
        .filter(
            Transaction.parent_transaction_id == root.id,
            Transaction.is_override.is_(True),
            Transaction.override_for_date >= first_day,
            Transaction.override_for_date <= last_day,
        )
        .first()
    )


def upsert_override(
    db: Session,
    root: Transaction,
    month_key: MonthKey,
    changes: Dict[str, Any],
    tags: Optional[List[Tag]] = None,
) -> Transaction:
    """
    Edit one month of a series: update its override, or create one seeded
    from the root. `changes` must already be cleaned.
    """
    if not is_recurring_transaction(root):
        raise OccurrenceNotFoundError(f"Transaction {root.id} is not a recurring series")
    require_occurrence(root, month_key)

    override = find_override(db, root, month_key)
    if override is not None:
        apply_changes(override, changes)
        action = "updated"
    else:
        override = build_override_from_root(root, month_key, changes)
        db.add(override)
        action = "created"
    _apply_tags(override, tags)

    _commit(db, f"save override {month_key} of transaction {root.id}")
    db.refresh(override)

    logger.info(f"Override {override.id} {action} for {month_key} of transaction {root.id}")
    return override


def cancel_occurrence(db: Session, root: Transaction, month_key: MonthKey) -> None:
    """
    Skip one month of a series: drop its override (if any) and record the
    month key in `cancelled_occurrences`. Cancelling twice is a no-op.
    """
    if occurrence_index(root, month_key) is None:
        raise OccurrenceNotFoundError(f"Transaction {root.id} has no occurrence in {month_key}")

    override = find_override(db, root, month_key)
    if override is not None:
        db.delete(override)

    key = str(month_key)
    cancelled = list(root.cancelled_occurrences or [])
    if key not in cancelled:
        cancelled.append(key)
    # Reassign so the JSON column is flagged dirty
    root.cancelled_occurrences = sorted(cancelled)

    _commit(db, f"cancel occurrence {key} of transaction {root.id}")
    logger.info(f"Occurrence {key} of transaction {root.id} cancelled")


def update_series(
    db: Session,
    root: Transaction,
    changes: Dict[str, Any],
    tags: Optional[List[Tag]] = None,
) -> Transaction:
    """
    Apply `changes` to the root and drop every override, so all months follow
    the new values. A `due_date` in `changes` is ignored: the series keeps its
    anchor.
    """
    apply_changes(root, _series_changes(changes))
    _apply_tags(root, tags)

    dropped = len(root.overrides)
    root.overrides.clear()

    _commit(db, f"update series {root.id}")
    db.refresh(root)

    logger.info(f"Series {root.id} updated, {dropped} overrides dropped")
    return root


def update_future(
    db: Session,
    root: Transaction,
    month_key: MonthKey,
    changes: Dict[str, Any],
    tags: Optional[List[Tag]] = None,
) -> Transaction:
    """
    Edit `month_key` and every later month of a series.

    Earlier months without an override get one holding the current root
    values, so they keep showing what they showed before. Then the root takes
    `changes` (without `due_date`) and overrides from `month_key` on are
    dropped.
    """
    _series_index(root, month_key)

    cancelled = set(root.cancelled_occurrences or [])
    existing = build_override_index(root.overrides)

    preserved = 0
    for _, key, _ in iter_month_candidates(root, max_lookahead_years=None):
        if key >= month_key:
            break
        if str(key) in cancelled or key in existing:
            continue
        root.overrides.append(build_override_from_root(root, key, {}))
        preserved += 1

    dropped = _drop_overrides_from(root, month_key)

    apply_changes(root, _series_changes(changes))
    _apply_tags(root, tags)

    _commit(db, f"update series {root.id} from {month_key}")
    db.refresh(root)

    logger.info(
        f"Series {root.id} updated from {month_key}: "
        f"{preserved} earlier months preserved, {dropped} overrides dropped"
    )
    return root


def _collapse_to_first_month(root: Transaction) -> None:
    """Turn a series cut down to its first month into a single transaction."""
    first = MonthKey.from_date(anchor_date(root))
    first_override = build_override_index(root.overrides).get(first)

    if first_override is not None:
        for field in (
            "account_name", "category", "type", "description", "amount",
            "due_date", "paid_date", "status", "notes",
        ):
            setattr(root, field, getattr(first_override, field))
        root.tags = list(first_override.tags)
        root.overrides.remove(first_override)
    else:
        root.due_date = first.day(preferred_day(root))
        root.status = STATUS_PENDING
        root.paid_date = None

    root.is_fixed = False
    root.installments = None
    root.start_date = None
    root.end_date = None
    root.day_of_month = None
    root.cancelled_occurrences = []


def truncate_series(db: Session, root: Transaction, month_key: MonthKey) -> Optional[Transaction]:
    """
    Delete `month_key` and every later month of a series.

    An installment series keeps the installments before `month_key`; a fixed
    series gets an `end_date` in the previous month. Cutting at the first
    month deletes the whole series and returns None.
    """
    index = _series_index(root, month_key)
    kept = index - 1
    first_key = MonthKey.from_date(anchor_date(root))

    if kept == 0 or (kept == 1 and str(first_key) in (root.cancelled_occurrences or [])):
        delete_transaction(db, root)
        return None

    dropped = _drop_overrides_from(root, month_key)
    cutoff = str(month_key)
    root.cancelled_occurrences = sorted(
        key for key in (root.cancelled_occurrences or []) if key < cutoff
    )

    if not is_installment_transaction(root):
        root.end_date = month_key.shift(-1).day(preferred_day(root))
    elif kept == 1:
        _collapse_to_first_month(root)
    else:
        root.installments = kept
        root.end_date = calculate_end_date(anchor_date(root), kept, preferred_day(root))

    _commit(db, f"truncate series {root.id} at {month_key}")
    db.refresh(root)

    logger.info(f"Series {root.id} ends before {month_key}, {dropped} overrides dropped")
    return root


def update_transaction(
    db: Session,
    tx: Transaction,
    changes: Dict[str, Any],
    tags: Optional[List[Tag]] = None,
) -> Transaction:
    """Update a single transaction or an override row in place."""
    apply_changes(tx, changes)
    _apply_tags(tx, tags)
    _commit(db, f"update transaction {tx.id}")
    db.refresh(tx)
    logger.info(f"Transaction {tx.id} updated")
    return tx


def delete_transaction(db: Session, tx: Transaction) -> None:
    """
    Delete a single transaction, an override (its month falls back to the
    generated occurrence) or a root together with all of its overrides.
    """
    tx_id = tx.id
    db.delete(tx)
    _commit(db, f"delete transaction {tx_id}")
    logger.info(f"Transaction {tx_id} deleted")
