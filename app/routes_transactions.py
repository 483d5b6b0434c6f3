# routes_transactions.py
"""
Routes for transactions: list (with virtual occurrences), create, edit and
delete single occurrences or whole series, and installment summaries.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from app.deps import get_current_owner_id, get_db
from app.schemas import TransactionCreate, TransactionUpdate
from app.services.month_keys import MonthKey, SyntheticId, parse_occurrence_id
from app.services.occurrence_filters import (
    filter_occurrences,
    mark_overdue,
    sort_occurrences,
    summarize_occurrences,
)
from app.services.overrides import (
    OccurrenceNotFoundError,
    cancel_occurrence,
    delete_transaction,
    truncate_series,
    update_future,
    update_series,
    update_transaction,
    upsert_override,
)
from app.services.transaction_rules import (
    build_root_transaction_from_dict,
    clean_changes,
    resolve_range,
)
from app.services.virtual_transactions import (
    anchor_date,
    as_occurrence,
    expand_transactions,
    get_installment_info,
    is_recurring_transaction,
)
from models import Tag, Transaction

logger = logging.getLogger(__name__)

router = APIRouter()

SCOPES = ("single", "future", "all")


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _parse_id(transaction_id: str):
    try:
        parsed = parse_occurrence_id(transaction_id)
        if isinstance(parsed, SyntheticId):
            int(parsed.parent_id)
        return parsed
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid transaction id: {transaction_id!r}")


def _check_scope(scope: str) -> str:
    if scope not in SCOPES:
        raise HTTPException(status_code=400, detail=f"scope must be one of {', '.join(SCOPES)}")
    return scope


def _get_owned(db: Session, tx_id: int, owner_id: str) -> Transaction:
    tx = (
        db.query(Transaction)
        .filter(Transaction.id == tx_id, Transaction.owner_id == owner_id)
        .first()
    )
    if tx is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return tx


def _series_root(db: Session, tx: Transaction, owner_id: str) -> Transaction:
    if tx.parent_transaction_id is None:
        return tx
    return _get_owned(db, tx.parent_transaction_id, owner_id)


def _occurrence_month(tx: Transaction) -> MonthKey:
    """Month a stored row stands for: its override month, or the series anchor."""
    if tx.is_override and tx.override_for_date is not None:
        return MonthKey.from_date(tx.override_for_date)
    return MonthKey.from_date(anchor_date(tx))


def _resolve_tags(db: Session, owner_id: str, names: List[str]) -> List[Tag]:
    tags = []
    for name in dict.fromkeys(n.strip() for n in names if n and n.strip()):
        tag = db.query(Tag).filter(Tag.owner_id == owner_id, Tag.name == name).first()
        if tag is None:
            tag = Tag(owner_id=owner_id, name=name)
            db.add(tag)
        tags.append(tag)
    return tags


def _candidate_query(db: Session, owner_id: str, range_start: date, range_end: date):
    """
    Root rows that can produce an occurrence in [range_start, range_end],
    plus overrides whose month falls in the range.
    """
    anchor_before_end = or_(Transaction.start_date <= range_end, Transaction.due_date <= range_end)

    roots = (
        db.query(Transaction)
        .filter(
            Transaction.owner_id == owner_id,
            Transaction.is_override.is_(False),
            or_(
                # Single transaction inside the range
                and_(
                    Transaction.is_fixed.is_(False),
                    Transaction.installments.is_(None),
                    Transaction.due_date >= range_start,
                    Transaction.due_date <= range_end,
                ),
                # Fixed series anchored before the range ends and not ended before it
                and_(
                    Transaction.is_fixed.is_(True),
                    anchor_before_end,
                    or_(Transaction.end_date >= range_start, Transaction.end_date.is_(None)),
                ),
                # Installment series overlapping the range
                and_(
                    Transaction.installments > 1,
                    anchor_before_end,
                    or_(Transaction.end_date >= range_start, Transaction.end_date.is_(None)),
                ),
            ),
        )
        .all()
    )

    overrides = (
        db.query(Transaction)
        .filter(
            Transaction.owner_id == owner_id,
            Transaction.is_override.is_(True),
            Transaction.override_for_date >= range_start,
            Transaction.override_for_date <= range_end,
        )
        .all()
    )

    return roots, overrides


# -------------------------------------------------------------------
# List
# -------------------------------------------------------------------

@router.get("/transactions")
def list_transactions(
    month: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    account: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    include_virtual: bool = Query(True),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    """
    Occurrences for a month (`month=YYYY-MM`) or an explicit date range,
    newest first. Without any date filter the stored root rows are returned
    unexpanded.
    """
    date_range = resolve_range(month, start_date, end_date)

    if date_range is None:
        rows = (
            db.query(Transaction)
            .filter(Transaction.owner_id == owner_id, Transaction.is_override.is_(False))
            .all()
        )
        occurrences = [as_occurrence(tx) for tx in rows]
    else:
        range_start, range_end = date_range
        roots, overrides = _candidate_query(db, owner_id, range_start, range_end)

        if include_virtual:
            occurrences = expand_transactions(
                roots + overrides,
                range_start,
                range_end,
                max_lookahead_years=config.MAX_LOOKAHEAD_YEARS,
            )
        else:
            occurrences = [
                as_occurrence(tx) for tx in roots if range_start <= tx.due_date <= range_end
            ]

    if config.DERIVE_OVERDUE_STATUS:
        occurrences = mark_overdue(occurrences)

    occurrences = filter_occurrences(
        occurrences,
        type=type.upper() if type else None,
        status=status.upper() if status else None,
        category=category,
        account=account,
        tag=tag,
    )
    occurrences = sort_occurrences(occurrences, descending=True)

    totals = summarize_occurrences(occurrences)

    return {
        "range_start": date_range[0] if date_range else None,
        "range_end": date_range[1] if date_range else None,
        "count": len(occurrences),
        **totals,
        "transactions": [occ.to_dict() for occ in occurrences],
    }


# -------------------------------------------------------------------
# Create
# -------------------------------------------------------------------

@router.post("/transactions", status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    """
    Create a single, fixed or installment transaction. Only the root row is
    stored; monthly occurrences are computed when listing.
    """
    data = payload.model_dump()
    tx = build_root_transaction_from_dict(data, owner_id)

    try:
        tx.tags = _resolve_tags(db, owner_id, data.get("tags") or [])
        db.add(tx)
        db.commit()
        db.refresh(tx)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating transaction for owner {owner_id}: {e}", exc_info=True)
        raise

    logger.info(
        f"Transaction {tx.id} created: {tx.type} {tx.amount} due {tx.due_date} "
        f"(fixed={tx.is_fixed}, installments={tx.installments})"
    )
    return as_occurrence(tx).to_dict()


# -------------------------------------------------------------------
# Update
# -------------------------------------------------------------------

@router.put("/transactions/{transaction_id}")
def edit_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    scope: str = Query("single"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    """
    Edit one occurrence (`scope=single`), this and every later occurrence
    (`scope=future`) or the whole series (`scope=all`).

    Editing a generated occurrence stores an override for its month. `tags`
    replaces the tags of every row the edit touches.
    """
    _check_scope(scope)
    parsed = _parse_id(transaction_id)

    data = payload.model_dump(exclude_unset=True)
    tag_names = data.pop("tags", None)
    changes = clean_changes(data)
    tags = _resolve_tags(db, owner_id, tag_names) if tag_names is not None else None

    try:
        if isinstance(parsed, SyntheticId):
            root = _get_owned(db, int(parsed.parent_id), owner_id)
            if scope == "all":
                updated = update_series(db, root, changes, tags)
            elif scope == "future":
                updated = update_future(db, root, parsed.month_key, changes, tags)
            else:
                updated = upsert_override(db, root, parsed.month_key, changes, tags)
            return as_occurrence(updated).to_dict()

        tx = _get_owned(db, parsed.id, owner_id)
        root = _series_root(db, tx, owner_id)

        if scope != "single" and is_recurring_transaction(root):
            if scope == "all":
                updated = update_series(db, root, changes, tags)
            else:
                updated = update_future(db, root, _occurrence_month(tx), changes, tags)
        elif tx.is_override or not is_recurring_transaction(tx):
            updated = update_transaction(db, tx, changes, tags)
        else:
            # A series root stands for its first occurrence
            updated = upsert_override(db, tx, _occurrence_month(tx), changes, tags)
        return as_occurrence(updated).to_dict()

    except OccurrenceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# -------------------------------------------------------------------
# Delete
# -------------------------------------------------------------------

def _truncate(db: Session, root: Transaction, month_key: MonthKey):
    remaining = truncate_series(db, root, month_key)
    if remaining is None:
        return {"success": True, "scope": "all", "message": "Transaction series deleted"}
    return {
        "success": True,
        "scope": "future",
        "message": f"Occurrences from {month_key} on deleted",
    }


@router.delete("/transactions/{transaction_id}")
def remove_transaction(
    transaction_id: str,
    scope: str = Query("single"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    """
    Delete one occurrence (`scope=single`), this and every later occurrence
    (`scope=future`) or the whole series (`scope=all`).

    A generated occurrence is cancelled for its month; an override is removed
    and its month falls back to the generated occurrence.
    """
    _check_scope(scope)
    parsed = _parse_id(transaction_id)

    try:
        if isinstance(parsed, SyntheticId):
            root = _get_owned(db, int(parsed.parent_id), owner_id)
            if scope == "all":
                delete_transaction(db, root)
                return {"success": True, "scope": "all", "message": "Transaction series deleted"}
            if scope == "future":
                return _truncate(db, root, parsed.month_key)

            cancel_occurrence(db, root, parsed.month_key)
            return {
                "success": True,
                "scope": "single",
                "message": f"Occurrence {parsed.month_key} cancelled",
            }

        tx = _get_owned(db, parsed.id, owner_id)
        root = _series_root(db, tx, owner_id)

        if scope == "all":
            delete_transaction(db, root)
            return {"success": True, "scope": "all", "message": "Transaction series deleted"}
        if scope == "future" and is_recurring_transaction(root):
            return _truncate(db, root, _occurrence_month(tx))

        delete_transaction(db, tx)
        return {"success": True, "scope": "single", "message": f"Transaction {parsed.id} deleted"}

    except OccurrenceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# -------------------------------------------------------------------
# Installments
# -------------------------------------------------------------------

@router.get("/transactions/{transaction_id}/installments")
def installment_summary(
    transaction_id: str,
    reference_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    """Paid/pending counts and the current installment of a series."""
    parsed = _parse_id(transaction_id)
    tx_id = int(parsed.parent_id) if isinstance(parsed, SyntheticId) else parsed.id

    root = _series_root(db, _get_owned(db, tx_id, owner_id), owner_id)
    info = get_installment_info(root, root.overrides, reference_date)
    if info is None:
        raise HTTPException(status_code=404, detail="Transaction is not an installment series")
    return info.to_dict()
