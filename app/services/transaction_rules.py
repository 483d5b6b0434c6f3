# app/services/transaction_rules.py
#
# Transaction Rules
# Creation-time validation for root transactions and overrides, plus the date
# helpers the routes use (series end date, status derivation, month ranges).
# Records leaving this module satisfy the invariants the expander relies on.

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

from app.constants import (
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_PENDING,
    TRANSACTION_STATUSES,
    TRANSACTION_TYPES,
)
from app.services.month_keys import MonthKey
from app.services.virtual_transactions import preferred_day
from models import Transaction

# Open-ended ranges are closed with these bounds
RANGE_FLOOR = date(2000, 1, 1)
RANGE_CEILING = date(2100, 12, 31)

# Fields a user may change on a single transaction, an override or a whole series
EDITABLE_FIELDS = (
    "account_name",
    "category",
    "type",
    "description",
    "amount",
    "due_date",
    "paid_date",
    "status",
    "notes",
)


class TransactionValidationError(ValueError):
    """Raised when a payload cannot become a well-formed transaction."""


# ---- Field Parsing ----

def parse_date(value: Any, field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        # Accept full ISO timestamps, keep the calendar day only
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        raise TransactionValidationError(f"{field}: expected YYYY-MM-DD, got {value!r}") from None


def parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise TransactionValidationError(f"amount: not a number: {value!r}") from None
    if not amount.is_finite() or amount <= 0:
        raise TransactionValidationError(f"amount: must be a positive number, got {value!r}")
    return amount.quantize(Decimal("0.01"))


def parse_installments(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        installments = int(value)
    except (TypeError, ValueError):
        raise TransactionValidationError(f"installments: not an integer: {value!r}") from None
    if installments < 2:
        raise TransactionValidationError(
            f"installments: an installment series needs at least 2 parts, got {installments}"
        )
    return installments


def _parse_choice(value: Any, field: str, choices: Tuple[str, ...]) -> str:
    normalized = str(value or "").strip().upper()
    if normalized not in choices:
        raise TransactionValidationError(f"{field}: expected one of {', '.join(choices)}, got {value!r}")
    return normalized


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def clean_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a partial update. Unknown keys are dropped; `None` values for
    required fields are dropped too.
    """
    cleaned: Dict[str, Any] = {}

    for key in EDITABLE_FIELDS:
        if key not in changes:
            continue
        value = changes[key]

        if key == "type":
            if value is not None:
                cleaned[key] = _parse_choice(value, "type", TRANSACTION_TYPES)
        elif key == "status":
            if value is not None:
                cleaned[key] = _parse_choice(value, "status", TRANSACTION_STATUSES)
        elif key == "amount":
            if value is not None:
                cleaned[key] = parse_amount(value)
        elif key == "due_date":
            parsed = parse_date(value, "due_date")
            if parsed is not None:
                cleaned[key] = parsed
        elif key == "paid_date":
            cleaned[key] = parse_date(value, "paid_date")
        elif key == "description":
            if value is not None:
                text = _clean_text(value)
                if text is None:
                    raise TransactionValidationError("description: must not be empty")
                cleaned[key] = text
        else:
            cleaned[key] = _clean_text(value)

    # Paying without a date means paying today
    if cleaned.get("status") == STATUS_PAID and not cleaned.get("paid_date"):
        cleaned["paid_date"] = date.today()
    # Anything but PAID clears a stale payment date
    elif "status" in cleaned and cleaned["status"] != STATUS_PAID and "paid_date" not in cleaned:
        cleaned["paid_date"] = None

    return cleaned


def apply_changes(tx: Transaction, changes: Dict[str, Any]) -> Transaction:
    """Assign already-cleaned changes to an ORM object."""
    for key, value in changes.items():
        setattr(tx, key, value)
    return tx


# ---- Series Dates ----

def calculate_end_date(start_date: date, installments: int, day_of_month: int) -> date:
    """
    Date of the last installment. The first installment falls in the start
    month, so the series ends `installments - 1` months later.
    """
    return MonthKey.from_date(start_date).shift(installments - 1).day(day_of_month)


def apply_recurrence(tx: Transaction, is_fixed: bool, installments: Optional[int]) -> Transaction:
    """
    Set the recurrence fields of a root from its due date.

    installments > 1 -> installment series, is_fixed -> fixed monthly,
    otherwise a single transaction.
    """
    if is_fixed and installments is not None:
        raise TransactionValidationError("a transaction cannot be both fixed and an installment series")

    if installments is not None:
        tx.is_fixed = False
        tx.installments = installments
        tx.start_date = tx.due_date
        tx.day_of_month = tx.due_date.day
        tx.end_date = calculate_end_date(tx.due_date, installments, tx.day_of_month)
    elif is_fixed:
        tx.is_fixed = True
        tx.installments = None
        tx.start_date = tx.due_date
        tx.day_of_month = tx.due_date.day
        tx.end_date = None
    else:
        tx.is_fixed = False
        tx.installments = None
        tx.start_date = None
        tx.day_of_month = None
        tx.end_date = None

    return tx


def calculate_transaction_status(
    paid_date: Optional[date],
    due_date: date,
    today: Optional[date] = None,
) -> str:
    """PAID if paid, OVERDUE if the due date is before today, else PENDING."""
    if paid_date:
        return STATUS_PAID
    if today is None:
        today = date.today()
    if due_date < today:
        return STATUS_OVERDUE
    return STATUS_PENDING


# ---- Builders ----

def build_root_transaction_from_dict(data: Dict[str, Any], owner_id: str) -> Transaction:
    """
    Convert a create payload into a validated root Transaction ORM object.

    Raises TransactionValidationError on malformed input.
    """
    due_date = parse_date(data.get("due_date"), "due_date")
    if due_date is None:
        raise TransactionValidationError("due_date: required")

    if "amount" not in data or data.get("amount") in (None, ""):
        raise TransactionValidationError("amount: required")

    required = clean_changes(
        {
            "type": data.get("type"),
            "description": data.get("description"),
            "amount": data.get("amount"),
        }
    )
    for key in ("type", "description"):
        if key not in required:
            raise TransactionValidationError(f"{key}: required")

    status = _parse_choice(data.get("status") or STATUS_PENDING, "status", TRANSACTION_STATUSES)
    paid_date = parse_date(data.get("paid_date"), "paid_date")
    if status == STATUS_PAID and paid_date is None:
        paid_date = date.today()

    tx = Transaction(
        owner_id=owner_id,
        account_name=_clean_text(data.get("account_name")),
        category=_clean_text(data.get("category")),
        type=required["type"],
        description=required["description"],
        amount=required["amount"],
        due_date=due_date,
        paid_date=paid_date,
        status=status,
        notes=_clean_text(data.get("notes")),
        is_override=False,
        parent_transaction_id=None,
        override_for_date=None,
        cancelled_occurrences=[],
    )

    return apply_recurrence(
        tx,
        is_fixed=bool(data.get("is_fixed")),
        installments=parse_installments(data.get("installments")),
    )


def build_override_from_root(root: Transaction, month_key: MonthKey, changes: Dict[str, Any]) -> Transaction:
    """
    New override row for one month of `root`, seeded with the root's values
    and then `changes` (already cleaned).
    """
    if root.parent_transaction_id is not None:
        raise TransactionValidationError("overrides can only be created for root transactions")

    occurrence_date = month_key.day(preferred_day(root))

    override = Transaction(
        owner_id=root.owner_id,
        account_name=root.account_name,
        category=root.category,
        type=root.type,
        description=root.description,
        amount=root.amount,
        due_date=occurrence_date,
        paid_date=None,
        status=STATUS_PENDING,
        notes=root.notes,
        is_fixed=False,
        installments=None,
        start_date=None,
        end_date=None,
        day_of_month=None,
        cancelled_occurrences=[],
        is_override=True,
        parent_transaction_id=root.id,
        override_for_date=occurrence_date,
    )
    override.tags = list(root.tags or [])

    return apply_changes(override, changes)


# ---- Date Range Utilities ----

def get_month_range(month_str: str | None):
    """
    month_str: 'YYYY-MM' or None.
    Returns (start_date, end_date_exclusive, normalized_month_str).
    If month_str is None or invalid, uses PREVIOUS month.
    """

    def previous_month_from_today():
        return MonthKey.from_date(date.today()).shift(-1)

    if month_str:
        try:
            key = MonthKey.parse(month_str)
        except ValueError:
            key = previous_month_from_today()
    else:
        key = previous_month_from_today()

    start_date = date(key.year, key.month, 1)
    next_key = key.next()
    end_date_exclusive = date(next_key.year, next_key.month, 1)

    return start_date, end_date_exclusive, str(key)


def resolve_range(
    month: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date],
) -> Optional[Tuple[date, date]]:
    """
    Closed [start, end] range from request filters, or None when the request
    has no date filter at all. Explicit dates win over `month`; a missing side
    of an explicit range is left open.
    """
    if start_date or end_date:
        return start_date or RANGE_FLOOR, end_date or RANGE_CEILING

    if month:
        range_start, range_end_exclusive, _ = get_month_range(month)
        return range_start, range_end_exclusive - timedelta(days=1)

    return None
