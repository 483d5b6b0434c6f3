# app/constants.py
# Role: Shared string constants for transaction types and statuses.

TYPE_INCOME = "INCOME"
TYPE_EXPENSE = "EXPENSE"
TRANSACTION_TYPES = (TYPE_INCOME, TYPE_EXPENSE)

STATUS_PENDING = "PENDING"
STATUS_PAID = "PAID"
STATUS_OVERDUE = "OVERDUE"
TRANSACTION_STATUSES = (STATUS_PENDING, STATUS_PAID, STATUS_OVERDUE)

# Default number of years past the anchor year a series is expanded for
DEFAULT_MAX_LOOKAHEAD_YEARS = 10
