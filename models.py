# models.py
# Role: SQLAlchemy ORM models for the finance hub.
#       A single `transactions` table holds root transactions (single, fixed
#       monthly, installment series) and the override rows that replace one
#       month of a series. Tags hang off transactions through `transaction_tags`.

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship

from db import Base
from app.constants import STATUS_PENDING


# Association table: many-to-many between transactions and tags
transaction_tags = Table(
    "transaction_tags",
    Base.metadata,
    Column("transaction_id", Integer, ForeignKey("transactions.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    """User-defined label attached to transactions."""

    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)


class Transaction(Base):
    """
    ORM model for a root transaction or an override row.

    A root is exactly one of:
    - single: is_fixed=False, installments=None
    - fixed monthly: is_fixed=True, installments=None, end_date=None
    - installment series: is_fixed=False, installments>1, end_date set

    Overrides have is_override=True and point at their root through
    parent_transaction_id; override_for_date names the replaced month.
    """

    __tablename__ = "transactions"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Owner (resolved by the caller, see app/deps.py:get_current_owner_id)
    owner_id = Column(String, nullable=False, index=True)

    # Account / category references (free text)
    account_name = Column(String, nullable=True)
    category = Column(String, nullable=True)

    # "INCOME" or "EXPENSE"
    type = Column(String(7), nullable=False)

    description = Column(String, nullable=False)

    # Fixed-point amount, always positive; `type` carries the sign
    amount = Column(Numeric(12, 2, asdecimal=True), nullable=False)

    # Anchor date for series, the actual date for singles and overrides
    due_date = Column(Date, nullable=False, index=True)
    paid_date = Column(Date, nullable=True)

    # "PENDING", "PAID" or "OVERDUE"
    status = Column(String(7), nullable=False, default=STATUS_PENDING)

    notes = Column(Text, nullable=True)

    # Recurrence rule (roots only)
    is_fixed = Column(Boolean, nullable=False, default=False)
    installments = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    day_of_month = Column(Integer, nullable=True)

    # List of "YYYY-MM" keys of skipped months
    cancelled_occurrences = Column(JSON, nullable=False, default=list)

    # Override rows
    is_override = Column(Boolean, nullable=False, default=False)
    parent_transaction_id = Column(
        Integer,
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    override_for_date = Column(Date, nullable=True)

    tags = relationship("Tag", secondary=transaction_tags, lazy="selectin")

    overrides = relationship(
        "Transaction",
        cascade="all, delete-orphan",
        foreign_keys=[parent_transaction_id],
    )

    def __repr__(self):
        return f"<Transaction id={self.id} {self.type} {self.amount} due={self.due_date}>"
