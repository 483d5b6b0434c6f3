# app/schemas.py
# Role: Request bodies for the transaction endpoints.

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class TransactionCreate(BaseModel):
    type: str
    description: str
    amount: Decimal
    due_date: date
    status: Optional[str] = None
    paid_date: Optional[date] = None
    account_name: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    is_fixed: bool = False
    installments: Optional[int] = None
    tags: List[str] = []


class TransactionUpdate(BaseModel):
    type: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    due_date: Optional[date] = None
    status: Optional[str] = None
    paid_date: Optional[date] = None
    account_name: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    # None leaves tags unchanged, [] removes them
    tags: Optional[List[str]] = None
