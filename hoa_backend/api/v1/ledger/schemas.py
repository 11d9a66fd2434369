"""Ledger schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from hoa_backend.core.enums import ExpenseCategory, LedgerEntryType


class LedgerEntryResponse(BaseModel):
    id: UUID
    sequence: int
    building_id: UUID
    unit_id: Optional[UUID] = None
    entry_type: LedgerEntryType
    category: Optional[str] = None
    description: Optional[str] = None
    reference_id: Optional[UUID] = None
    debit: Decimal
    credit: Decimal
    balance_after: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class ExpenseCreate(BaseModel):
    category: ExpenseCategory
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: Optional[str] = Field(None, max_length=500)
    reference_id: Optional[UUID] = Field(None, description="Vendor invoice or other source document")
