"""Payment schemas: processor results, webhook settlement, manual payments."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from hoa_backend.core.enums import ManualPaymentMethod, PaymentStatus, UnitChargeStatus


class PaymentCreate(BaseModel):
    unit_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    charge_id: Optional[UUID] = Field(None, description="Pay one charge; omit to settle oldest charges first")
    provider_reference: Optional[str] = Field(None, max_length=200)
    status: PaymentStatus = Field(
        PaymentStatus.SUCCEEDED,
        description="Processor result; Pending waits for the webhook",
    )
    paid_at: Optional[datetime] = None


class SettlePaymentRequest(BaseModel):
    provider_reference: str = Field(..., min_length=1, max_length=200)
    status: PaymentStatus


class PaymentAllocationResponse(BaseModel):
    id: UUID
    payment_id: UUID
    unit_charge_id: UUID
    allocated_amount: Decimal

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: UUID
    unit_id: UUID
    unit_number: Optional[str] = None
    user_id: Optional[UUID] = None
    amount: Decimal
    unallocated_amount: Decimal
    payment_date_utc: datetime
    provider_reference: Optional[str] = None
    status: PaymentStatus
    target_charge_id: Optional[UUID] = None
    is_manual: bool
    manual_method: Optional[ManualPaymentMethod] = None
    notes: Optional[str] = None
    created_at: datetime
    allocations: List[PaymentAllocationResponse] = []


# --- Manual payments ---
class ManualPaymentRequest(BaseModel):
    paid_amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    method: ManualPaymentMethod = ManualPaymentMethod.BANK_TRANSFER
    paid_at: Optional[datetime] = None
    reference: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=1000)


class ManualPaymentResult(BaseModel):
    payment_id: UUID
    unit_charge_id: UUID
    amount_due: Decimal
    amount_paid: Decimal
    outstanding: Decimal
    status: UnitChargeStatus
    last_payment_date: datetime


class ChargePaymentResponse(BaseModel):
    """One payment as seen from a charge: amount is the portion allocated to that charge."""

    id: UUID
    amount: Decimal
    payment_date_utc: datetime
    is_manual: bool
    manual_method: Optional[ManualPaymentMethod] = None
    provider_reference: Optional[str] = None
    notes: Optional[str] = None
    entered_by_name: Optional[str] = None
    status: PaymentStatus
    created_at: datetime
