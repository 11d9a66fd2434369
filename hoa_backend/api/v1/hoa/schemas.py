"""HOA schemas: fee plans, charge generation, unit charges."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from hoa_backend.core.enums import CalculationMethod, UnitChargeStatus

PERIOD_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


# --- Fee plans ---
class _PlanAmounts(BaseModel):
    calculation_method: CalculationMethod
    amount_per_sqm: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    fixed_amount_per_unit: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)

    @model_validator(mode="after")
    def validate_amount_for_method(self):
        if self.calculation_method == CalculationMethod.FIXED_PER_UNIT and self.fixed_amount_per_unit is None:
            raise ValueError("fixed_amount_per_unit is required for FixedPerUnit plans")
        if self.calculation_method == CalculationMethod.BY_SQM and self.amount_per_sqm is None:
            raise ValueError("amount_per_sqm is required for BySqm plans")
        return self


class FeePlanCreate(_PlanAmounts):
    building_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    effective_from: date


class FeePlanUpdate(_PlanAmounts):
    name: str = Field(..., min_length=1, max_length=200)
    is_active: bool = True


class FeePlanResponse(BaseModel):
    id: UUID
    building_id: UUID
    name: str
    calculation_method: CalculationMethod
    amount_per_sqm: Optional[Decimal] = None
    fixed_amount_per_unit: Optional[Decimal] = None
    effective_from: date
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class GenerateChargesResult(BaseModel):
    period: str
    charges_created: int
    charges_skipped: int
    already_generated: bool
    message: str


# --- Charges ---
class UnitChargeResponse(BaseModel):
    id: UUID
    unit_id: UUID
    unit_number: Optional[str] = None
    floor: Optional[int] = None
    resident_name: Optional[str] = None
    fee_plan_id: UUID
    period: str
    amount_due: Decimal
    amount_paid: Decimal
    balance: Decimal
    due_date: date
    status: UnitChargeStatus
    created_at: datetime


class ManualChargeCreate(BaseModel):
    unit_id: UUID
    fee_plan_id: UUID
    period: str = Field(..., pattern=PERIOD_PATTERN)
    amount_due: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    due_date: Optional[date] = None


class AdjustChargeRequest(BaseModel):
    new_amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=500)


class CancelChargeRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RefreshStatusResult(BaseModel):
    building_id: UUID
    charges_checked: int
    charges_changed: int
