"""Report schemas: collection status, aging, income vs expenses."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from hoa_backend.api.v1.hoa.schemas import UnitChargeResponse
from hoa_backend.api.v1.payments.schemas import ChargePaymentResponse
from hoa_backend.core.enums import CollectionRowStatus


# --- Collection status (who paid / who has not) ---
class CollectionRow(BaseModel):
    unit_id: UUID
    unit_number: str
    floor: Optional[int] = None
    size_sqm: Optional[Decimal] = None
    payer_display_name: Optional[str] = None
    payer_phone: Optional[str] = None
    amount_due: Decimal
    amount_paid: Decimal
    balance: Decimal
    due_date: Optional[date] = None
    status: CollectionRowStatus
    last_payment_date: Optional[datetime] = None


class CollectionSummary(BaseModel):
    building_id: UUID
    building_name: Optional[str] = None
    period: str
    total_units: int
    generated_count: int
    paid_count: int
    partial_count: int
    unpaid_count: int
    overdue_count: int
    total_due: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    collection_rate_percent: Decimal


class CollectionStatusReport(BaseModel):
    summary: CollectionSummary
    rows: List[CollectionRow]


class CollectionUnitDetail(BaseModel):
    charge: UnitChargeResponse
    payments: List[ChargePaymentResponse]


# --- Aging ---
class AgingRow(BaseModel):
    unit_id: UUID
    unit_number: str
    resident_name: Optional[str] = None
    current: Decimal
    days_1_30: Decimal
    days_31_60: Decimal
    days_61_90: Decimal
    days_90_plus: Decimal
    total: Decimal


class AgingReport(BaseModel):
    building_id: UUID
    building_name: Optional[str] = None
    as_of: date
    rows: List[AgingRow]
    grand_total: Decimal


# --- Income vs expenses ---
class CategoryAmount(BaseModel):
    category: str
    amount: Decimal


class MonthlyBreakdown(BaseModel):
    month: str
    income: Decimal
    expenses: Decimal
    net: Decimal


class IncomeExpensesReport(BaseModel):
    building_id: UUID
    building_name: Optional[str] = None
    from_date: date
    to_date: date
    total_income: Decimal
    total_expenses: Decimal
    net_balance: Decimal
    income_by_category: List[CategoryAmount]
    expenses_by_category: List[CategoryAmount]
    monthly_breakdown: List[MonthlyBreakdown]
