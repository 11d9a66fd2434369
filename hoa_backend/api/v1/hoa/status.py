"""
Charge status derivation and billing-period helpers.

A charge's status is never set directly (apart from cancellation): it is a pure
function of amount due, amount paid, due date, today and the cancelled flag.
recompute_charge() is the single write path that stores it.
"""

import calendar
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.core.enums import CalculationMethod, UnitChargeStatus
from hoa_backend.core.exceptions import ValidationError
from hoa_backend.core.models import HOAFeePlan, PaymentAllocation, Unit, UnitCharge
from hoa_backend.core.money import quantize_money, to_decimal

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def parse_period(period: str) -> Tuple[int, int]:
    """'2026-03' -> (2026, 3). Raises ValidationError for anything else."""
    match = _PERIOD_RE.match(period or "")
    if not match:
        raise ValidationError("Period must be in YYYY-MM format")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError("Period month must be between 01 and 12")
    return year, month


def due_date_for_period(period: str, due_day: int) -> date:
    """due_day of the billing month, clamped to the month's last day."""
    year, month = parse_period(period)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def calculate_unit_amount(plan: HOAFeePlan, unit: Unit) -> Optional[Decimal]:
    """
    Amount a plan bills a unit for one period.
    None for ManualPerUnit plans: those charges are created one by one.
    """
    method = CalculationMethod(plan.calculation_method)
    if method == CalculationMethod.FIXED_PER_UNIT:
        return quantize_money(plan.fixed_amount_per_unit)
    if method == CalculationMethod.BY_SQM:
        return quantize_money(to_decimal(plan.amount_per_sqm) * to_decimal(unit.size_sqm))
    return None


def derive_charge_status(
    amount_due: Decimal,
    amount_paid: Decimal,
    due_date: date,
    today: date,
    is_cancelled: bool = False,
) -> UnitChargeStatus:
    if is_cancelled:
        return UnitChargeStatus.CANCELLED
    if to_decimal(amount_paid) >= to_decimal(amount_due):
        return UnitChargeStatus.PAID
    if to_decimal(amount_paid) > 0:
        return UnitChargeStatus.PARTIALLY_PAID
    if due_date < today:
        return UnitChargeStatus.OVERDUE
    return UnitChargeStatus.PENDING


async def charge_paid_amounts(db: AsyncSession, charge_ids: Iterable[UUID]) -> Dict[UUID, Decimal]:
    """Sum of allocations per charge; charges without allocations map to 0."""
    ids = list(charge_ids)
    if not ids:
        return {}
    rows = await db.execute(
        select(
            PaymentAllocation.unit_charge_id,
            func.coalesce(func.sum(PaymentAllocation.allocated_amount), 0),
        )
        .where(PaymentAllocation.unit_charge_id.in_(ids))
        .group_by(PaymentAllocation.unit_charge_id)
    )
    paid = {charge_id: quantize_money(total) for charge_id, total in rows.all()}
    return {charge_id: paid.get(charge_id, Decimal("0.00")) for charge_id in ids}


async def recompute_charge(db: AsyncSession, charge: UnitCharge, today: Optional[date] = None) -> Decimal:
    """Re-read the allocation sum, store the derived status, return amount paid."""
    amount_paid = (await charge_paid_amounts(db, [charge.id]))[charge.id]
    charge.status = derive_charge_status(
        charge.amount_due,
        amount_paid,
        charge.due_date,
        today or utc_today(),
        bool(charge.is_cancelled),
    ).value
    return amount_paid
