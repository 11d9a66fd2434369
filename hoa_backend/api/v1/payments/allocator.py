"""
Payment allocation: spread a succeeded payment over a unit's outstanding charges.

Never commits; callers own the transaction and roll back on any exception, so a
failed allocation leaves charges and payment exactly as they were.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.api.v1.hoa.status import charge_paid_amounts, derive_charge_status, utc_today
from hoa_backend.core.enums import PaymentStatus
from hoa_backend.core.exceptions import ConflictError, NotFoundError, ValidationError
from hoa_backend.core.models import Payment, PaymentAllocation, UnitCharge
from hoa_backend.core.money import quantize_money, to_decimal

logger = logging.getLogger(__name__)


async def allocated_total(db: AsyncSession, payment_id: UUID) -> Decimal:
    total = (
        await db.execute(
            select(func.coalesce(func.sum(PaymentAllocation.allocated_amount), 0)).where(
                PaymentAllocation.payment_id == payment_id
            )
        )
    ).scalar()
    return quantize_money(total)


async def lock_target_charge(db: AsyncSession, payment: Payment, charge_id: UUID) -> UnitCharge:
    charge = (
        await db.execute(select(UnitCharge).where(UnitCharge.id == charge_id).with_for_update())
    ).scalar_one_or_none()
    if not charge:
        raise NotFoundError("Unit charge not found")
    if charge.unit_id != payment.unit_id:
        raise ValidationError("Charge does not belong to the payment's unit")
    if charge.is_cancelled:
        raise ConflictError("Cannot allocate a payment to a cancelled charge")
    return charge


async def charge_outstanding(db: AsyncSession, charge: UnitCharge) -> Decimal:
    paid = (await charge_paid_amounts(db, [charge.id]))[charge.id]
    return quantize_money(to_decimal(charge.amount_due) - paid)


async def allocate_payment(
    db: AsyncSession,
    payment: Payment,
    target_charge_id: Optional[UUID] = None,
    today: Optional[date] = None,
    reject_overpayment: bool = False,
) -> List[PaymentAllocation]:
    """
    Allocate what is left of the payment (amount minus existing allocations).

    Without a target: outstanding charges of the payment's unit, oldest period first.
    With a target: that charge only. Whatever cannot be placed is stored as the
    payment's unallocated_amount (advance credit), or raises ConflictError when
    reject_overpayment is set.
    """
    if payment.status != PaymentStatus.SUCCEEDED.value:
        return []
    today = today or utc_today()
    remaining = quantize_money(to_decimal(payment.amount) - await allocated_total(db, payment.id))

    if target_charge_id is not None:
        charges = [await lock_target_charge(db, payment, target_charge_id)]
    else:
        charges = list(
            (
                await db.execute(
                    select(UnitCharge)
                    .where(
                        UnitCharge.unit_id == payment.unit_id,
                        UnitCharge.is_cancelled.is_(False),
                    )
                    .order_by(UnitCharge.period, UnitCharge.created_at)
                    .with_for_update()
                )
            ).scalars().all()
        )

    paid_map = await charge_paid_amounts(db, [c.id for c in charges])
    outstanding_total = sum(
        (max(Decimal("0"), to_decimal(c.amount_due) - paid_map[c.id]) for c in charges),
        Decimal("0"),
    )
    if reject_overpayment and remaining > outstanding_total:
        raise ConflictError(
            f"Amount ({remaining:.2f}) exceeds outstanding balance ({outstanding_total:.2f})."
        )

    created: List[PaymentAllocation] = []
    for charge in charges:
        if remaining <= 0:
            break
        amount_paid = paid_map[charge.id]
        outstanding = quantize_money(to_decimal(charge.amount_due) - amount_paid)
        if outstanding <= 0:
            continue
        portion = min(remaining, outstanding)
        allocation = PaymentAllocation(
            payment_id=payment.id,
            unit_charge_id=charge.id,
            allocated_amount=portion,
        )
        db.add(allocation)
        created.append(allocation)
        remaining = quantize_money(remaining - portion)
        charge.status = derive_charge_status(
            charge.amount_due, amount_paid + portion, charge.due_date, today, bool(charge.is_cancelled)
        ).value

    payment.unallocated_amount = remaining
    await db.flush()
    if created:
        logger.info(
            "Allocated payment %s to %d charge(s); %s held as credit",
            payment.id, len(created), remaining,
        )
    return created


async def release_allocations(db: AsyncSession, payment: Payment, today: Optional[date] = None) -> List[UnitCharge]:
    """Remove every allocation of the payment and re-derive the affected charges' statuses."""
    charge_ids = [
        r[0]
        for r in (
            await db.execute(
                select(PaymentAllocation.unit_charge_id).where(PaymentAllocation.payment_id == payment.id)
            )
        ).all()
    ]
    if not charge_ids:
        return []
    charges = list(
        (
            await db.execute(select(UnitCharge).where(UnitCharge.id.in_(charge_ids)).with_for_update())
        ).scalars().all()
    )
    await db.execute(delete(PaymentAllocation).where(PaymentAllocation.payment_id == payment.id))
    await db.flush()
    paid_map = await charge_paid_amounts(db, charge_ids)
    today = today or utc_today()
    for charge in charges:
        charge.status = derive_charge_status(
            charge.amount_due, paid_map[charge.id], charge.due_date, today, bool(charge.is_cancelled)
        ).value
    logger.info("Released allocations of payment %s from %d charge(s)", payment.id, len(charges))
    return charges


async def apply_unit_credit(db: AsyncSession, unit_id: UUID, today: Optional[date] = None) -> int:
    """Place advance credit of the unit's succeeded payments onto its outstanding charges, oldest payment first."""
    payments = (
        await db.execute(
            select(Payment)
            .where(
                Payment.unit_id == unit_id,
                Payment.status == PaymentStatus.SUCCEEDED.value,
                Payment.unallocated_amount > 0,
            )
            .order_by(Payment.payment_date_utc, Payment.created_at)
            .with_for_update()
        )
    ).scalars().all()
    count = 0
    for payment in payments:
        count += len(await allocate_payment(db, payment, today=today))
    return count
