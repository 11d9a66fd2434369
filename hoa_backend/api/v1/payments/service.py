"""
Payments service: processor results, webhook settlement, manual payment CRUD.

Every mutation runs in one transaction: the payment row, its allocations, the
charge statuses, the ledger entry and the audit row commit together or not at all.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.api.v1.hoa.status import charge_paid_amounts, utc_today
from hoa_backend.api.v1.ledger.service import append_entry
from hoa_backend.auth.rbac import ensure_building_access, ensure_unit_access
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.enums import LedgerEntryType, PaymentStatus, UserRole
from hoa_backend.core.exceptions import ConflictError, NotFoundError, ValidationError
from hoa_backend.core.models import AuditLog, Payment, PaymentAllocation, Unit, UnitCharge, User
from hoa_backend.core.money import quantize_money, to_decimal

from .allocator import (
    allocate_payment,
    apply_unit_credit,
    charge_outstanding,
    lock_target_charge,
    release_allocations,
)
from .schemas import (
    ChargePaymentResponse,
    ManualPaymentRequest,
    ManualPaymentResult,
    PaymentAllocationResponse,
    PaymentCreate,
    PaymentResponse,
    SettlePaymentRequest,
)

logger = logging.getLogger(__name__)

HOA_FEES_CATEGORY = "HOAMonthlyFees"
PAYMENT_REVERSAL_CATEGORY = "PaymentReversal"


# --- Helpers ---
def _log_audit(db: AsyncSession, action: str, entity_name: str, entity_id: UUID, old_value, new_value, performed_by) -> None:
    db.add(
        AuditLog(
            action=action,
            entity_name=entity_name,
            entity_id=entity_id,
            old_value=old_value,
            new_value=new_value,
            performed_by=performed_by,
        )
    )


async def _payment_responses(db: AsyncSession, payments: Sequence[Payment]) -> List[PaymentResponse]:
    if not payments:
        return []
    payment_ids = [p.id for p in payments]
    allocations: Dict[UUID, List[PaymentAllocationResponse]] = {pid: [] for pid in payment_ids}
    rows = await db.execute(select(PaymentAllocation).where(PaymentAllocation.payment_id.in_(payment_ids)))
    for a in rows.scalars().all():
        allocations[a.payment_id].append(PaymentAllocationResponse.model_validate(a))
    unit_numbers = dict(
        (
            await db.execute(
                select(Unit.id, Unit.unit_number).where(Unit.id.in_(list({p.unit_id for p in payments})))
            )
        ).all()
    )
    return [
        PaymentResponse(
            id=p.id,
            unit_id=p.unit_id,
            unit_number=unit_numbers.get(p.unit_id),
            user_id=p.user_id,
            amount=to_decimal(p.amount),
            unallocated_amount=to_decimal(p.unallocated_amount),
            payment_date_utc=p.payment_date_utc,
            provider_reference=p.provider_reference,
            status=p.status,
            target_charge_id=p.target_charge_id,
            is_manual=bool(p.is_manual),
            manual_method=p.manual_method,
            notes=p.notes,
            created_at=p.created_at,
            allocations=allocations[p.id],
        )
        for p in payments
    ]


async def _payment_response(db: AsyncSession, payment_id: UUID) -> PaymentResponse:
    payment = await db.get(Payment, payment_id)
    return (await _payment_responses(db, [payment]))[0]


async def _lock_payment(db: AsyncSession, payment_id: UUID) -> Payment:
    payment = (
        await db.execute(select(Payment).where(Payment.id == payment_id).with_for_update())
    ).scalar_one_or_none()
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


async def _post_receipt(db: AsyncSession, unit: Unit, payment: Payment, amount: Decimal, description: str) -> None:
    await append_entry(
        db,
        building_id=unit.building_id,
        unit_id=unit.id,
        entry_type=LedgerEntryType.PAYMENT,
        credit=amount,
        category=HOA_FEES_CATEGORY,
        description=description,
        reference_id=payment.id,
    )


async def _post_reversal(db: AsyncSession, unit: Unit, payment: Payment, amount: Decimal, description: str) -> None:
    await append_entry(
        db,
        building_id=unit.building_id,
        unit_id=unit.id,
        entry_type=LedgerEntryType.ADJUSTMENT,
        debit=amount,
        category=PAYMENT_REVERSAL_CATEGORY,
        description=description,
        reference_id=payment.id,
    )


async def _check_target_fits(db: AsyncSession, payment: Payment, charge_id: UUID) -> UnitCharge:
    charge = await lock_target_charge(db, payment, charge_id)
    outstanding = await charge_outstanding(db, charge)
    amount = quantize_money(payment.amount)
    if amount > outstanding:
        logger.warning("Rejected payment of %s on charge %s: outstanding %s", amount, charge_id, outstanding)
        raise ConflictError(f"Amount ({amount:.2f}) exceeds outstanding balance ({outstanding:.2f}).")
    return charge


# --- Processor payments ---
async def record_payment(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: PaymentCreate,
    today: Optional[date] = None,
) -> PaymentResponse:
    """
    Record a processor result for a unit. Succeeded payments are allocated right away;
    Pending ones wait for settle_payment. A targeted payment may not exceed what the
    charge still owes.

    A tenant's payment is always stored as Pending: only the processor webhook can
    settle it. Pending payments need a provider_reference for that callback to find them.
    """
    unit = await db.get(Unit, payload.unit_id)
    if not unit:
        raise NotFoundError("Unit not found")
    await ensure_unit_access(db, current_user, unit)
    if payload.status == PaymentStatus.CANCELLED:
        raise ValidationError("A new payment cannot be recorded as Cancelled")
    payment_status = payload.status
    if current_user.role == UserRole.TENANT and payment_status != PaymentStatus.PENDING:
        logger.info("Tenant %s submitted a %s payment; stored as Pending", current_user.id, payment_status.value)
        payment_status = PaymentStatus.PENDING
    if payment_status == PaymentStatus.PENDING and not payload.provider_reference:
        raise ValidationError("A pending payment needs a provider_reference")

    try:
        payment = Payment(
            unit_id=unit.id,
            user_id=current_user.id,
            amount=quantize_money(payload.amount),
            payment_date_utc=payload.paid_at or datetime.utcnow(),
            provider_reference=payload.provider_reference,
            status=payment_status.value,
            target_charge_id=payload.charge_id,
            unallocated_amount=Decimal("0"),
            is_manual=False,
        )
        if payload.charge_id is not None:
            await _check_target_fits(db, payment, payload.charge_id)
        db.add(payment)
        await db.flush()
        if payment.status == PaymentStatus.SUCCEEDED.value:
            await _post_receipt(
                db, unit, payment, payment.amount,
                f"Payment {payment.provider_reference or payment.id}",
            )
            await allocate_payment(db, payment, payload.charge_id, today=today, reject_overpayment=payload.charge_id is not None)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Recorded %s payment of %s for unit %s", payment.status, payment.amount, unit.unit_number)
    return await _payment_response(db, payment.id)


async def settle_payment(
    db: AsyncSession,
    payload: SettlePaymentRequest,
    today: Optional[date] = None,
) -> PaymentResponse:
    """
    Processor callback. Only a Pending payment transitions; a repeated callback for a
    payment that already left Pending changes nothing.
    """
    if payload.status == PaymentStatus.PENDING:
        raise ValidationError("Settlement status must be Succeeded, Failed or Cancelled")
    try:
        payment = (
            await db.execute(
                select(Payment)
                .where(Payment.provider_reference == payload.provider_reference)
                .order_by(Payment.created_at)
                .limit(1)
                .with_for_update()
            )
        ).scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment not found")
        if payment.status != PaymentStatus.PENDING.value:
            logger.info("Payment %s already settled as %s; callback ignored", payment.id, payment.status)
            await db.commit()
            return await _payment_response(db, payment.id)

        payment.status = payload.status.value
        if payload.status == PaymentStatus.SUCCEEDED:
            unit = await db.get(Unit, payment.unit_id)
            await _post_receipt(db, unit, payment, payment.amount, f"Payment {payment.provider_reference}")
            target_id = payment.target_charge_id
            if target_id is not None:
                target = await db.get(UnitCharge, target_id)
                if target is None or target.is_cancelled:
                    target_id = None
            await allocate_payment(db, payment, target_id, today=today)
            if target_id is not None and to_decimal(payment.unallocated_amount) > 0:
                # The target was settled meanwhile; the rest goes to the oldest open charges
                await allocate_payment(db, payment, today=today)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Payment %s settled as %s", payment.id, payment.status)
    return await _payment_response(db, payment.id)


# --- Manual payments ---
async def add_manual_payment(
    db: AsyncSession,
    current_user: CurrentUser,
    charge_id: UUID,
    payload: ManualPaymentRequest,
    today: Optional[date] = None,
) -> ManualPaymentResult:
    """Bank transfer, cash or check recorded by staff against one charge."""
    try:
        charge = (
            await db.execute(select(UnitCharge).where(UnitCharge.id == charge_id).with_for_update())
        ).scalar_one_or_none()
        if not charge:
            raise NotFoundError("Unit charge not found")
        unit = await db.get(Unit, charge.unit_id)
        await ensure_building_access(db, current_user, unit.building_id)

        payment = Payment(
            unit_id=unit.id,
            user_id=current_user.id,
            amount=quantize_money(payload.paid_amount),
            payment_date_utc=payload.paid_at or datetime.utcnow(),
            provider_reference=payload.reference,
            status=PaymentStatus.SUCCEEDED.value,
            target_charge_id=charge.id,
            unallocated_amount=Decimal("0"),
            is_manual=True,
            manual_method=payload.method.value,
            notes=payload.notes,
            entered_by_user_id=current_user.id,
        )
        await _check_target_fits(db, payment, charge.id)
        old_paid = (await charge_paid_amounts(db, [charge.id]))[charge.id]
        db.add(payment)
        await db.flush()
        await _post_receipt(
            db, unit, payment, payment.amount,
            f"Manual payment ({payload.method.value}): {payload.reference or ''}".strip(),
        )
        await allocate_payment(db, payment, charge.id, today=today, reject_overpayment=True)
        new_paid = (await charge_paid_amounts(db, [charge.id]))[charge.id]
        _log_audit(
            db, "ManualPayment", "UnitCharge", charge.id,
            {"amount_paid": str(old_paid)},
            {
                "amount_paid": str(new_paid),
                "payment_amount": str(payment.amount),
                "method": payload.method.value,
                "reference": payload.reference,
                "status": charge.status,
            },
            current_user.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    amount_due = to_decimal(charge.amount_due)
    logger.info("Manual payment of %s (%s) on charge %s", payment.amount, payload.method.value, charge.id)
    return ManualPaymentResult(
        payment_id=payment.id,
        unit_charge_id=charge.id,
        amount_due=amount_due,
        amount_paid=new_paid,
        outstanding=quantize_money(amount_due - new_paid),
        status=charge.status,
        last_payment_date=payment.payment_date_utc,
    )


async def edit_manual_payment(
    db: AsyncSession,
    current_user: CurrentUser,
    payment_id: UUID,
    payload: ManualPaymentRequest,
    today: Optional[date] = None,
) -> PaymentResponse:
    """Re-allocate a manual payment with new details; the amount difference goes to the ledger."""
    try:
        payment = await _lock_payment(db, payment_id)
        if not payment.is_manual:
            raise ValidationError("Only manual payments can be edited.")
        if payment.status != PaymentStatus.SUCCEEDED.value:
            raise ConflictError("Only a succeeded payment can be edited")
        unit = await db.get(Unit, payment.unit_id)
        await ensure_building_access(db, current_user, unit.building_id)

        old_value = {
            "amount": str(to_decimal(payment.amount)),
            "method": payment.manual_method,
            "reference": payment.provider_reference,
        }
        old_amount = to_decimal(payment.amount)
        new_amount = quantize_money(payload.paid_amount)

        await release_allocations(db, payment, today=today)
        payment.amount = new_amount
        payment.payment_date_utc = payload.paid_at or payment.payment_date_utc
        payment.manual_method = payload.method.value
        payment.provider_reference = payload.reference
        payment.notes = payload.notes
        await allocate_payment(
            db, payment, payment.target_charge_id, today=today,
            reject_overpayment=payment.target_charge_id is not None,
        )

        diff = new_amount - old_amount
        if diff > 0:
            await _post_receipt(db, unit, payment, diff, f"Manual payment edited (+{diff:.2f})")
        elif diff < 0:
            await _post_reversal(db, unit, payment, -diff, f"Manual payment edited ({diff:.2f})")
        await apply_unit_credit(db, unit.id, today=today)
        _log_audit(
            db, "EditManualPayment", "Payment", payment.id,
            old_value,
            {"amount": str(new_amount), "method": payload.method.value, "reference": payload.reference},
            current_user.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Edited manual payment %s: %s -> %s", payment_id, old_amount, new_amount)
    return await _payment_response(db, payment_id)


async def cancel_payment(
    db: AsyncSession,
    current_user: CurrentUser,
    payment_id: UUID,
    today: Optional[date] = None,
) -> PaymentResponse:
    """
    Remove a manual payment: status Cancelled, allocations released, charges re-derived
    and a PaymentReversal adjustment posted. Rows are never hard-deleted.
    """
    try:
        payment = await _lock_payment(db, payment_id)
        if not payment.is_manual:
            raise ValidationError("Only manual payments can be removed.")
        if payment.status == PaymentStatus.CANCELLED.value:
            raise ConflictError("Payment is already cancelled")
        unit = await db.get(Unit, payment.unit_id)
        await ensure_building_access(db, current_user, unit.building_id)

        today = today or utc_today()
        was_succeeded = payment.status == PaymentStatus.SUCCEEDED.value
        released = await release_allocations(db, payment, today=today)
        payment.status = PaymentStatus.CANCELLED.value
        payment.unallocated_amount = Decimal("0")
        await db.flush()
        # Reopened charges take any advance credit the unit still holds
        await apply_unit_credit(db, unit.id, today=today)
        stamp = f"[Cancelled by {current_user.full_name} at {datetime.utcnow():%Y-%m-%d %H:%M}Z]"
        payment.notes = f"{payment.notes} {stamp}" if payment.notes else stamp
        if was_succeeded:
            await _post_reversal(db, unit, payment, to_decimal(payment.amount), f"Cancelled manual payment {payment.id}")
        _log_audit(
            db, "CancelManualPayment", "Payment", payment.id,
            {"status": PaymentStatus.SUCCEEDED.value if was_succeeded else None, "amount": str(to_decimal(payment.amount))},
            {"status": payment.status, "charges": [str(c.id) for c in released]},
            current_user.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Cancelled manual payment %s (%d charge(s) reopened)", payment_id, len(released))
    return await _payment_response(db, payment_id)


# --- Queries ---
async def list_unit_payments(db: AsyncSession, current_user: CurrentUser, unit_id: UUID) -> List[PaymentResponse]:
    unit = await db.get(Unit, unit_id)
    if not unit:
        raise NotFoundError("Unit not found")
    await ensure_unit_access(db, current_user, unit)
    result = await db.execute(
        select(Payment).where(Payment.unit_id == unit_id).order_by(Payment.payment_date_utc.desc())
    )
    return await _payment_responses(db, result.scalars().all())


async def list_my_payments(db: AsyncSession, current_user: CurrentUser) -> List[PaymentResponse]:
    """Payments the caller made plus any payment on a unit they live in."""
    result = await db.execute(
        select(Payment)
        .join(Unit, Payment.unit_id == Unit.id)
        .where(or_(Payment.user_id == current_user.id, Unit.tenant_user_id == current_user.id))
        .order_by(Payment.payment_date_utc.desc())
    )
    return await _payment_responses(db, result.scalars().unique().all())


async def list_charge_payments(db: AsyncSession, current_user: CurrentUser, charge_id: UUID) -> List[ChargePaymentResponse]:
    charge = await db.get(UnitCharge, charge_id)
    if not charge:
        raise NotFoundError("Unit charge not found")
    unit = await db.get(Unit, charge.unit_id)
    await ensure_unit_access(db, current_user, unit)
    rows = await db.execute(
        select(PaymentAllocation.allocated_amount, Payment, User.full_name)
        .join(Payment, PaymentAllocation.payment_id == Payment.id)
        .outerjoin(User, Payment.entered_by_user_id == User.id)
        .where(PaymentAllocation.unit_charge_id == charge_id)
        .order_by(Payment.payment_date_utc.desc())
    )
    return [
        ChargePaymentResponse(
            id=payment.id,
            amount=to_decimal(allocated),
            payment_date_utc=payment.payment_date_utc,
            is_manual=bool(payment.is_manual),
            manual_method=payment.manual_method,
            provider_reference=payment.provider_reference,
            notes=payment.notes,
            entered_by_name=entered_by,
            status=payment.status,
            created_at=payment.created_at,
        )
        for allocated, payment, entered_by in rows.all()
    ]
