"""HOA service: fee plans, idempotent monthly charge generation, charge adjustments. Financial changes are audited."""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.api.v1.ledger.service import append_entry
from hoa_backend.api.v1.payments.allocator import apply_unit_credit
from hoa_backend.auth.rbac import ensure_building_access, ensure_unit_access
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.config import settings
from hoa_backend.core.enums import CalculationMethod, LedgerEntryType, UnitChargeStatus
from hoa_backend.core.exceptions import ConflictError, NotFoundError, ValidationError
from hoa_backend.core.models import AuditLog, Building, HOAFeePlan, Unit, UnitCharge, User
from hoa_backend.core.money import quantize_money, to_decimal

from .schemas import (
    AdjustChargeRequest,
    CancelChargeRequest,
    FeePlanCreate,
    FeePlanResponse,
    FeePlanUpdate,
    GenerateChargesResult,
    ManualChargeCreate,
    RefreshStatusResult,
    UnitChargeResponse,
)
from .status import (
    calculate_unit_amount,
    charge_paid_amounts,
    derive_charge_status,
    due_date_for_period,
    parse_period,
    recompute_charge,
    utc_today,
)

logger = logging.getLogger(__name__)

HOA_FEES_CATEGORY = "HOAMonthlyFees"


# --- Audit helper ---
def _log_audit(
    db: AsyncSession,
    action: str,
    entity_name: str,
    entity_id: UUID,
    old_value: Optional[dict],
    new_value: Optional[dict],
    performed_by: Optional[UUID],
) -> None:
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


# --- Fee plans ---
async def _get_plan_or_404(db: AsyncSession, plan_id: UUID) -> HOAFeePlan:
    plan = await db.get(HOAFeePlan, plan_id)
    if not plan:
        raise NotFoundError("Fee plan not found")
    return plan


async def create_fee_plan(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: FeePlanCreate,
) -> FeePlanResponse:
    if not await db.get(Building, payload.building_id):
        raise ValidationError("Unknown building")
    await ensure_building_access(db, current_user, payload.building_id)
    plan = HOAFeePlan(
        building_id=payload.building_id,
        name=payload.name.strip(),
        calculation_method=payload.calculation_method.value,
        amount_per_sqm=payload.amount_per_sqm,
        fixed_amount_per_unit=payload.fixed_amount_per_unit,
        effective_from=payload.effective_from,
        is_active=True,
        created_by=current_user.id,
    )
    db.add(plan)
    await db.commit()
    await db.refresh(plan)
    return FeePlanResponse.model_validate(plan)


async def list_fee_plans(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
) -> List[FeePlanResponse]:
    await ensure_building_access(db, current_user, building_id)
    result = await db.execute(
        select(HOAFeePlan)
        .where(HOAFeePlan.building_id == building_id)
        .order_by(HOAFeePlan.effective_from.desc())
    )
    return [FeePlanResponse.model_validate(p) for p in result.scalars().all()]


async def update_fee_plan(
    db: AsyncSession,
    current_user: CurrentUser,
    plan_id: UUID,
    payload: FeePlanUpdate,
) -> FeePlanResponse:
    """Plan edits apply to future generations only; existing charges keep their amounts."""
    plan = await _get_plan_or_404(db, plan_id)
    await ensure_building_access(db, current_user, plan.building_id)
    plan.name = payload.name.strip()
    plan.calculation_method = payload.calculation_method.value
    plan.amount_per_sqm = payload.amount_per_sqm
    plan.fixed_amount_per_unit = payload.fixed_amount_per_unit
    plan.is_active = payload.is_active
    await db.commit()
    await db.refresh(plan)
    return FeePlanResponse.model_validate(plan)


# --- Charge generation ---
async def generate_charges(
    db: AsyncSession,
    current_user: CurrentUser,
    plan_id: UUID,
    period: str,
    today: Optional[date] = None,
) -> GenerateChargesResult:
    """
    One charge per active unit of the plan's building for the period.
    Units that already have a charge for the period are skipped, so re-running is safe.
    """
    parse_period(period)
    plan = await _get_plan_or_404(db, plan_id)
    await ensure_building_access(db, current_user, plan.building_id)
    if not plan.is_active:
        raise ValidationError("Fee plan is not active")
    if plan.calculation_method == CalculationMethod.MANUAL_PER_UNIT.value:
        return GenerateChargesResult(
            period=period,
            charges_created=0,
            charges_skipped=0,
            already_generated=False,
            message="Manual fee plans are charged per unit; nothing generated.",
        )

    today = today or utc_today()
    due_date = due_date_for_period(period, settings.hoa_due_day)
    units = (
        await db.execute(
            select(Unit)
            .where(Unit.building_id == plan.building_id, Unit.is_active.is_(True))
            .order_by(Unit.unit_number)
        )
    ).scalars().all()

    created = 0
    skipped = 0
    try:
        existing_unit_ids = set(
            (
                await db.execute(
                    select(UnitCharge.unit_id)
                    .where(
                        UnitCharge.unit_id.in_([u.id for u in units]),
                        UnitCharge.period == period,
                    )
                    .with_for_update()
                )
            ).scalars().all()
        )
        credited_units = []
        for unit in units:
            if unit.id in existing_unit_ids:
                skipped += 1
                continue
            amount = calculate_unit_amount(plan, unit)
            if amount is None or amount <= 0:
                logger.warning("Unit %s has no billable amount under plan %s; skipped", unit.unit_number, plan.id)
                continue
            charge = UnitCharge(
                unit_id=unit.id,
                fee_plan_id=plan.id,
                period=period,
                amount_due=amount,
                due_date=due_date,
                status=derive_charge_status(amount, Decimal("0"), due_date, today).value,
                is_cancelled=False,
            )
            db.add(charge)
            await db.flush()
            await append_entry(
                db,
                building_id=plan.building_id,
                unit_id=unit.id,
                entry_type=LedgerEntryType.CHARGE,
                debit=amount,
                category=HOA_FEES_CATEGORY,
                description=f"HOA charge {period} ({plan.name})",
                reference_id=charge.id,
            )
            credited_units.append(unit.id)
            created += 1

        # Advance credit held on earlier payments settles the new charges right away
        for unit_id in credited_units:
            await apply_unit_credit(db, unit_id, today=today)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Charges for this period are being generated concurrently; retry")
    except Exception:
        await db.rollback()
        raise

    already = created == 0 and skipped > 0 and skipped == len(units)
    logger.info(
        "Generated %d HOA charge(s) for building %s period %s (%d skipped)",
        created, plan.building_id, period, skipped,
    )
    message = (
        "Already generated for this period."
        if already
        else f"Generated {created} charges for {period}."
    )
    return GenerateChargesResult(
        period=period,
        charges_created=created,
        charges_skipped=skipped,
        already_generated=already,
        message=message,
    )


# --- Charges ---
async def _charge_rows(db: AsyncSession, stmt) -> List[UnitChargeResponse]:
    rows = (await db.execute(stmt)).all()
    paid_map = await charge_paid_amounts(db, [r[0].id for r in rows])
    out = []
    for charge, unit_number, floor, tenant_name, owner_name in rows:
        amount_due = to_decimal(charge.amount_due)
        paid = paid_map[charge.id]
        out.append(
            UnitChargeResponse(
                id=charge.id,
                unit_id=charge.unit_id,
                unit_number=unit_number,
                floor=floor,
                resident_name=tenant_name or owner_name,
                fee_plan_id=charge.fee_plan_id,
                period=charge.period,
                amount_due=amount_due,
                amount_paid=paid,
                balance=quantize_money(amount_due - paid),
                due_date=charge.due_date,
                status=charge.status,
                created_at=charge.created_at,
            )
        )
    return out


def _charge_select():
    return (
        select(UnitCharge, Unit.unit_number, Unit.floor, User.full_name, Unit.owner_name)
        .join(Unit, UnitCharge.unit_id == Unit.id)
        .outerjoin(User, Unit.tenant_user_id == User.id)
    )


async def list_charges(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    period: Optional[str] = None,
    status_filter: Optional[UnitChargeStatus] = None,
) -> List[UnitChargeResponse]:
    await ensure_building_access(db, current_user, building_id)
    stmt = _charge_select().where(Unit.building_id == building_id)
    if period:
        parse_period(period)
        stmt = stmt.where(UnitCharge.period == period)
    if status_filter is not None:
        stmt = stmt.where(UnitCharge.status == status_filter.value)
    stmt = stmt.order_by(Unit.unit_number, UnitCharge.period)
    return await _charge_rows(db, stmt)


async def list_unit_charges(
    db: AsyncSession,
    current_user: CurrentUser,
    unit_id: UUID,
) -> List[UnitChargeResponse]:
    unit = await db.get(Unit, unit_id)
    if not unit:
        raise NotFoundError("Unit not found")
    await ensure_unit_access(db, current_user, unit)
    stmt = _charge_select().where(UnitCharge.unit_id == unit_id).order_by(UnitCharge.period.desc())
    return await _charge_rows(db, stmt)


async def list_my_charges(db: AsyncSession, current_user: CurrentUser) -> List[UnitChargeResponse]:
    stmt = (
        _charge_select()
        .where(Unit.tenant_user_id == current_user.id)
        .order_by(UnitCharge.period.desc(), Unit.unit_number)
    )
    return await _charge_rows(db, stmt)


async def get_charge(db: AsyncSession, current_user: CurrentUser, charge_id: UUID) -> UnitChargeResponse:
    rows = await _charge_rows(db, _charge_select().where(UnitCharge.id == charge_id))
    if not rows:
        raise NotFoundError("Unit charge not found")
    unit = await db.get(Unit, rows[0].unit_id)
    await ensure_unit_access(db, current_user, unit)
    return rows[0]


async def _lock_charge(db: AsyncSession, charge_id: UUID) -> Tuple[UnitCharge, Unit]:
    charge = (
        await db.execute(select(UnitCharge).where(UnitCharge.id == charge_id).with_for_update())
    ).scalar_one_or_none()
    if not charge:
        raise NotFoundError("Unit charge not found")
    unit = await db.get(Unit, charge.unit_id)
    return charge, unit


async def create_manual_charge(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: ManualChargeCreate,
    today: Optional[date] = None,
) -> UnitChargeResponse:
    """Individually priced charge, for ManualPerUnit plans or one-off corrections."""
    unit = await db.get(Unit, payload.unit_id)
    if not unit:
        raise ValidationError("Unknown unit")
    await ensure_building_access(db, current_user, unit.building_id)
    plan = await db.get(HOAFeePlan, payload.fee_plan_id)
    if not plan or plan.building_id != unit.building_id:
        raise ValidationError("Unknown fee plan for this building")

    today = today or utc_today()
    due_date = payload.due_date or due_date_for_period(payload.period, settings.hoa_due_day)
    amount = quantize_money(payload.amount_due)
    duplicate_message = f"A charge for unit {unit.unit_number} already exists for {payload.period}"
    try:
        existing = (
            await db.execute(
                select(UnitCharge.id)
                .where(UnitCharge.unit_id == unit.id, UnitCharge.period == payload.period)
                .with_for_update()
            )
        ).scalar_one_or_none()
        if existing:
            raise ConflictError(duplicate_message)
        charge = UnitCharge(
            unit_id=unit.id,
            fee_plan_id=plan.id,
            period=payload.period,
            amount_due=amount,
            due_date=due_date,
            status=derive_charge_status(amount, Decimal("0"), due_date, today).value,
            is_cancelled=False,
        )
        db.add(charge)
        await db.flush()
        await append_entry(
            db,
            building_id=unit.building_id,
            unit_id=unit.id,
            entry_type=LedgerEntryType.CHARGE,
            debit=amount,
            category=HOA_FEES_CATEGORY,
            description=f"HOA charge {payload.period} (manual)",
            reference_id=charge.id,
        )
        _log_audit(
            db, "CreateManualCharge", "UnitCharge", charge.id,
            None, {"period": payload.period, "amount_due": str(amount)}, current_user.id,
        )
        await apply_unit_credit(db, unit.id, today=today)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(duplicate_message)
    except Exception:
        await db.rollback()
        raise
    return await get_charge(db, current_user, charge.id)


async def adjust_charge(
    db: AsyncSession,
    current_user: CurrentUser,
    charge_id: UUID,
    payload: AdjustChargeRequest,
    today: Optional[date] = None,
) -> UnitChargeResponse:
    """Change amount_due; the difference goes to the ledger as an Adjustment."""
    try:
        charge, unit = await _lock_charge(db, charge_id)
        await ensure_building_access(db, current_user, unit.building_id)
        if charge.is_cancelled:
            raise ConflictError("Cannot adjust a cancelled charge")
        paid = (await charge_paid_amounts(db, [charge.id]))[charge.id]
        new_amount = quantize_money(payload.new_amount)
        if new_amount < paid:
            raise ConflictError(
                f"New amount ({new_amount:.2f}) is below the amount already paid ({paid:.2f})."
            )
        old_amount = to_decimal(charge.amount_due)
        diff = new_amount - old_amount
        charge.amount_due = new_amount
        await recompute_charge(db, charge, today)
        if diff != 0:
            await append_entry(
                db,
                building_id=unit.building_id,
                unit_id=unit.id,
                entry_type=LedgerEntryType.ADJUSTMENT,
                debit=diff if diff > 0 else Decimal("0"),
                credit=-diff if diff < 0 else Decimal("0"),
                category="ChargeAdjustment",
                description=(payload.reason or "").strip() or f"Charge {charge.period} adjusted",
                reference_id=charge.id,
            )
        _log_audit(
            db, "AdjustCharge", "UnitCharge", charge.id,
            {"amount_due": str(old_amount)},
            {"amount_due": str(new_amount), "status": charge.status, "reason": payload.reason},
            current_user.id,
        )
        if diff > 0:
            await apply_unit_credit(db, unit.id, today=today)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Adjusted charge %s from %s to %s", charge_id, old_amount, new_amount)
    return await get_charge(db, current_user, charge_id)


async def cancel_charge(
    db: AsyncSession,
    current_user: CurrentUser,
    charge_id: UUID,
    payload: CancelChargeRequest,
    today: Optional[date] = None,
) -> UnitChargeResponse:
    """Manual override to Cancelled. Paid-into charges must have their payments removed first."""
    try:
        charge, unit = await _lock_charge(db, charge_id)
        await ensure_building_access(db, current_user, unit.building_id)
        if charge.is_cancelled:
            raise ConflictError("Charge is already cancelled")
        paid = (await charge_paid_amounts(db, [charge.id]))[charge.id]
        if paid > 0:
            raise ConflictError("Charge has payments allocated; remove them before cancelling")
        old_status = charge.status
        charge.is_cancelled = True
        await recompute_charge(db, charge, today)
        await append_entry(
            db,
            building_id=unit.building_id,
            unit_id=unit.id,
            entry_type=LedgerEntryType.ADJUSTMENT,
            credit=to_decimal(charge.amount_due),
            category="ChargeCancellation",
            description=(payload.reason or "").strip() or f"Charge {charge.period} cancelled",
            reference_id=charge.id,
        )
        _log_audit(
            db, "CancelCharge", "UnitCharge", charge.id,
            {"status": old_status}, {"status": charge.status, "reason": payload.reason}, current_user.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return await get_charge(db, current_user, charge_id)


async def refresh_charge_statuses(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    today: Optional[date] = None,
) -> RefreshStatusResult:
    """Re-derive every open charge of a building, e.g. to flip Pending to Overdue after the due date."""
    await ensure_building_access(db, current_user, building_id)
    today = today or utc_today()
    try:
        charges = (
            await db.execute(
                select(UnitCharge)
                .join(Unit, UnitCharge.unit_id == Unit.id)
                .where(
                    Unit.building_id == building_id,
                    UnitCharge.status.in_(
                        [
                            UnitChargeStatus.PENDING.value,
                            UnitChargeStatus.PARTIALLY_PAID.value,
                            UnitChargeStatus.OVERDUE.value,
                        ]
                    ),
                )
                .with_for_update()
            )
        ).scalars().all()
        paid_map: Dict[UUID, Decimal] = await charge_paid_amounts(db, [c.id for c in charges])
        changed = 0
        for charge in charges:
            new_status = derive_charge_status(
                charge.amount_due, paid_map[charge.id], charge.due_date, today, bool(charge.is_cancelled)
            ).value
            if new_status != charge.status:
                charge.status = new_status
                changed += 1
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Refreshed %d charge(s) for building %s, %d changed", len(charges), building_id, changed)
    return RefreshStatusResult(building_id=building_id, charges_checked=len(charges), charges_changed=changed)
