"""
Reports: collection status per period, aging of outstanding balances, income vs expenses.

All figures are computed from allocations and ledger entries at query time; nothing
here writes.
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.api.v1.hoa import service as hoa_service
from hoa_backend.api.v1.hoa.status import charge_paid_amounts, derive_charge_status, parse_period, utc_today
from hoa_backend.api.v1.payments import service as payment_service
from hoa_backend.auth.rbac import ensure_building_access, managed_building_ids
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.enums import CollectionRowStatus, LedgerEntryType, PaymentStatus, UnitChargeStatus
from hoa_backend.core.exceptions import NotFoundError, ValidationError
from hoa_backend.core.models import Building, LedgerEntry, Payment, Unit, UnitCharge, User
from hoa_backend.core.money import quantize_money, to_decimal

from .schemas import (
    AgingReport,
    AgingRow,
    CategoryAmount,
    CollectionRow,
    CollectionStatusReport,
    CollectionSummary,
    CollectionUnitDetail,
    IncomeExpensesReport,
    MonthlyBreakdown,
)

ZERO = Decimal("0.00")

AGING_BUCKETS = ("current", "days_1_30", "days_31_60", "days_61_90", "days_90_plus")

_ROW_STATUS = {
    UnitChargeStatus.PAID: CollectionRowStatus.PAID,
    UnitChargeStatus.PARTIALLY_PAID: CollectionRowStatus.PARTIAL,
    UnitChargeStatus.OVERDUE: CollectionRowStatus.OVERDUE,
    UnitChargeStatus.PENDING: CollectionRowStatus.UNPAID,
}


def collection_rate(total_paid: Decimal, total_due: Decimal) -> Decimal:
    """Paid as a percentage of due, one decimal; 0 when nothing is due."""
    total_due = to_decimal(total_due)
    if total_due <= 0:
        return Decimal("0.0")
    rate = min(to_decimal(total_paid) / total_due * 100, Decimal("100"))
    return rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def aging_bucket(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "current"
    if days_overdue <= 30:
        return "days_1_30"
    if days_overdue <= 60:
        return "days_31_60"
    if days_overdue <= 90:
        return "days_61_90"
    return "days_90_plus"


async def _get_building(db: AsyncSession, current_user: CurrentUser, building_id: UUID) -> Building:
    building = await db.get(Building, building_id)
    if not building:
        raise NotFoundError("Building not found")
    await ensure_building_access(db, current_user, building_id)
    return building


# --- Collection status ---
async def _build_collection_report(
    db: AsyncSession,
    building: Building,
    period: str,
    include_not_generated: bool,
    today: date,
) -> CollectionStatusReport:
    units = (
        await db.execute(
            select(Unit, User.full_name, User.phone)
            .outerjoin(User, Unit.tenant_user_id == User.id)
            .where(Unit.building_id == building.id)
            .order_by(Unit.unit_number)
        )
    ).all()
    charges = (
        await db.execute(
            select(UnitCharge)
            .join(Unit, UnitCharge.unit_id == Unit.id)
            .where(Unit.building_id == building.id, UnitCharge.period == period)
        )
    ).scalars().all()
    charge_by_unit = {c.unit_id: c for c in charges}
    paid_map = await charge_paid_amounts(db, [c.id for c in charges])
    last_payment = dict(
        (
            await db.execute(
                select(Payment.unit_id, func.max(Payment.payment_date_utc))
                .join(Unit, Payment.unit_id == Unit.id)
                .where(Unit.building_id == building.id, Payment.status == PaymentStatus.SUCCEEDED.value)
                .group_by(Payment.unit_id)
            )
        ).all()
    )

    rows: List[CollectionRow] = []
    for unit, tenant_name, tenant_phone in units:
        common = dict(
            unit_id=unit.id,
            unit_number=unit.unit_number,
            floor=unit.floor,
            size_sqm=unit.size_sqm,
            payer_display_name=tenant_name or unit.owner_name,
            payer_phone=tenant_phone,
            last_payment_date=last_payment.get(unit.id),
        )
        charge = charge_by_unit.get(unit.id)
        if charge is None:
            if include_not_generated:
                rows.append(
                    CollectionRow(
                        **common,
                        amount_due=ZERO,
                        amount_paid=ZERO,
                        balance=ZERO,
                        due_date=None,
                        status=CollectionRowStatus.NOT_GENERATED,
                    )
                )
            continue
        amount_due = quantize_money(charge.amount_due)
        if charge.is_cancelled or amount_due == 0:
            continue
        paid = paid_map[charge.id]
        status = derive_charge_status(amount_due, paid, charge.due_date, today)
        rows.append(
            CollectionRow(
                **common,
                amount_due=amount_due,
                amount_paid=paid,
                balance=max(ZERO, quantize_money(amount_due - paid)),
                due_date=charge.due_date,
                status=_ROW_STATUS[status],
            )
        )

    generated = [r for r in rows if r.status != CollectionRowStatus.NOT_GENERATED]
    total_due = quantize_money(sum((r.amount_due for r in generated), ZERO))
    total_paid = quantize_money(sum((r.amount_paid for r in generated), ZERO))
    summary = CollectionSummary(
        building_id=building.id,
        building_name=building.name,
        period=period,
        total_units=len(units),
        generated_count=len(generated),
        paid_count=sum(1 for r in rows if r.status == CollectionRowStatus.PAID),
        partial_count=sum(1 for r in rows if r.status == CollectionRowStatus.PARTIAL),
        unpaid_count=sum(1 for r in rows if r.status == CollectionRowStatus.UNPAID),
        overdue_count=sum(1 for r in rows if r.status == CollectionRowStatus.OVERDUE),
        total_due=total_due,
        total_paid=total_paid,
        total_outstanding=quantize_money(sum((r.balance for r in generated), ZERO)),
        collection_rate_percent=collection_rate(total_paid, total_due),
    )
    return CollectionStatusReport(summary=summary, rows=rows)


async def collection_status(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    period: Optional[str] = None,
    include_not_generated: bool = False,
    today: Optional[date] = None,
) -> CollectionStatusReport:
    today = today or utc_today()
    period = period or today.strftime("%Y-%m")
    parse_period(period)
    building = await _get_building(db, current_user, building_id)
    return await _build_collection_report(db, building, period, include_not_generated, today)


async def collection_unit_detail(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    unit_id: UUID,
    period: Optional[str] = None,
) -> CollectionUnitDetail:
    period = period or utc_today().strftime("%Y-%m")
    parse_period(period)
    await _get_building(db, current_user, building_id)
    charge_id = (
        await db.execute(
            select(UnitCharge.id)
            .join(Unit, UnitCharge.unit_id == Unit.id)
            .where(
                UnitCharge.unit_id == unit_id,
                Unit.building_id == building_id,
                UnitCharge.period == period,
            )
        )
    ).scalar_one_or_none()
    if not charge_id:
        raise NotFoundError(f"No charge found for this unit in period {period}")
    return CollectionUnitDetail(
        charge=await hoa_service.get_charge(db, current_user, charge_id),
        payments=await payment_service.list_charge_payments(db, current_user, charge_id),
    )


async def dashboard_collection(
    db: AsyncSession,
    current_user: CurrentUser,
    period: Optional[str] = None,
    today: Optional[date] = None,
) -> List[CollectionSummary]:
    """Collection summary of every building the caller manages."""
    today = today or utc_today()
    period = period or today.strftime("%Y-%m")
    parse_period(period)
    ids = await managed_building_ids(db, current_user)
    stmt = select(Building).order_by(Building.name)
    if ids is not None:
        if not ids:
            return []
        stmt = stmt.where(Building.id.in_(ids))
    buildings = (await db.execute(stmt)).scalars().all()
    return [
        (await _build_collection_report(db, building, period, False, today)).summary
        for building in buildings
    ]


# --- Aging ---
async def aging_report(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    as_of: Optional[date] = None,
) -> AgingReport:
    """
    Outstanding balance per unit, each charge bucketed by its own days past due,
    so one unit can span several buckets.
    """
    as_of = as_of or utc_today()
    building = await _get_building(db, current_user, building_id)
    rows = (
        await db.execute(
            select(UnitCharge, Unit.unit_number, User.full_name, Unit.owner_name)
            .join(Unit, UnitCharge.unit_id == Unit.id)
            .outerjoin(User, Unit.tenant_user_id == User.id)
            .where(Unit.building_id == building_id, UnitCharge.is_cancelled.is_(False))
        )
    ).all()
    paid_map = await charge_paid_amounts(db, [r[0].id for r in rows])

    per_unit: Dict[UUID, Dict[str, Decimal]] = defaultdict(lambda: {b: ZERO for b in AGING_BUCKETS})
    names: Dict[UUID, tuple] = {}
    for charge, unit_number, tenant_name, owner_name in rows:
        balance = quantize_money(to_decimal(charge.amount_due) - paid_map[charge.id])
        if balance <= 0:
            continue
        bucket = aging_bucket((as_of - charge.due_date).days)
        per_unit[charge.unit_id][bucket] += balance
        names[charge.unit_id] = (unit_number, tenant_name or owner_name)

    aging_rows = [
        AgingRow(
            unit_id=unit_id,
            unit_number=names[unit_id][0],
            resident_name=names[unit_id][1],
            total=quantize_money(sum(buckets.values(), ZERO)),
            **buckets,
        )
        for unit_id, buckets in per_unit.items()
    ]
    aging_rows.sort(key=lambda r: r.unit_number)
    return AgingReport(
        building_id=building.id,
        building_name=building.name,
        as_of=as_of,
        rows=aging_rows,
        grand_total=quantize_money(sum((r.total for r in aging_rows), ZERO)),
    )


# --- Income vs expenses ---
async def income_expenses(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
) -> IncomeExpensesReport:
    """
    Income is payment receipts net of payment reversals, which are netted into the
    HOAMonthlyFees category; expenses are Expense debits.
    Both are read from the ledger by entry date, to_date inclusive.
    """
    to_date = to_date or utc_today()
    from_date = from_date or (to_date - timedelta(days=365))
    if from_date > to_date:
        raise ValidationError("from_date must not be after to_date")
    building = await _get_building(db, current_user, building_id)
    entries = (
        await db.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.building_id == building_id,
                LedgerEntry.created_at >= datetime.combine(from_date, time.min),
                LedgerEntry.created_at < datetime.combine(to_date + timedelta(days=1), time.min),
            )
            .order_by(LedgerEntry.sequence)
        )
    ).scalars().all()

    income_by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    expenses_by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    monthly: Dict[str, Dict[str, Decimal]] = defaultdict(lambda: {"income": ZERO, "expenses": ZERO})
    for e in entries:
        month = e.created_at.strftime("%Y-%m")
        if e.entry_type == LedgerEntryType.PAYMENT.value:
            amount = to_decimal(e.credit)
            income_by_category[e.category or payment_service.HOA_FEES_CATEGORY] += amount
            monthly[month]["income"] += amount
        elif e.entry_type == LedgerEntryType.ADJUSTMENT.value and e.category == payment_service.PAYMENT_REVERSAL_CATEGORY:
            amount = to_decimal(e.debit)
            # A reversal nets against the fees it reverses
            income_by_category[payment_service.HOA_FEES_CATEGORY] -= amount
            monthly[month]["income"] -= amount
        elif e.entry_type == LedgerEntryType.EXPENSE.value:
            amount = to_decimal(e.debit)
            expenses_by_category[e.category or "Other"] += amount
            monthly[month]["expenses"] += amount

    total_income = quantize_money(sum(income_by_category.values(), ZERO))
    total_expenses = quantize_money(sum(expenses_by_category.values(), ZERO))
    return IncomeExpensesReport(
        building_id=building.id,
        building_name=building.name,
        from_date=from_date,
        to_date=to_date,
        total_income=total_income,
        total_expenses=total_expenses,
        net_balance=quantize_money(total_income - total_expenses),
        income_by_category=[
            CategoryAmount(category=k, amount=quantize_money(v))
            for k, v in sorted(income_by_category.items(), key=lambda kv: kv[1], reverse=True)
        ],
        expenses_by_category=[
            CategoryAmount(category=k, amount=quantize_money(v))
            for k, v in sorted(expenses_by_category.items(), key=lambda kv: kv[1], reverse=True)
        ],
        monthly_breakdown=[
            MonthlyBreakdown(
                month=month,
                income=quantize_money(v["income"]),
                expenses=quantize_money(v["expenses"]),
                net=quantize_money(v["income"] - v["expenses"]),
            )
            for month, v in sorted(monthly.items())
        ],
    )
