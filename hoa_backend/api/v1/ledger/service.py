"""Ledger entry store: append-only debit/credit rows with a running balance per stream."""

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.auth.rbac import ensure_building_access
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.enums import LedgerEntryType
from hoa_backend.core.exceptions import NotFoundError
from hoa_backend.core.models import Building, LedgerEntry
from hoa_backend.core.money import quantize_money, to_decimal

from .schemas import ExpenseCreate, LedgerEntryResponse

logger = logging.getLogger(__name__)


async def _last_in_stream(db: AsyncSession, building_id: UUID, unit_id: Optional[UUID]) -> Optional[LedgerEntry]:
    stmt = select(LedgerEntry).where(LedgerEntry.building_id == building_id)
    if unit_id is None:
        stmt = stmt.where(LedgerEntry.unit_id.is_(None))
    else:
        stmt = stmt.where(LedgerEntry.unit_id == unit_id)
    stmt = stmt.order_by(LedgerEntry.sequence.desc()).limit(1)
    return (await db.execute(stmt)).scalar_one_or_none()


async def append_entry(
    db: AsyncSession,
    *,
    building_id: UUID,
    unit_id: Optional[UUID],
    entry_type: LedgerEntryType,
    debit: Decimal = Decimal("0"),
    credit: Decimal = Decimal("0"),
    category: Optional[str] = None,
    description: Optional[str] = None,
    reference_id: Optional[UUID] = None,
) -> LedgerEntry:
    """
    Append one entry inside the caller's transaction. Never commits.
    balance_after = previous balance_after of the same stream + debit - credit.

    The building row is locked first, so appends to one building are serialized
    even while a stream is still empty; sequence counts per building and the
    (building_id, sequence) unique constraint backs it.
    """
    debit = to_decimal(debit)
    credit = to_decimal(credit)
    locked = (
        await db.execute(select(Building.id).where(Building.id == building_id).with_for_update())
    ).scalar_one_or_none()
    if locked is None:
        raise NotFoundError("Building not found")
    last = await _last_in_stream(db, building_id, unit_id)
    previous = to_decimal(last.balance_after) if last else Decimal("0")
    next_sequence = (
        await db.execute(
            select(func.coalesce(func.max(LedgerEntry.sequence), 0)).where(LedgerEntry.building_id == building_id)
        )
    ).scalar() + 1
    entry = LedgerEntry(
        sequence=next_sequence,
        building_id=building_id,
        unit_id=unit_id,
        entry_type=entry_type.value,
        category=category,
        description=description,
        reference_id=reference_id,
        debit=debit,
        credit=credit,
        balance_after=quantize_money(previous + debit - credit),
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_entries(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    unit_id: Optional[UUID] = None,
    entry_type: Optional[LedgerEntryType] = None,
) -> List[LedgerEntryResponse]:
    await ensure_building_access(db, current_user, building_id)
    stmt = select(LedgerEntry).where(LedgerEntry.building_id == building_id)
    if unit_id is not None:
        stmt = stmt.where(LedgerEntry.unit_id == unit_id)
    if entry_type is not None:
        stmt = stmt.where(LedgerEntry.entry_type == entry_type.value)
    stmt = stmt.order_by(LedgerEntry.sequence)
    result = await db.execute(stmt)
    return [LedgerEntryResponse.model_validate(e) for e in result.scalars().all()]


async def record_expense(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    payload: ExpenseCreate,
) -> LedgerEntryResponse:
    """Building-level expense (vendor invoice, utility bill): an Expense debit on the building stream."""
    building = await db.get(Building, building_id)
    if not building:
        raise NotFoundError("Building not found")
    await ensure_building_access(db, current_user, building_id)
    try:
        entry = await append_entry(
            db,
            building_id=building_id,
            unit_id=None,
            entry_type=LedgerEntryType.EXPENSE,
            debit=payload.amount,
            category=payload.category.value,
            description=(payload.description or "").strip() or None,
            reference_id=payload.reference_id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(entry)
    logger.info("Recorded %s expense of %s for building %s", payload.category.value, payload.amount, building_id)
    return LedgerEntryResponse.model_validate(entry)
