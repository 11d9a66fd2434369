"""Buildings service: buildings, manager links and units that HOA charges are billed to."""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.auth.rbac import ensure_building_access, managed_building_ids
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.enums import UserRole
from hoa_backend.core.exceptions import ConflictError, NotFoundError, ValidationError
from hoa_backend.core.models import Building, BuildingManager, Unit, User

from .schemas import (
    BuildingCreate,
    BuildingResponse,
    UnitCreate,
    UnitResponse,
    UnitUpdate,
)

logger = logging.getLogger(__name__)


async def get_building_or_404(db: AsyncSession, building_id: UUID) -> Building:
    building = await db.get(Building, building_id)
    if not building:
        raise NotFoundError("Building not found")
    return building


async def create_building(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: BuildingCreate,
) -> BuildingResponse:
    building = Building(
        name=payload.name.strip(),
        address_line=payload.address_line,
        city=payload.city,
        notes=payload.notes,
    )
    db.add(building)
    await db.flush()
    # A manager creating a building manages it from then on
    if current_user.role == UserRole.MANAGER:
        db.add(BuildingManager(building_id=building.id, user_id=current_user.id))
    await db.commit()
    await db.refresh(building)
    return BuildingResponse.model_validate(building)


async def list_buildings(db: AsyncSession, current_user: CurrentUser) -> List[BuildingResponse]:
    stmt = select(Building).order_by(Building.name)
    allowed = await managed_building_ids(db, current_user)
    if allowed is not None:
        stmt = stmt.where(Building.id.in_(allowed))
    result = await db.execute(stmt)
    return [BuildingResponse.model_validate(b) for b in result.scalars().all()]


async def assign_manager(db: AsyncSession, building_id: UUID, user_id: UUID) -> None:
    await get_building_or_404(db, building_id)
    user = await db.get(User, user_id)
    if not user or user.role != UserRole.MANAGER.value:
        raise ValidationError("User is not a manager")
    try:
        db.add(BuildingManager(building_id=building_id, user_id=user_id))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("User already manages this building")


async def create_unit(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    payload: UnitCreate,
) -> UnitResponse:
    await get_building_or_404(db, building_id)
    await ensure_building_access(db, current_user, building_id)
    if payload.tenant_user_id is not None and not await db.get(User, payload.tenant_user_id):
        raise ValidationError("Unknown tenant user")
    try:
        unit = Unit(
            building_id=building_id,
            unit_number=payload.unit_number.strip(),
            floor=payload.floor,
            size_sqm=payload.size_sqm,
            owner_name=payload.owner_name,
            tenant_user_id=payload.tenant_user_id,
            is_active=True,
        )
        db.add(unit)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A unit with this number already exists in the building")
    await db.refresh(unit)
    return UnitResponse.model_validate(unit)


async def update_unit(
    db: AsyncSession,
    current_user: CurrentUser,
    unit_id: UUID,
    payload: UnitUpdate,
) -> UnitResponse:
    unit = await db.get(Unit, unit_id)
    if not unit:
        raise NotFoundError("Unit not found")
    await ensure_building_access(db, current_user, unit.building_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("tenant_user_id") is not None and not await db.get(User, changes["tenant_user_id"]):
        raise ValidationError("Unknown tenant user")
    for field, value in changes.items():
        setattr(unit, field, value)
    await db.commit()
    await db.refresh(unit)
    return UnitResponse.model_validate(unit)


async def list_units(
    db: AsyncSession,
    current_user: CurrentUser,
    building_id: UUID,
    active_only: bool = False,
) -> List[UnitResponse]:
    await get_building_or_404(db, building_id)
    await ensure_building_access(db, current_user, building_id)
    stmt = select(Unit).where(Unit.building_id == building_id)
    if active_only:
        stmt = stmt.where(Unit.is_active.is_(True))
    stmt = stmt.order_by(Unit.unit_number)
    result = await db.execute(stmt)
    return [UnitResponse.model_validate(u) for u in result.scalars().all()]
