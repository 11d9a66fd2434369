"""Buildings router: buildings, manager links, units."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.auth.rbac import require_roles, require_staff
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.enums import UserRole
from hoa_backend.core.exceptions import ServiceError
from hoa_backend.db.session import get_db

from .schemas import (
    BuildingCreate,
    BuildingManagerAssign,
    BuildingResponse,
    UnitCreate,
    UnitResponse,
    UnitUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/buildings", tags=["buildings"])


@router.post("", response_model=BuildingResponse, status_code=status.HTTP_201_CREATED)
async def create_building(
    payload: BuildingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> BuildingResponse:
    return await service.create_building(db, current_user, payload)


@router.get("", response_model=List[BuildingResponse])
async def list_buildings(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> List[BuildingResponse]:
    return await service.list_buildings(db, current_user)


@router.post("/{building_id}/managers", status_code=status.HTTP_204_NO_CONTENT)
async def assign_manager(
    building_id: UUID,
    payload: BuildingManagerAssign,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(UserRole.ADMIN)),
) -> None:
    try:
        await service.assign_manager(db, building_id, payload.user_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{building_id}/units", response_model=UnitResponse, status_code=status.HTTP_201_CREATED)
async def create_unit(
    building_id: UUID,
    payload: UnitCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> UnitResponse:
    try:
        return await service.create_unit(db, current_user, building_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{building_id}/units", response_model=List[UnitResponse])
async def list_units(
    building_id: UUID,
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> List[UnitResponse]:
    try:
        return await service.list_units(db, current_user, building_id, active_only=active_only)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/units/{unit_id}", response_model=UnitResponse)
async def update_unit(
    unit_id: UUID,
    payload: UnitUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> UnitResponse:
    try:
        return await service.update_unit(db, current_user, unit_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
