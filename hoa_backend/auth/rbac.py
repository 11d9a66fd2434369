from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.auth.dependencies import get_current_user
from hoa_backend.auth.models import BuildingManager
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.enums import UserRole
from hoa_backend.core.exceptions import PermissionDeniedError
from hoa_backend.core.models import Unit


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given roles.

    Example:
        Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker


require_staff = require_roles(UserRole.ADMIN, UserRole.MANAGER)


async def ensure_building_access(db: AsyncSession, current_user: CurrentUser, building_id: UUID) -> None:
    """ADMIN sees every building; MANAGER only buildings linked through building_managers."""
    if current_user.role == UserRole.ADMIN:
        return
    if current_user.role == UserRole.MANAGER:
        linked = (
            await db.execute(
                select(BuildingManager.id).where(
                    BuildingManager.building_id == building_id,
                    BuildingManager.user_id == current_user.id,
                )
            )
        ).scalar_one_or_none()
        if linked:
            return
    raise PermissionDeniedError()


async def ensure_unit_access(db: AsyncSession, current_user: CurrentUser, unit: Unit) -> None:
    """Staff go through the building check; a TENANT only reaches units linked to them."""
    if current_user.role == UserRole.TENANT:
        if unit.tenant_user_id != current_user.id:
            raise PermissionDeniedError("You do not have access to this unit")
        return
    await ensure_building_access(db, current_user, unit.building_id)


async def managed_building_ids(db: AsyncSession, current_user: CurrentUser) -> Optional[list[UUID]]:
    """Building ids the caller manages; None means unrestricted (ADMIN)."""
    if current_user.role == UserRole.ADMIN:
        return None
    if current_user.role != UserRole.MANAGER:
        return []
    rows = await db.execute(
        select(BuildingManager.building_id).where(BuildingManager.user_id == current_user.id)
    )
    return [r[0] for r in rows.all()]
