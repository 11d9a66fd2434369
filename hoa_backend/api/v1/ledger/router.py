"""Ledger router: read the ledger, record building expenses."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.auth.rbac import require_staff
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.enums import LedgerEntryType
from hoa_backend.core.exceptions import ServiceError
from hoa_backend.db.session import get_db

from .schemas import ExpenseCreate, LedgerEntryResponse
from . import service

router = APIRouter(prefix="/api/v1/ledger", tags=["ledger"])


@router.get("/{building_id}", response_model=List[LedgerEntryResponse])
async def list_ledger_entries(
    building_id: UUID,
    unit_id: Optional[UUID] = Query(None),
    entry_type: Optional[LedgerEntryType] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> List[LedgerEntryResponse]:
    try:
        return await service.list_entries(db, current_user, building_id, unit_id=unit_id, entry_type=entry_type)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{building_id}/expenses",
    response_model=LedgerEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_expense(
    building_id: UUID,
    payload: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> LedgerEntryResponse:
    try:
        return await service.record_expense(db, current_user, building_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
