"""Reports router: collection status, aging, income vs expenses, manager dashboard."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.auth.rbac import require_staff
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.exceptions import ServiceError
from hoa_backend.db.session import get_db

from .schemas import (
    AgingReport,
    CollectionStatusReport,
    CollectionSummary,
    CollectionUnitDetail,
    IncomeExpensesReport,
)
from . import service

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.get("/collection-status/{building_id}", response_model=CollectionStatusReport)
async def collection_status(
    building_id: UUID,
    period: Optional[str] = Query(None, description="YYYY-MM, defaults to the current month"),
    include_not_generated: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> CollectionStatusReport:
    try:
        return await service.collection_status(
            db, current_user, building_id, period, include_not_generated=include_not_generated
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/collection-status/{building_id}/unit/{unit_id}", response_model=CollectionUnitDetail)
async def collection_unit_detail(
    building_id: UUID,
    unit_id: UUID,
    period: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> CollectionUnitDetail:
    try:
        return await service.collection_unit_detail(db, current_user, building_id, unit_id, period)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/aging/{building_id}", response_model=AgingReport)
async def aging_report(
    building_id: UUID,
    as_of: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> AgingReport:
    try:
        return await service.aging_report(db, current_user, building_id, as_of)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/income-expenses/{building_id}", response_model=IncomeExpensesReport)
async def income_expenses(
    building_id: UUID,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> IncomeExpensesReport:
    try:
        return await service.income_expenses(db, current_user, building_id, from_date, to_date)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/dashboard/collection", response_model=List[CollectionSummary])
async def dashboard_collection(
    period: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> List[CollectionSummary]:
    try:
        return await service.dashboard_collection(db, current_user, period)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
