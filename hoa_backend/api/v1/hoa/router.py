"""HOA router: fee plans, charge generation, unit charges."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.auth.dependencies import get_current_user
from hoa_backend.auth.rbac import require_staff
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.enums import UnitChargeStatus
from hoa_backend.core.exceptions import ServiceError
from hoa_backend.db.session import get_db

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
from . import service

router = APIRouter(prefix="/api/v1/hoa", tags=["hoa"])


# --- Fee plans ---
@router.post("/plans", response_model=FeePlanResponse, status_code=status.HTTP_201_CREATED)
async def create_fee_plan(
    payload: FeePlanCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> FeePlanResponse:
    try:
        return await service.create_fee_plan(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/buildings/{building_id}/plans", response_model=List[FeePlanResponse])
async def list_fee_plans(
    building_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> List[FeePlanResponse]:
    try:
        return await service.list_fee_plans(db, current_user, building_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/plans/{plan_id}", response_model=FeePlanResponse)
async def update_fee_plan(
    plan_id: UUID,
    payload: FeePlanUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> FeePlanResponse:
    try:
        return await service.update_fee_plan(db, current_user, plan_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/plans/{plan_id}/generate/{period}", response_model=GenerateChargesResult)
async def generate_charges(
    plan_id: UUID,
    period: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> GenerateChargesResult:
    try:
        return await service.generate_charges(db, current_user, plan_id, period)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Charges ---
@router.get("/buildings/{building_id}/charges", response_model=List[UnitChargeResponse])
async def list_charges(
    building_id: UUID,
    period: Optional[str] = Query(None, description="YYYY-MM"),
    charge_status: Optional[UnitChargeStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> List[UnitChargeResponse]:
    try:
        return await service.list_charges(db, current_user, building_id, period, charge_status)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/charges/my", response_model=List[UnitChargeResponse])
async def list_my_charges(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[UnitChargeResponse]:
    return await service.list_my_charges(db, current_user)


@router.get("/charges/unit/{unit_id}", response_model=List[UnitChargeResponse])
async def list_unit_charges(
    unit_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[UnitChargeResponse]:
    try:
        return await service.list_unit_charges(db, current_user, unit_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/charges/{charge_id}", response_model=UnitChargeResponse)
async def get_charge(
    charge_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UnitChargeResponse:
    try:
        return await service.get_charge(db, current_user, charge_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/charges/manual", response_model=UnitChargeResponse, status_code=status.HTTP_201_CREATED)
async def create_manual_charge(
    payload: ManualChargeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> UnitChargeResponse:
    try:
        return await service.create_manual_charge(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/charges/{charge_id}/adjust", response_model=UnitChargeResponse)
async def adjust_charge(
    charge_id: UUID,
    payload: AdjustChargeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> UnitChargeResponse:
    try:
        return await service.adjust_charge(db, current_user, charge_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/charges/{charge_id}/cancel", response_model=UnitChargeResponse)
async def cancel_charge(
    charge_id: UUID,
    payload: CancelChargeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> UnitChargeResponse:
    try:
        return await service.cancel_charge(db, current_user, charge_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/buildings/{building_id}/refresh-status", response_model=RefreshStatusResult)
async def refresh_charge_statuses(
    building_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> RefreshStatusResult:
    try:
        return await service.refresh_charge_statuses(db, current_user, building_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
