"""Payments router: pay charges, processor webhook, manual payment CRUD."""

import hmac
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.auth.dependencies import get_current_user
from hoa_backend.auth.rbac import require_staff
from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.core.config import settings
from hoa_backend.core.exceptions import ServiceError
from hoa_backend.db.session import get_db

from .schemas import (
    ChargePaymentResponse,
    ManualPaymentRequest,
    ManualPaymentResult,
    PaymentCreate,
    PaymentResponse,
    SettlePaymentRequest,
)
from . import service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    expected = settings.payment_webhook_secret
    if not expected:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment webhook is not configured")
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        return await service.record_payment(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/webhook",
    response_model=PaymentResponse,
    dependencies=[Depends(verify_webhook_secret)],
)
async def payment_webhook(
    payload: SettlePaymentRequest,
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    try:
        return await service.settle_payment(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/my", response_model=List[PaymentResponse])
async def list_my_payments(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[PaymentResponse]:
    return await service.list_my_payments(db, current_user)


@router.get("/unit/{unit_id}", response_model=List[PaymentResponse])
async def list_unit_payments(
    unit_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[PaymentResponse]:
    try:
        return await service.list_unit_payments(db, current_user, unit_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/charge/{charge_id}", response_model=List[ChargePaymentResponse])
async def list_charge_payments(
    charge_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ChargePaymentResponse]:
    try:
        return await service.list_charge_payments(db, current_user, charge_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Manual payments ---
@router.post(
    "/charges/{charge_id}/manual",
    response_model=ManualPaymentResult,
    status_code=status.HTTP_201_CREATED,
)
async def add_manual_payment(
    charge_id: UUID,
    payload: ManualPaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> ManualPaymentResult:
    try:
        return await service.add_manual_payment(db, current_user, charge_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/manual/{payment_id}", response_model=PaymentResponse)
async def edit_manual_payment(
    payment_id: UUID,
    payload: ManualPaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> PaymentResponse:
    try:
        return await service.edit_manual_payment(db, current_user, payment_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/manual/{payment_id}", response_model=PaymentResponse)
async def delete_manual_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> PaymentResponse:
    try:
        return await service.cancel_payment(db, current_user, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
