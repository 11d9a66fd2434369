"""Buildings and units schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BuildingCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address_line: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class BuildingResponse(BaseModel):
    id: UUID
    name: str
    address_line: Optional[str] = None
    city: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class BuildingManagerAssign(BaseModel):
    user_id: UUID


class UnitCreate(BaseModel):
    unit_number: str = Field(..., min_length=1, max_length=20)
    floor: Optional[int] = None
    size_sqm: Optional[Decimal] = Field(None, gt=0)
    owner_name: Optional[str] = Field(None, max_length=200)
    tenant_user_id: Optional[UUID] = None


class UnitUpdate(BaseModel):
    floor: Optional[int] = None
    size_sqm: Optional[Decimal] = Field(None, gt=0)
    owner_name: Optional[str] = Field(None, max_length=200)
    tenant_user_id: Optional[UUID] = None
    is_active: Optional[bool] = None


class UnitResponse(BaseModel):
    id: UUID
    building_id: UUID
    unit_number: str
    floor: Optional[int] = None
    size_sqm: Optional[Decimal] = None
    owner_name: Optional[str] = None
    tenant_user_id: Optional[UUID] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
