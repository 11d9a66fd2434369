import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.db.session import Base


class User(Base):
    """Portal user: ADMIN (all buildings), MANAGER (linked buildings) or TENANT (own units)."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    managed_buildings = relationship(
        "BuildingManager", back_populates="user", cascade="all, delete-orphan"
    )


class BuildingManager(Base):
    """Link table: which buildings a MANAGER user may act on."""

    __tablename__ = "building_managers"
    __table_args__ = (
        UniqueConstraint("building_id", "user_id", name="uq_building_manager"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    building_id = Column(Uuid, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="managed_buildings")
    building = relationship("Building")
