import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.db.session import Base


class Unit(Base):
    """Apartment / unit inside a building. size_sqm drives BySqm fee plans."""

    __tablename__ = "units"
    __table_args__ = (
        UniqueConstraint("building_id", "unit_number", name="uq_unit_building_number"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    building_id = Column(Uuid, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True)
    unit_number = Column(String(20), nullable=False)
    floor = Column(Integer, nullable=True)
    size_sqm = Column(Numeric(10, 2), nullable=True)
    owner_name = Column(String(200), nullable=True)
    # Resident portal user linked to this unit
    tenant_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    building = relationship("Building", back_populates="units")
    tenant_user = relationship("User", foreign_keys=[tenant_user_id])
