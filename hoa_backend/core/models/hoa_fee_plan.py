"""HOA fee plan: billing rule producing one charge per unit per period."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.core.enums import CalculationMethod
from hoa_backend.db.session import Base


class HOAFeePlan(Base):
    """
    Fee plan per building. Charges snapshot their amount at generation time,
    so editing a plan never alters charges that were already generated.
    """

    __tablename__ = "hoa_fee_plans"
    __table_args__ = (
        CheckConstraint(
            "calculation_method IN ('FixedPerUnit','BySqm','ManualPerUnit')",
            name="chk_hoa_fee_plan_calculation_method",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    building_id = Column(Uuid, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    calculation_method = Column(String(20), nullable=False, default=CalculationMethod.FIXED_PER_UNIT.value)
    amount_per_sqm = Column(Numeric(12, 2), nullable=True)
    fixed_amount_per_unit = Column(Numeric(12, 2), nullable=True)
    effective_from = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    building = relationship("Building")
