"""Unit charge: one billing-period obligation for one unit."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.core.enums import UnitChargeStatus
from hoa_backend.db.session import Base


class UnitCharge(Base):
    """
    amount_paid is never stored: it is the sum of this charge's allocations.
    status is derived from (amount_due, amount_paid, due_date, is_cancelled) and
    rewritten by the status recomputation on every allocation change.
    """

    __tablename__ = "unit_charges"
    __table_args__ = (
        UniqueConstraint("unit_id", "period", name="uq_unit_charge_unit_period"),
        CheckConstraint(
            "status IN ('Pending','PartiallyPaid','Paid','Overdue','Cancelled')",
            name="chk_unit_charge_status",
        ),
        CheckConstraint("amount_due >= 0", name="chk_unit_charge_amount_due"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    unit_id = Column(Uuid, ForeignKey("units.id", ondelete="RESTRICT"), nullable=False, index=True)
    fee_plan_id = Column(Uuid, ForeignKey("hoa_fee_plans.id", ondelete="RESTRICT"), nullable=False)
    period = Column(String(7), nullable=False)  # YYYY-MM
    amount_due = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=UnitChargeStatus.PENDING.value)
    is_cancelled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    unit = relationship("Unit")
    fee_plan = relationship("HOAFeePlan")
