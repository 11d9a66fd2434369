"""Payment: one payment attempt (processor or manual) for a unit."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.core.enums import PaymentStatus
from hoa_backend.db.session import Base


class Payment(Base):
    """Payment against a unit. Only Succeeded payments carry allocations."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "status IN ('Pending','Succeeded','Failed','Cancelled')",
            name="chk_payment_status",
        ),
        CheckConstraint("amount > 0", name="chk_payment_amount"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    unit_id = Column(Uuid, ForeignKey("units.id", ondelete="RESTRICT"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date_utc = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    provider_reference = Column(String(200), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    # Target charge chosen by the payer; None means oldest-first across the unit
    target_charge_id = Column(Uuid, ForeignKey("unit_charges.id", ondelete="SET NULL"), nullable=True)
    # Amount held as advance credit after allocation ran out of outstanding charges
    unallocated_amount = Column(Numeric(12, 2), nullable=False, default=0)
    is_manual = Column(Boolean, nullable=False, default=False)
    manual_method = Column(String(20), nullable=True)  # BankTransfer, Cash, Check, Manual
    notes = Column(String(1000), nullable=True)
    entered_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    unit = relationship("Unit")
    user = relationship("User", foreign_keys=[user_id])
    entered_by = relationship("User", foreign_keys=[entered_by_user_id])
