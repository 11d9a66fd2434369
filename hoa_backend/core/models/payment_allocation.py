import uuid

from sqlalchemy import CheckConstraint, Column, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.db.session import Base


class PaymentAllocation(Base):
    """Portion of a payment applied to one unit charge."""

    __tablename__ = "payment_allocations"
    __table_args__ = (
        CheckConstraint("allocated_amount > 0", name="chk_payment_allocation_amount"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    unit_charge_id = Column(Uuid, ForeignKey("unit_charges.id", ondelete="RESTRICT"), nullable=False, index=True)
    allocated_amount = Column(Numeric(12, 2), nullable=False)

    payment = relationship("Payment")
    unit_charge = relationship("UnitCharge")
