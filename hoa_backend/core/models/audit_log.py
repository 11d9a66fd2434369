"""Financial audit log: who changed which charge or payment, before and after."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.db.session import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action = Column(String(50), nullable=False)  # ManualPayment, EditManualPayment, CancelManualPayment, AdjustCharge, ...
    entity_name = Column(String(50), nullable=False)
    entity_id = Column(Uuid, nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    performed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    performed_by_user = relationship("User", foreign_keys=[performed_by])
