"""Ledger entry: append-only debit/credit trail per building and unit."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.db.session import Base


class LedgerEntry(Base):
    """
    Immutable once written. balance_after is the running balance of the entry's
    stream (the unit when unit_id is set, else the building's unit-less stream)
    at insertion time: previous balance + debit - credit.
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint(
            "entry_type IN ('Charge','Payment','Adjustment','Expense')",
            name="chk_ledger_entry_type",
        ),
        UniqueConstraint("building_id", "sequence", name="uq_ledger_building_sequence"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Insertion order within the building; UUID ids carry none
    sequence = Column(Integer, nullable=False, index=True)
    building_id = Column(Uuid, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True)
    unit_id = Column(Uuid, ForeignKey("units.id", ondelete="SET NULL"), nullable=True, index=True)
    entry_type = Column(String(20), nullable=False)
    category = Column(String(50), nullable=True)
    description = Column(String(500), nullable=True)
    reference_id = Column(Uuid, nullable=True)  # charge / payment / expense this entry records
    debit = Column(Numeric(12, 2), nullable=False, default=0)
    credit = Column(Numeric(12, 2), nullable=False, default=0)
    balance_after = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    building = relationship("Building")
    unit = relationship("Unit")
