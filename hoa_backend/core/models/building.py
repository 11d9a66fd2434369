import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from hoa_backend.db.session import Base


class Building(Base):
    __tablename__ = "buildings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    address_line = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    notes = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    units = relationship("Unit", back_populates="building", cascade="all, delete-orphan")
