"""Database model for trading rooms (simulated balance holder)"""
import uuid

from sqlalchemy import Column, String, DateTime, Numeric
from sqlalchemy.sql import func
from trading_room.database import Base


class TradingRoom(Base):
    __tablename__ = "trading_rooms"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=True)
    # Debited only by position creation, credited only by position settlement
    virtual_balance = Column(Numeric(20, 8), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<TradingRoom(id={self.id}, virtual_balance={self.virtual_balance})>"
