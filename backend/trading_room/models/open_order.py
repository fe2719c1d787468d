"""Database model for resting limit orders in a room's book"""
import enum
import uuid

from sqlalchemy import Column, String, DateTime, Numeric, Boolean
from sqlalchemy.sql import func
from trading_room.database import Base


class OpenOrderStatus(str, enum.Enum):
    OPEN = "open"
    FILLED = "filled"
    CANCELLED = "cancelled"


class OpenOrder(Base):
    __tablename__ = "trading_room_open_orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(50), nullable=False, index=True)
    side = Column(String(10), nullable=False)  # long / short
    order_type = Column(String(10), nullable=False, default="limit")
    limit_price = Column(Numeric(20, 8), nullable=False)
    quantity = Column(Numeric(20, 8), nullable=False)
    leverage = Column(Numeric(10, 2), nullable=False, default=1)
    # Never returns to "open" once it has left it
    status = Column(String(20), nullable=False, default=OpenOrderStatus.OPEN.value, index=True)
    time_in_force = Column(String(10), nullable=False, default="GTC")

    tp_enabled = Column(Boolean, nullable=False, default=False)
    sl_enabled = Column(Boolean, nullable=False, default=False)
    take_profit_price = Column(Numeric(20, 8), nullable=True)
    stop_loss_price = Column(Numeric(20, 8), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    filled_at = Column(DateTime(timezone=True), nullable=True)
    position_id = Column(String(36), nullable=True)

    def __repr__(self):
        return f"<OpenOrder(id={self.id}, symbol={self.symbol}, side={self.side}, status={self.status})>"
