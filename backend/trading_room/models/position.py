"""Database model for simulated positions"""
import enum
import uuid

from sqlalchemy import Column, String, DateTime, Numeric, Boolean
from sqlalchemy.sql import func
from trading_room.database import Base


class PositionSide(str, enum.Enum):
    LONG = "long"
    SHORT = "short"


class PositionStatus(str, enum.Enum):
    FILLED = "filled"
    CLOSED = "closed"


class Position(Base):
    __tablename__ = "trading_room_positions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(50), nullable=False, index=True)
    side = Column(String(10), nullable=False)  # long / short
    order_type = Column(String(10), nullable=False, default="market")

    # Entry fields are written once at creation
    quantity = Column(Numeric(20, 8), nullable=False)
    size = Column(Numeric(20, 8), nullable=False)
    entry_price = Column(Numeric(20, 8), nullable=False)
    initial_margin = Column(Numeric(20, 8), nullable=False)
    leverage = Column(Numeric(10, 2), nullable=False)
    fee = Column(Numeric(20, 8), nullable=False)
    liquidation_price = Column(Numeric(20, 8), nullable=False)

    status = Column(String(20), nullable=False, default=PositionStatus.FILLED.value, index=True)
    opened_at = Column(DateTime(timezone=True), server_default=func.now())
    closed_at = Column(DateTime(timezone=True), nullable=True)
    close_price = Column(Numeric(20, 8), nullable=True)
    pnl = Column(Numeric(20, 8), nullable=True)

    # TP/SL linkage: order ids are set at most once
    tp_enabled = Column(Boolean, nullable=False, default=False)
    sl_enabled = Column(Boolean, nullable=False, default=False)
    take_profit_price = Column(Numeric(20, 8), nullable=True)
    stop_loss_price = Column(Numeric(20, 8), nullable=True)
    tp_order_id = Column(String(36), nullable=True)
    tp_status = Column(String(20), nullable=True)
    sl_order_id = Column(String(36), nullable=True)
    sl_status = Column(String(20), nullable=True)

    def __repr__(self):
        return (
            f"<Position(id={self.id}, symbol={self.symbol}, side={self.side}, "
            f"qty={self.quantity}, entry={self.entry_price})>"
        )
