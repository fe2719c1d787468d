"""Database model for take-profit / stop-loss orders attached to positions"""
import enum
import uuid

from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, Index, text
from sqlalchemy.sql import func
from trading_room.database import Base


class TpSlOrderType(str, enum.Enum):
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"


class TpSlOrderStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXECUTED = "executed"


class TpSlOrder(Base):
    __tablename__ = "trading_room_tp_sl_orders"
    __table_args__ = (
        # At most one active TP and one active SL per position
        Index(
            "uq_tp_sl_active_per_position",
            "position_id",
            "order_type",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    position_id = Column(String(36), ForeignKey("trading_room_positions.id"), nullable=False, index=True)
    trading_room_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    order_type = Column(String(20), nullable=False)  # take_profit / stop_loss
    side = Column(String(10), nullable=False)  # side of the position it closes
    quantity = Column(Numeric(20, 8), nullable=False)
    trigger_price = Column(Numeric(20, 8), nullable=False)
    order_price = Column(Numeric(20, 8), nullable=True)
    status = Column(String(20), nullable=False, default=TpSlOrderStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    def __repr__(self):
        return (
            f"<TpSlOrder(id={self.id}, position_id={self.position_id}, "
            f"order_type={self.order_type}, status={self.status})>"
        )
