"""Database model for scheduled (time- or price-triggered) orders"""
import enum
import uuid

from sqlalchemy import Column, String, DateTime, Numeric, Integer, Boolean
from sqlalchemy.sql import func
from trading_room.database import Base


class ScheduledOrderStatus(str, enum.Enum):
    PENDING = "pending"
    WATCHING = "watching"
    EXECUTED = "executed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ScheduleType(str, enum.Enum):
    TIME_BASED = "time_based"
    PRICE_BASED = "price_based"


class OrderSide(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, enum.Enum):
    MARKET = "market"
    LIMIT = "limit"


class TriggerCondition(str, enum.Enum):
    ABOVE = "above"
    BELOW = "below"


# Statuses an order can still be claimed, cancelled or edited from
ACTIVE_STATUSES = (ScheduledOrderStatus.PENDING.value, ScheduledOrderStatus.WATCHING.value)
TERMINAL_STATUSES = (
    ScheduledOrderStatus.EXECUTED.value,
    ScheduledOrderStatus.CANCELLED.value,
    ScheduledOrderStatus.FAILED.value,
)


class ScheduledOrder(Base):
    __tablename__ = "trading_room_scheduled_orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(50), nullable=False)
    side = Column(String(10), nullable=False)  # buy / sell
    order_type = Column(String(10), nullable=False)  # market / limit
    quantity = Column(Numeric(20, 8), nullable=False)
    price = Column(Numeric(20, 8), nullable=True)  # limit price
    leverage = Column(Numeric(10, 2), nullable=False, default=1)

    schedule_type = Column(String(20), nullable=False)  # time_based / price_based
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    trigger_condition = Column(String(10), nullable=True)  # above / below
    trigger_price = Column(Numeric(20, 8), nullable=True)
    current_price = Column(Numeric(20, 8), nullable=True)  # market price seen at creation

    status = Column(String(20), nullable=False, default=ScheduledOrderStatus.PENDING.value, index=True)
    # Optimistic lock: bumped by every execution claim
    lock_version = Column(Integer, nullable=False, default=0)
    execution_price = Column(Numeric(20, 8), nullable=True)
    executed_at = Column(DateTime(timezone=True), nullable=True)

    tp_enabled = Column(Boolean, nullable=False, default=False)
    sl_enabled = Column(Boolean, nullable=False, default=False)
    take_profit_price = Column(Numeric(20, 8), nullable=True)
    stop_loss_price = Column(Numeric(20, 8), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return (
            f"<ScheduledOrder(id={self.id}, symbol={self.symbol}, side={self.side}, "
            f"schedule_type={self.schedule_type}, status={self.status})>"
        )
