from trading_room.models.trading_room import TradingRoom
from trading_room.models.scheduled_order import (
    ScheduledOrder,
    ScheduledOrderStatus,
    ScheduleType,
    OrderSide,
    OrderType,
    TriggerCondition,
)
from trading_room.models.open_order import OpenOrder, OpenOrderStatus
from trading_room.models.position import Position, PositionSide, PositionStatus
from trading_room.models.tp_sl_order import TpSlOrder, TpSlOrderType, TpSlOrderStatus

__all__ = [
    "TradingRoom",
    "ScheduledOrder",
    "ScheduledOrderStatus",
    "ScheduleType",
    "OrderSide",
    "OrderType",
    "TriggerCondition",
    "OpenOrder",
    "OpenOrderStatus",
    "Position",
    "PositionSide",
    "PositionStatus",
    "TpSlOrder",
    "TpSlOrderType",
    "TpSlOrderStatus",
]
