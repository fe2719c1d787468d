from trading_room.schemas.scheduled_order import (
    ScheduledOrderCreate,
    ScheduledOrderAction,
    ExecuteRequest,
    TpSlUpdate,
    ScheduledOrderOut,
)
from trading_room.schemas.open_order import OpenOrderCreate, OpenOrderAction, OpenOrderOut
from trading_room.schemas.position import PositionClose, PositionOpen, PositionOut, TpSlOrderOut

__all__ = [
    "ScheduledOrderCreate",
    "ScheduledOrderAction",
    "ExecuteRequest",
    "TpSlUpdate",
    "ScheduledOrderOut",
    "OpenOrderCreate",
    "OpenOrderAction",
    "OpenOrderOut",
    "PositionOpen",
    "PositionClose",
    "PositionOut",
    "TpSlOrderOut",
]
