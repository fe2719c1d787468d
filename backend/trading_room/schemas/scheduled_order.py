from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ScheduledOrderCreate(BaseModel):
    # Fields are optional here; the engine reports missing ones as a list of errors
    symbol: Optional[str] = None
    side: Optional[str] = None  # "buy" or "sell"
    order_type: Optional[str] = None  # "market" or "limit"
    quantity: Optional[float] = None
    price: Optional[float] = None
    leverage: Optional[float] = None
    schedule_type: Optional[str] = None  # "time_based" or "price_based"
    scheduled_at: Optional[datetime] = None
    trigger_condition: Optional[str] = None  # "above" or "below"
    trigger_price: Optional[float] = None
    current_price: Optional[float] = None
    tp_enabled: Optional[bool] = False
    sl_enabled: Optional[bool] = False
    take_profit_price: Optional[float] = None
    stop_loss_price: Optional[float] = None


class ScheduledOrderAction(BaseModel):
    action: str  # "cancel" or "execute"
    current_price: Optional[float] = None


class ExecuteRequest(BaseModel):
    current_price: Optional[float] = None


class TpSlUpdate(BaseModel):
    tp_enabled: Optional[bool] = None
    sl_enabled: Optional[bool] = None
    take_profit_price: Optional[float] = None
    stop_loss_price: Optional[float] = None


class ScheduledOrderOut(BaseModel):
    id: str
    room_id: str
    user_id: str
    symbol: str
    side: str
    order_type: str
    quantity: float
    price: Optional[float]
    leverage: float
    schedule_type: str
    scheduled_at: Optional[datetime]
    trigger_condition: Optional[str]
    trigger_price: Optional[float]
    current_price: Optional[float]
    status: str
    execution_price: Optional[float]
    executed_at: Optional[datetime]
    tp_enabled: bool
    sl_enabled: bool
    take_profit_price: Optional[float]
    stop_loss_price: Optional[float]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True
