from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OpenOrderCreate(BaseModel):
    symbol: str
    side: str  # "long" / "short" (buy / sell accepted)
    limit_price: float = Field(alias="limitPrice")
    quantity: float
    leverage: float = 1
    time_in_force: str = Field(default="GTC", alias="timeInForce")
    tp_enabled: Optional[bool] = Field(default=False, alias="tpEnabled")
    sl_enabled: Optional[bool] = Field(default=False, alias="slEnabled")
    take_profit_price: Optional[float] = Field(default=None, alias="takeProfitPrice")
    stop_loss_price: Optional[float] = Field(default=None, alias="stopLossPrice")

    class Config:
        populate_by_name = True


class OpenOrderAction(BaseModel):
    action: str  # "cancel" or "fill"
    order_id: str = Field(alias="orderId")
    fill_price: Optional[float] = Field(default=None, alias="fillPrice")
    bid: Optional[float] = None
    ask: Optional[float] = None

    class Config:
        populate_by_name = True


class OpenOrderOut(BaseModel):
    id: str
    room_id: str
    user_id: str
    symbol: str
    side: str
    order_type: str
    limit_price: float
    quantity: float
    leverage: float
    status: str
    time_in_force: str
    tp_enabled: bool
    sl_enabled: bool
    take_profit_price: Optional[float]
    stop_loss_price: Optional[float]
    created_at: Optional[datetime]
    filled_at: Optional[datetime]
    position_id: Optional[str]

    class Config:
        from_attributes = True
