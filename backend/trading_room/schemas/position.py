from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PositionOpen(BaseModel):
    symbol: str
    side: str  # "long" / "short" (buy / sell accepted)
    quantity: float
    entry_price: float = Field(alias="entryPrice")
    leverage: float = 1
    tp_enabled: Optional[bool] = Field(default=False, alias="tpEnabled")
    sl_enabled: Optional[bool] = Field(default=False, alias="slEnabled")
    take_profit_price: Optional[float] = Field(default=None, alias="takeProfitPrice")
    stop_loss_price: Optional[float] = Field(default=None, alias="stopLossPrice")

    class Config:
        populate_by_name = True


class PositionClose(BaseModel):
    position_id: str = Field(alias="positionId")
    close_price: float = Field(alias="closePrice")
    fee_rate: Optional[float] = Field(default=None, alias="feeRate")

    class Config:
        populate_by_name = True


class PositionOut(BaseModel):
    id: str
    room_id: str
    user_id: str
    symbol: str
    side: str
    order_type: str
    quantity: float
    size: float
    entry_price: float
    initial_margin: float
    leverage: float
    fee: float
    liquidation_price: float
    status: str
    opened_at: Optional[datetime]
    closed_at: Optional[datetime]
    close_price: Optional[float]
    pnl: Optional[float]
    tp_enabled: bool
    sl_enabled: bool
    take_profit_price: Optional[float]
    stop_loss_price: Optional[float]
    tp_order_id: Optional[str]
    tp_status: Optional[str]
    sl_order_id: Optional[str]
    sl_status: Optional[str]

    class Config:
        from_attributes = True


class TpSlOrderOut(BaseModel):
    id: str
    position_id: str
    trading_room_id: str
    user_id: str
    order_type: str
    side: str
    quantity: float
    trigger_price: float
    order_price: Optional[float]
    status: str
    created_at: Optional[datetime]

    class Config:
        from_attributes = True
