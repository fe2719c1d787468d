import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from trading_room.database import get_db
from trading_room.deps.auth import get_current_user_id
from trading_room.schemas.open_order import OpenOrderAction, OpenOrderCreate, OpenOrderOut
from trading_room.schemas.position import TpSlOrderOut
from trading_room.schemas.scheduled_order import TpSlUpdate
from trading_room.services import open_orders

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/trading-room/{room_id}/open-orders")
def list_open_orders(
    room_id: str,
    status: str = Query("open"),
    symbol: Optional[str] = Query(None),
    side: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    rows = open_orders.list_open_orders(db, room_id, user_id, status=status, symbol=symbol, side=side)
    return {"data": [OpenOrderOut.model_validate(row) for row in rows]}


@router.post("/trading-room/{room_id}/open-orders", status_code=201)
def create_open_order(
    room_id: str,
    payload: OpenOrderCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    order = open_orders.create_open_order(db, room_id, user_id, **payload.model_dump())
    return {"id": order.id}


@router.patch("/trading-room/{room_id}/open-orders")
def act_on_open_order(
    room_id: str,
    payload: OpenOrderAction,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    if payload.action == "cancel":
        return open_orders.cancel_open_order(db, room_id, user_id, payload.order_id)
    elif payload.action == "fill":
        result = open_orders.fill_open_order(
            db,
            room_id,
            user_id,
            payload.order_id,
            fill_price=payload.fill_price,
            bid=payload.bid,
            ask=payload.ask,
        )
        if result.get("tpSlOrders") is not None:
            result["tpSlOrders"] = [TpSlOrderOut.model_validate(o) for o in result["tpSlOrders"]]
        return result
    raise HTTPException(status_code=400, detail="Unknown action")


@router.patch("/trading-room/{room_id}/open-orders/{order_id}/tpsl")
def update_open_order_tp_sl(
    room_id: str,
    order_id: str,
    payload: TpSlUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    changes = payload.model_dump(exclude_unset=True)
    return open_orders.update_open_order_tp_sl(db, room_id, user_id, order_id, changes)
