import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from trading_room.database import get_db
from trading_room.deps.auth import get_current_user_id
from trading_room.schemas.position import PositionClose, PositionOpen, PositionOut, TpSlOrderOut
from trading_room.services import position_service, tp_sl_order_creator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/trading-room/{room_id}/positions")
def list_positions(
    room_id: str,
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    rows = position_service.list_positions(db, room_id, user_id, status=status)
    return {"data": [PositionOut.model_validate(row) for row in rows]}


@router.post("/trading-room/{room_id}/positions/open")
def open_position(
    room_id: str,
    payload: PositionOpen,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    result = position_service.open_position_for_user(db, room_id, user_id, **payload.model_dump())
    position = result.position
    return {
        "id": position.id,
        "orderValue": float(position.size),
        "openFee": float(position.fee),
        "initialMargin": float(position.initial_margin),
        "totalCost": float(position.initial_margin + position.fee),
        "virtualBalance": float(result.virtual_balance),
        "position": PositionOut.model_validate(position),
        "tpSlOrders": [TpSlOrderOut.model_validate(o) for o in result.tp_sl_orders],
    }


@router.post("/trading-room/{room_id}/positions/close")
def close_position(
    room_id: str,
    payload: PositionClose,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    result = position_service.close_position(
        db, room_id, user_id, payload.position_id, payload.close_price, fee_rate=payload.fee_rate
    )
    return {
        "pnl": float(result.pnl),
        "closeFee": float(result.close_fee),
        "settlement": float(result.settlement),
        "position": PositionOut.model_validate(result.position),
    }


@router.get("/trading-room/{room_id}/tp-sl-orders")
def list_tp_sl_orders(
    room_id: str,
    position_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    rows = tp_sl_order_creator.list_tp_sl_orders(db, room_id, user_id, position_id=position_id)
    return {"data": [TpSlOrderOut.model_validate(row) for row in rows]}


@router.delete("/trading-room/{room_id}/tp-sl-orders/{order_id}")
def cancel_tp_sl_order(
    room_id: str,
    order_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    order = tp_sl_order_creator.cancel_tp_sl_order(db, room_id, user_id, order_id)
    return {"data": TpSlOrderOut.model_validate(order)}
