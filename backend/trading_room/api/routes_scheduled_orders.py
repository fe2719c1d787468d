import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from trading_room.database import get_db
from trading_room.deps.auth import get_current_user_id, verify_execute_secret
from trading_room.schemas.scheduled_order import (
    ExecuteRequest,
    ScheduledOrderAction,
    ScheduledOrderCreate,
    ScheduledOrderOut,
    TpSlUpdate,
)
from trading_room.services import scheduled_order_engine as engine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/trading-room/{room_id}/scheduled-orders", status_code=201)
def create_scheduled_order(
    room_id: str,
    payload: ScheduledOrderCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    order = engine.create_scheduled_order(db, room_id, user_id, payload.model_dump())
    return {"data": ScheduledOrderOut.model_validate(order)}


@router.get("/trading-room/{room_id}/scheduled-orders")
def list_scheduled_orders(
    room_id: str,
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    rows, count = engine.list_scheduled_orders(db, room_id, user_id, status=status, limit=limit, offset=offset)
    return {"data": [ScheduledOrderOut.model_validate(row) for row in rows], "count": count}


@router.patch("/trading-room/{room_id}/scheduled-orders/{order_id}")
def act_on_scheduled_order(
    room_id: str,
    order_id: str,
    payload: ScheduledOrderAction,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Dispatch on `action`: cancel, or execute scoped to the caller's own order."""
    if payload.action == "cancel":
        order = engine.cancel_scheduled_order(db, room_id, user_id, order_id)
        return {"data": ScheduledOrderOut.model_validate(order)}
    elif payload.action == "execute":
        return engine.execute_scheduled_order(
            db, room_id, order_id, current_price=payload.current_price, user_id=user_id
        )
    raise HTTPException(status_code=400, detail="Invalid action")


@router.delete("/trading-room/{room_id}/scheduled-orders/{order_id}")
def delete_scheduled_order(
    room_id: str,
    order_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    engine.delete_scheduled_order(db, room_id, user_id, order_id)
    return {"success": True}


@router.post(
    "/trading-room/{room_id}/scheduled-orders/{order_id}/execute",
    dependencies=[Depends(verify_execute_secret)],
)
def execute_scheduled_order(
    room_id: str,
    order_id: str,
    payload: Optional[ExecuteRequest] = Body(None),
    db: Session = Depends(get_db),
):
    """Trusted entry point for the scheduler; duplicate ticks are answered 200."""
    current_price = payload.current_price if payload else None
    return engine.execute_scheduled_order(db, room_id, order_id, current_price=current_price)


@router.patch("/trading-room/{room_id}/scheduled-orders/{order_id}/tpsl")
def update_scheduled_order_tp_sl(
    room_id: str,
    order_id: str,
    payload: TpSlUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    changes = payload.model_dump(exclude_unset=True)
    return engine.update_scheduled_order_tp_sl(db, room_id, user_id, order_id, changes)
