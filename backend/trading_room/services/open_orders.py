"""Resting limit orders of a trading room: create, list, cancel, fill and TP/SL edits.

A fill claims the row first (open -> filled, conditioned on status = open) and
only then opens the position, inside the same transaction. Losing the claim is
a no-op, so a matcher that fires twice never produces two positions.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from trading_room.core.errors import Forbidden, InvalidEntryPrice, NotFound, ValidationFailed
from trading_room.core.logging_config import get_order_logger
from trading_room.models.open_order import OpenOrder, OpenOrderStatus
from trading_room.models.position import PositionSide
from trading_room.models.tp_sl_order import TpSlOrder
from trading_room.services.margin_calculator import MAX_LEVERAGE, to_decimal
from trading_room.services.position_service import open_position, position_side_for
from trading_room.services.tp_sl_order_creator import build_tp_sl_changes, is_valid_trigger

logger = logging.getLogger(__name__)
order_logger = get_order_logger()


def list_open_orders(
    db: Session,
    room_id: str,
    user_id: str,
    status: str = OpenOrderStatus.OPEN.value,
    symbol: Optional[str] = None,
    side: Optional[str] = None,
) -> List[OpenOrder]:
    query = db.query(OpenOrder).filter(
        OpenOrder.room_id == room_id,
        OpenOrder.user_id == user_id,
        OpenOrder.status == status,
    )
    if symbol:
        query = query.filter(OpenOrder.symbol == symbol)
    if side:
        query = query.filter(OpenOrder.side == side)
    return query.order_by(OpenOrder.created_at.desc()).all()


def build_open_order(
    room_id: str,
    user_id: str,
    symbol: str,
    side: str,
    limit_price,
    quantity,
    leverage=1,
    time_in_force: str = "GTC",
    tp_enabled: Optional[bool] = False,
    sl_enabled: Optional[bool] = False,
    take_profit_price=None,
    stop_loss_price=None,
) -> OpenOrder:
    """Validate and build (but do not add) an OpenOrder; `side` may be buy/sell or long/short."""
    errors = []
    price = to_decimal(limit_price) if limit_price is not None else Decimal("NaN")
    if not price.is_finite() or price <= 0:
        errors.append("limitPrice must be greater than 0")
    qty = to_decimal(quantity) if quantity is not None else Decimal("NaN")
    if not qty.is_finite() or qty <= 0:
        errors.append("quantity must be greater than 0")
    lev = to_decimal(leverage if leverage is not None else 1)
    if not lev.is_finite() or lev < 1:
        errors.append("leverage must be at least 1")
    elif lev > MAX_LEVERAGE:
        errors.append(f"leverage cannot exceed {MAX_LEVERAGE}")
    try:
        position_side = position_side_for(side)
    except ValueError:
        errors.append("Invalid side")
        position_side = None
    if errors:
        raise ValidationFailed(errors)

    tp_on = is_valid_trigger(tp_enabled, take_profit_price)
    sl_on = is_valid_trigger(sl_enabled, stop_loss_price)
    return OpenOrder(
        room_id=room_id,
        user_id=user_id,
        symbol=symbol,
        side=position_side.value,
        order_type="limit",
        limit_price=price,
        quantity=qty,
        leverage=lev,
        status=OpenOrderStatus.OPEN.value,
        time_in_force=time_in_force or "GTC",
        tp_enabled=bool(tp_enabled),
        sl_enabled=bool(sl_enabled),
        take_profit_price=to_decimal(take_profit_price) if tp_on else None,
        stop_loss_price=to_decimal(stop_loss_price) if sl_on else None,
    )


def create_open_order(db: Session, room_id: str, user_id: str, **fields) -> OpenOrder:
    order = build_open_order(room_id, user_id, **fields)
    db.add(order)
    db.commit()
    db.refresh(order)
    order_logger.info(
        f"[OPEN_ORDER] Created {order.side} {order.symbol} limit={order.limit_price} "
        f"qty={order.quantity} id={order.id}"
    )
    return order


def _get_room_order(db: Session, room_id: str, user_id: str, order_id: str) -> OpenOrder:
    order = db.query(OpenOrder).filter(OpenOrder.id == order_id, OpenOrder.room_id == room_id).first()
    if order is None:
        raise NotFound("Order not found")
    if order.user_id != user_id:
        raise Forbidden("Forbidden")
    return order


def cancel_open_order(db: Session, room_id: str, user_id: str, order_id: str) -> Dict[str, Any]:
    _get_room_order(db, room_id, user_id, order_id)
    cancelled = db.query(OpenOrder).filter(
        OpenOrder.id == order_id,
        OpenOrder.status == OpenOrderStatus.OPEN.value,
    ).update({OpenOrder.status: OpenOrderStatus.CANCELLED.value}, synchronize_session=False)
    db.commit()
    if cancelled:
        order_logger.info(f"[OPEN_ORDER] Cancelled {order_id}")
    else:
        logger.info(f"[OPEN_ORDER] Cancel of {order_id} ignored, order is no longer open")
    return {"ok": True}


def resolve_fill_price(order: OpenOrder, fill_price=None, bid=None, ask=None) -> Decimal:
    """ask for long / bid for short when given, else a positive fillPrice, else the limit price."""
    preferred = ask if order.side == PositionSide.LONG.value else bid
    if preferred is not None:
        return to_decimal(preferred)
    if fill_price is not None:
        candidate = to_decimal(fill_price)
        if candidate.is_finite() and candidate > 0:
            return candidate
    return to_decimal(order.limit_price)


def fill_open_order(
    db: Session,
    room_id: str,
    user_id: str,
    order_id: str,
    fill_price=None,
    bid=None,
    ask=None,
) -> Dict[str, Any]:
    """
    Fill a resting limit order into a position.

    Returns {"ok": True} without side-effects when the order is no longer open.

    Raises:
        InvalidEntryPrice / InsufficientBalance: nothing is written
    """
    order = _get_room_order(db, room_id, user_id, order_id)
    if order.status != OpenOrderStatus.OPEN.value:
        return {"ok": True}

    entry_price = resolve_fill_price(order, fill_price, bid, ask)
    if not entry_price.is_finite() or entry_price <= 0:
        raise InvalidEntryPrice("Invalid entry price")

    claimed = db.query(OpenOrder).filter(
        OpenOrder.id == order_id,
        OpenOrder.status == OpenOrderStatus.OPEN.value,
    ).update(
        {OpenOrder.status: OpenOrderStatus.FILLED.value, OpenOrder.filled_at: datetime.now(timezone.utc)},
        synchronize_session=False,
    )
    if claimed == 0:
        db.rollback()
        logger.info(f"[OPEN_ORDER] Fill of {order_id} lost the claim, order already left 'open'")
        return {"ok": True}

    try:
        position = open_position(
            db,
            room_id=room_id,
            user_id=user_id,
            symbol=order.symbol,
            side=order.side,
            quantity=order.quantity,
            leverage=order.leverage,
            entry_price=entry_price,
            order_type="limit",
            tp_enabled=order.tp_enabled,
            sl_enabled=order.sl_enabled,
            take_profit_price=order.take_profit_price,
            stop_loss_price=order.stop_loss_price,
        )
        db.query(OpenOrder).filter(OpenOrder.id == order_id).update(
            {OpenOrder.position_id: position.id}, synchronize_session=False
        )
        position_id = position.id
        db.commit()
    except Exception:
        # Undo the claim together with any partial position writes
        db.rollback()
        raise

    tp_sl_orders = db.query(TpSlOrder).filter(TpSlOrder.position_id == position_id).all()
    order_logger.info(f"[OPEN_ORDER] Filled {order_id} @ {entry_price} -> position {position_id}")
    return {"ok": True, "positionId": position_id, "tpSlOrders": tp_sl_orders}


def update_open_order_tp_sl(
    db: Session, room_id: str, user_id: str, order_id: str, changes: Dict[str, Any]
) -> Dict[str, Any]:
    order = db.query(OpenOrder).filter(
        OpenOrder.id == order_id,
        OpenOrder.room_id == room_id,
        OpenOrder.user_id == user_id,
        OpenOrder.status == OpenOrderStatus.OPEN.value,
    ).first()
    if order is None:
        raise NotFound("Order not found or not open")

    values = build_tp_sl_changes(
        changes,
        is_long=order.side == PositionSide.LONG.value,
        reference_price=order.limit_price,
        reference_label="limit price",
        long_label="long",
        short_label="short",
    )
    updated = db.query(OpenOrder).filter(
        OpenOrder.id == order_id,
        OpenOrder.status == OpenOrderStatus.OPEN.value,
    ).update(values, synchronize_session=False)
    if updated == 0:
        db.rollback()
        raise NotFound("Order not found or not open")
    db.commit()
    logger.info(f"[OPEN_ORDER] Updated TP/SL of {order_id}: {values}")
    return {"success": True, "message": "TP/SL updated successfully"}
