"""
Reusable service for creating Take Profit and Stop Loss orders.
This centralizes the logic used by every fill path (open-order fill,
scheduled market execution, direct position open).

TP/SL orders are spawned only after their parent position row exists. Each
insert runs in its own SAVEPOINT: a failed insert is logged and skipped
without aborting the fill. The back-reference written onto the position
(tp_order_id/tp_status, sl_order_id/sl_status) is best-effort in the same way.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trading_room.core.errors import NotFound, ValidationFailed
from trading_room.models.position import Position
from trading_room.models.tp_sl_order import TpSlOrder, TpSlOrderType, TpSlOrderStatus

logger = logging.getLogger(__name__)


def is_valid_trigger(enabled: Optional[bool], price) -> bool:
    """A TP/SL leg is requested only when enabled with a positive price."""
    if not enabled or price is None:
        return False
    try:
        return Decimal(str(price)) > 0
    except Exception:
        return False


def _create_tp_sl_order(
    db: Session,
    position: Position,
    order_type: TpSlOrderType,
    trigger_price: Decimal,
) -> Optional[TpSlOrder]:
    order = TpSlOrder(
        position_id=position.id,
        trading_room_id=position.room_id,
        user_id=position.user_id,
        order_type=order_type.value,
        side=position.side,
        quantity=position.quantity,
        trigger_price=trigger_price,
        order_price=trigger_price,
        status=TpSlOrderStatus.ACTIVE.value,
    )
    try:
        with db.begin_nested():
            db.add(order)
    except SQLAlchemyError as e:
        logger.error(
            f"[TP_SL] Failed to create {order_type.value} order for position {position.id}: {e}"
        )
        return None

    logger.info(
        f"[TP_SL] Created {order_type.value} order {order.id} for position {position.id} "
        f"trigger={trigger_price}"
    )
    return order


def create_take_profit_order(db: Session, position: Position, tp_price) -> Optional[TpSlOrder]:
    """Create the active take-profit order of a position unless it already has one."""
    if position.tp_order_id:
        logger.info(f"[TP_SL] Position {position.id} already linked to TP order {position.tp_order_id}")
        return None
    return _create_tp_sl_order(db, position, TpSlOrderType.TAKE_PROFIT, Decimal(str(tp_price)))


def create_stop_loss_order(db: Session, position: Position, sl_price) -> Optional[TpSlOrder]:
    """Create the active stop-loss order of a position unless it already has one."""
    if position.sl_order_id:
        logger.info(f"[TP_SL] Position {position.id} already linked to SL order {position.sl_order_id}")
        return None
    return _create_tp_sl_order(db, position, TpSlOrderType.STOP_LOSS, Decimal(str(sl_price)))


def _write_position_links(db: Session, position_id: str, values: Dict) -> None:
    db.query(Position).filter(Position.id == position_id).update(values, synchronize_session=False)


def attach_tp_sl_orders(
    db: Session,
    position: Position,
    tp_enabled: Optional[bool],
    take_profit_price,
    sl_enabled: Optional[bool],
    stop_loss_price,
) -> List[TpSlOrder]:
    """
    Spawn the TP and/or SL order of a freshly created position and link them back.

    Returns the orders that were created. Never raises on database errors.
    """
    created: List[TpSlOrder] = []
    links: Dict = {}

    if is_valid_trigger(tp_enabled, take_profit_price):
        tp_order = create_take_profit_order(db, position, take_profit_price)
        if tp_order is not None:
            created.append(tp_order)
            links["tp_order_id"] = tp_order.id
            links["tp_status"] = TpSlOrderStatus.ACTIVE.value

    if is_valid_trigger(sl_enabled, stop_loss_price):
        sl_order = create_stop_loss_order(db, position, stop_loss_price)
        if sl_order is not None:
            created.append(sl_order)
            links["sl_order_id"] = sl_order.id
            links["sl_status"] = TpSlOrderStatus.ACTIVE.value

    if links:
        try:
            with db.begin_nested():
                _write_position_links(db, position.id, links)
            logger.info(f"[TP_SL] Position {position.id} linked to {sorted(links)}")
        except SQLAlchemyError as e:
            # Orders and position are individually valid; only the back-reference is missing
            logger.error(f"[TP_SL] Failed to link TP/SL orders to position {position.id}: {e}")
            logger.warning("[TP_SL] Continuing without updating position TP/SL status")

    return created


def list_tp_sl_orders(
    db: Session,
    room_id: str,
    user_id: str,
    position_id: Optional[str] = None,
) -> List[TpSlOrder]:
    query = db.query(TpSlOrder).filter(
        TpSlOrder.trading_room_id == room_id,
        TpSlOrder.user_id == user_id,
    )
    if position_id:
        query = query.filter(TpSlOrder.position_id == position_id)
    return query.order_by(TpSlOrder.created_at.desc()).all()


def cancel_tp_sl_order(db: Session, room_id: str, user_id: str, order_id: str) -> TpSlOrder:
    """Cancel one of the caller's TP/SL orders and mirror the status onto its position."""
    order = db.query(TpSlOrder).filter(
        TpSlOrder.id == order_id,
        TpSlOrder.trading_room_id == room_id,
        TpSlOrder.user_id == user_id,
    ).first()
    if order is None:
        raise NotFound("TP/SL order not found")

    order.status = TpSlOrderStatus.CANCELLED.value
    status_field = "tp_status" if order.order_type == TpSlOrderType.TAKE_PROFIT.value else "sl_status"
    order_id_field = "tp_order_id" if status_field == "tp_status" else "sl_order_id"
    db.query(Position).filter(
        Position.id == order.position_id,
        getattr(Position, order_id_field) == order.id,
    ).update({status_field: TpSlOrderStatus.CANCELLED.value}, synchronize_session=False)
    db.commit()
    db.refresh(order)
    logger.info(f"[TP_SL] Cancelled {order.order_type} order {order.id} (position {order.position_id})")
    return order


def cancel_active_orders_for_position(db: Session, position_id: str) -> int:
    """Cancel every still-active TP/SL order of a position. Caller commits."""
    count = db.query(TpSlOrder).filter(
        TpSlOrder.position_id == position_id,
        TpSlOrder.status == TpSlOrderStatus.ACTIVE.value,
    ).update({"status": TpSlOrderStatus.CANCELLED.value}, synchronize_session=False)
    if count:
        logger.info(f"[TP_SL] Cancelled {count} active TP/SL order(s) of position {position_id}")
    return count


def build_tp_sl_changes(
    changes: Dict,
    is_long: bool,
    reference_price,
    reference_label: str,
    long_label: str,
    short_label: str,
) -> Dict:
    """
    Validate a TP/SL edit on a not-yet-filled order and return the column values to write.

    `changes` holds only the keys the client sent (tp_enabled, sl_enabled,
    take_profit_price, stop_loss_price). Disabling a leg clears its price.
    Take profit must sit on the profitable side of the reference price and
    stop loss on the losing side.
    """
    if "tp_enabled" not in changes and "sl_enabled" not in changes:
        raise ValidationFailed(
            ["At least one of tp_enabled or sl_enabled must be provided"],
            message="At least one of tp_enabled or sl_enabled must be provided",
        )

    reference = Decimal(str(reference_price)) if reference_price is not None else None
    side_label = long_label if is_long else short_label
    errors: List[str] = []

    tp_price = changes.get("take_profit_price")
    if changes.get("tp_enabled") and tp_price is not None and reference:
        tp = Decimal(str(tp_price))
        if is_long and tp <= reference:
            errors.append(f"Take profit price must be higher than {reference_label} for {side_label} orders")
        elif not is_long and tp >= reference:
            errors.append(f"Take profit price must be lower than {reference_label} for {side_label} orders")

    sl_price = changes.get("stop_loss_price")
    if changes.get("sl_enabled") and sl_price is not None and reference:
        sl = Decimal(str(sl_price))
        if is_long and sl >= reference:
            errors.append(f"Stop loss price must be lower than {reference_label} for {side_label} orders")
        elif not is_long and sl <= reference:
            errors.append(f"Stop loss price must be higher than {reference_label} for {side_label} orders")

    if errors:
        raise ValidationFailed(errors, message=errors[0])

    values: Dict = {}
    if "tp_enabled" in changes:
        values["tp_enabled"] = bool(changes["tp_enabled"])
        if not changes["tp_enabled"]:
            values["take_profit_price"] = None
        elif "take_profit_price" in changes:
            values["take_profit_price"] = tp_price
    if "sl_enabled" in changes:
        values["sl_enabled"] = bool(changes["sl_enabled"])
        if not changes["sl_enabled"]:
            values["stop_loss_price"] = None
        elif "stop_loss_price" in changes:
            values["stop_loss_price"] = sl_price
    return values
