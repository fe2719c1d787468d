"""
Scheduled order engine: time- and price-triggered orders of a trading room.

Lifecycle
    pending  --claim-->  watching  --finalize-->  executed
    pending / watching  --cancel-->  cancelled

There is no in-process scheduler. An external poller calls
execute_scheduled_order repeatedly; every status change is a conditional
UPDATE whose affected-row count decides whether the caller won:

1. Claim: status -> watching, lock_version + 1, conditioned on the status and
   lock_version that were read. Losing the claim is a success no-op.
2. Readiness: time-based orders need scheduled_at <= now, price-based orders
   need a price (supplied, else fetched) satisfying trigger_condition. A
   not-ready order is reverted to its pre-claim status.
3. Execute: market orders open a position (balance debit included), limit
   orders rest as an OpenOrder. Any failure reverts the claim so the order
   stays retryable.
4. Finalize: status -> executed, conditioned on status = watching and the
   claimer's lock_version, in the same transaction as the execution writes.
   A superseded or cancelled claim rolls everything back.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trading_room.core.errors import (
    ExecutionFailed,
    InvalidEntryPrice,
    InvalidTransition,
    NotFound,
    OrderEngineError,
    OrderNotReady,
    ValidationFailed,
)
from trading_room.core.logging_config import get_order_logger
from trading_room.models.scheduled_order import (
    ACTIVE_STATUSES,
    OrderSide,
    OrderType,
    ScheduledOrder,
    ScheduledOrderStatus,
    ScheduleType,
    TriggerCondition,
)
from trading_room.services import market_data
from trading_room.services.margin_calculator import MAX_LEVERAGE, to_decimal
from trading_room.services.open_orders import build_open_order
from trading_room.services.position_service import open_position
from trading_room.services.tp_sl_order_creator import build_tp_sl_changes, is_valid_trigger

logger = logging.getLogger(__name__)
order_logger = get_order_logger()

REQUIRED_FIELDS = ("symbol", "side", "order_type", "quantity", "leverage", "schedule_type")

ALREADY_EXECUTING = "Order is already being executed"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _normalize_scheduled_at(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def _number(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    number = to_decimal(value)
    return number if number.is_finite() else None


def validate_scheduled_order_payload(data: Dict[str, Any]) -> List[str]:
    """Return every validation message for a create payload (empty list when valid)."""
    errors = []
    for field in REQUIRED_FIELDS:
        if not data.get(field):
            errors.append(f"{field} is required")

    schedule_type = data.get("schedule_type")
    order_type = data.get("order_type")
    if schedule_type not in (ScheduleType.TIME_BASED.value, ScheduleType.PRICE_BASED.value):
        errors.append("Invalid schedule_type")
    if order_type not in (OrderType.MARKET.value, OrderType.LIMIT.value):
        errors.append("Invalid order_type")
    if data.get("side") not in (OrderSide.BUY.value, OrderSide.SELL.value):
        errors.append("Invalid side")

    trigger_condition = data.get("trigger_condition")
    if trigger_condition and trigger_condition not in (TriggerCondition.ABOVE.value, TriggerCondition.BELOW.value):
        errors.append("Invalid trigger_condition")

    if schedule_type == ScheduleType.TIME_BASED.value and not data.get("scheduled_at"):
        errors.append("scheduled_at is required for time_based orders")
    if schedule_type == ScheduleType.PRICE_BASED.value and (
        not trigger_condition or not data.get("trigger_price") or not data.get("current_price")
    ):
        errors.append("trigger_condition, trigger_price, and current_price are required for price_based orders")
    if order_type == OrderType.LIMIT.value and not data.get("price"):
        errors.append("price is required for limit orders")

    quantity = _number(data.get("quantity"))
    if quantity is None or quantity <= 0:
        errors.append("quantity must be greater than 0")
    leverage = _number(data.get("leverage"))
    if leverage is None or leverage < 1:
        errors.append("leverage must be at least 1")
    elif leverage > MAX_LEVERAGE:
        errors.append(f"leverage cannot exceed {MAX_LEVERAGE}")

    return errors


def create_scheduled_order(db: Session, room_id: str, user_id: str, data: Dict[str, Any]) -> ScheduledOrder:
    errors = validate_scheduled_order_payload(data)
    if errors:
        raise ValidationFailed(errors)

    schedule_type = data["schedule_type"]
    initial_status = (
        ScheduledOrderStatus.WATCHING if schedule_type == ScheduleType.PRICE_BASED.value
        else ScheduledOrderStatus.PENDING
    )
    tp_enabled = bool(data.get("tp_enabled"))
    sl_enabled = bool(data.get("sl_enabled"))
    order = ScheduledOrder(
        room_id=room_id,
        user_id=user_id,
        symbol=data["symbol"],
        side=data["side"],
        order_type=data["order_type"],
        quantity=_number(data["quantity"]),
        price=_number(data.get("price")),
        leverage=_number(data["leverage"]),
        schedule_type=schedule_type,
        scheduled_at=_normalize_scheduled_at(data.get("scheduled_at")),
        trigger_condition=data.get("trigger_condition"),
        trigger_price=_number(data.get("trigger_price")),
        current_price=_number(data.get("current_price")),
        status=initial_status.value,
        lock_version=0,
        tp_enabled=tp_enabled,
        sl_enabled=sl_enabled,
        take_profit_price=_number(data.get("take_profit_price")),
        stop_loss_price=_number(data.get("stop_loss_price")),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    order_logger.info(
        f"[SCHEDULED_ORDER] Created {order.schedule_type} {order.side} {order.symbol} "
        f"({order.order_type}) id={order.id} status={order.status}"
    )
    return order


def list_scheduled_orders(
    db: Session,
    room_id: str,
    user_id: str,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[ScheduledOrder], int]:
    """Owner-scoped listing, newest first. Unknown status values are ignored."""
    query = db.query(ScheduledOrder).filter(
        ScheduledOrder.room_id == room_id,
        ScheduledOrder.user_id == user_id,
    )
    if status in {s.value for s in ScheduledOrderStatus}:
        query = query.filter(ScheduledOrder.status == status)
    count = query.count()
    rows = query.order_by(ScheduledOrder.created_at.desc()).offset(offset).limit(limit).all()
    return rows, count


def cancel_scheduled_order(db: Session, room_id: str, user_id: str, order_id: str) -> ScheduledOrder:
    """Cancel an order that has not reached a terminal status."""
    cancelled = db.query(ScheduledOrder).filter(
        ScheduledOrder.id == order_id,
        ScheduledOrder.room_id == room_id,
        ScheduledOrder.user_id == user_id,
        ScheduledOrder.status.in_(ACTIVE_STATUSES),
    ).update({ScheduledOrder.status: ScheduledOrderStatus.CANCELLED.value}, synchronize_session=False)
    db.commit()

    order = db.query(ScheduledOrder).filter(
        ScheduledOrder.id == order_id,
        ScheduledOrder.room_id == room_id,
        ScheduledOrder.user_id == user_id,
    ).first()
    if order is None:
        raise NotFound("Order not found")
    if not cancelled:
        raise InvalidTransition(f"Order cannot be cancelled from status '{order.status}'")

    order_logger.info(f"[SCHEDULED_ORDER] Cancelled {order_id}")
    return order


def delete_scheduled_order(db: Session, room_id: str, user_id: str, order_id: str) -> None:
    deleted = db.query(ScheduledOrder).filter(
        ScheduledOrder.id == order_id,
        ScheduledOrder.room_id == room_id,
        ScheduledOrder.user_id == user_id,
    ).delete(synchronize_session=False)
    db.commit()
    if not deleted:
        raise NotFound("Order not found")
    order_logger.info(f"[SCHEDULED_ORDER] Deleted {order_id}")


def update_scheduled_order_tp_sl(
    db: Session, room_id: str, user_id: str, order_id: str, changes: Dict[str, Any]
) -> Dict[str, Any]:
    order = db.query(ScheduledOrder).filter(
        ScheduledOrder.id == order_id,
        ScheduledOrder.room_id == room_id,
        ScheduledOrder.user_id == user_id,
        ScheduledOrder.status.in_(ACTIVE_STATUSES),
    ).first()
    if order is None:
        raise NotFound("Order not found or cannot be modified")

    values = build_tp_sl_changes(
        changes,
        is_long=order.side == OrderSide.BUY.value,
        reference_price=order.trigger_price or order.price,
        reference_label="trigger price",
        long_label="buy",
        short_label="sell",
    )
    updated = db.query(ScheduledOrder).filter(
        ScheduledOrder.id == order_id,
        ScheduledOrder.status.in_(ACTIVE_STATUSES),
    ).update(values, synchronize_session=False)
    if updated == 0:
        db.rollback()
        raise NotFound("Order not found or cannot be modified")
    db.commit()
    logger.info(f"[SCHEDULED_ORDER] Updated TP/SL of {order_id}: {values}")
    return {"success": True, "message": "TP/SL updated successfully"}


def check_price_trigger(trigger_condition: Optional[str], trigger_price, price) -> bool:
    """above -> price >= trigger_price; below -> price <= trigger_price."""
    current = _number(price)
    target = _number(trigger_price)
    if current is None or target is None:
        return False
    if trigger_condition == TriggerCondition.ABOVE.value:
        return current >= target
    if trigger_condition == TriggerCondition.BELOW.value:
        return current <= target
    return False


def _resolve_market_price(symbol: str, supplied) -> Optional[Decimal]:
    price = _number(supplied)
    if price is not None:
        return price
    fetched = market_data.fetch_last_price(symbol)
    return _number(fetched)


def _claim(db: Session, order: ScheduledOrder) -> Optional[int]:
    """Conditional claim; returns the new lock_version, or None when another caller won."""
    claim_version = order.lock_version + 1
    claimed = db.query(ScheduledOrder).filter(
        ScheduledOrder.id == order.id,
        ScheduledOrder.status == order.status,
        ScheduledOrder.lock_version == order.lock_version,
    ).update(
        {
            ScheduledOrder.status: ScheduledOrderStatus.WATCHING.value,
            ScheduledOrder.lock_version: claim_version,
        },
        synchronize_session=False,
    )
    db.commit()
    return claim_version if claimed else None


def _revert_claim(db: Session, order_id: str, previous_status: str, claim_version: int) -> None:
    db.rollback()
    reverted = db.query(ScheduledOrder).filter(
        ScheduledOrder.id == order_id,
        ScheduledOrder.status == ScheduledOrderStatus.WATCHING.value,
        ScheduledOrder.lock_version == claim_version,
    ).update({ScheduledOrder.status: previous_status}, synchronize_session=False)
    db.commit()
    if reverted:
        order_logger.info(f"[SCHEDULED_ORDER] Reverted claim on {order_id} back to '{previous_status}'")
    else:
        logger.info(f"[SCHEDULED_ORDER] Claim on {order_id} was superseded, nothing to revert")


def _evaluate_readiness(order: ScheduledOrder, current_price) -> Tuple[bool, Optional[Decimal]]:
    """Return (ready, evaluated price). The price is only set for price-based orders."""
    if order.schedule_type == ScheduleType.TIME_BASED.value:
        if order.scheduled_at is None:
            return False, None
        return _as_utc(order.scheduled_at) <= datetime.now(timezone.utc), None

    if order.schedule_type == ScheduleType.PRICE_BASED.value:
        price = _resolve_market_price(order.symbol, current_price)
        if price is None:
            logger.info(f"[SCHEDULED_ORDER] No price available to evaluate trigger of {order.id}")
            return False, None
        return check_price_trigger(order.trigger_condition, order.trigger_price, price), price

    return False, None


def _execute_market(db: Session, order: ScheduledOrder, entry_price) -> Dict[str, Any]:
    position = open_position(
        db,
        room_id=order.room_id,
        user_id=order.user_id,
        symbol=order.symbol,
        side=order.side,
        quantity=order.quantity,
        leverage=order.leverage,
        entry_price=entry_price,
        order_type=OrderType.MARKET.value,
        tp_enabled=order.tp_enabled,
        sl_enabled=order.sl_enabled,
        take_profit_price=order.take_profit_price,
        stop_loss_price=order.stop_loss_price,
    )
    return {"price": position.entry_price, "position_id": position.id}


def _execute_limit(db: Session, order: ScheduledOrder) -> Dict[str, Any]:
    limit_price = _number(order.price)
    if limit_price is None or limit_price <= 0:
        raise InvalidEntryPrice("Invalid entry price")
    open_order = build_open_order(
        order.room_id,
        order.user_id,
        symbol=order.symbol,
        side=order.side,
        limit_price=limit_price,
        quantity=order.quantity,
        leverage=order.leverage,
        tp_enabled=is_valid_trigger(order.tp_enabled, order.take_profit_price),
        sl_enabled=is_valid_trigger(order.sl_enabled, order.stop_loss_price),
        take_profit_price=order.take_profit_price,
        stop_loss_price=order.stop_loss_price,
    )
    db.add(open_order)
    db.flush()
    return {"price": limit_price, "open_order_id": open_order.id}


def execute_scheduled_order(
    db: Session,
    room_id: str,
    order_id: str,
    current_price=None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run one execution attempt of a scheduled order.

    Args:
        current_price: caller-supplied market price; fetched when missing and needed
        user_id: restrict to the owner's order (None for the trusted scheduler entry point)

    Returns:
        A result dict; duplicate or lost attempts return {"ok": True, "message": ...}

    Raises:
        OrderNotReady: trigger not satisfied (claim reverted)
        InvalidEntryPrice, InsufficientBalance, ValidationFailed: execution rejected (claim reverted)
        ExecutionFailed: database failure during execution (claim reverted)
    """
    query = db.query(ScheduledOrder).filter(
        ScheduledOrder.id == order_id,
        ScheduledOrder.room_id == room_id,
    )
    if user_id is not None:
        query = query.filter(ScheduledOrder.user_id == user_id)
    order = query.first()

    if order is None:
        return {"ok": True, "message": "Order not found or already executed"}
    if order.status not in ACTIVE_STATUSES:
        return {"ok": True, "message": f"Order already {order.status}", "status": order.status}

    previous_status = order.status
    claim_version = _claim(db, order)
    if claim_version is None:
        logger.info(f"[SCHEDULED_ORDER] Claim on {order_id} lost, another executor is running")
        return {"ok": True, "message": ALREADY_EXECUTING}

    order_logger.info(f"[SCHEDULED_ORDER] Claimed {order_id} (from '{previous_status}', version {claim_version})")

    ready, evaluated_price = _evaluate_readiness(order, current_price)
    if not ready:
        _revert_claim(db, order_id, previous_status, claim_version)
        raise OrderNotReady("Order not ready for execution")

    try:
        if order.order_type == OrderType.MARKET.value:
            if evaluated_price is not None:
                entry_price = evaluated_price
            else:
                entry_price = _resolve_market_price(order.symbol, current_price)
            result = _execute_market(db, order, entry_price)
        elif order.order_type == OrderType.LIMIT.value:
            result = _execute_limit(db, order)
        else:
            raise ValidationFailed(["Invalid order_type"])

        finalized = db.query(ScheduledOrder).filter(
            ScheduledOrder.id == order_id,
            ScheduledOrder.status == ScheduledOrderStatus.WATCHING.value,
            ScheduledOrder.lock_version == claim_version,
        ).update(
            {
                ScheduledOrder.status: ScheduledOrderStatus.EXECUTED.value,
                ScheduledOrder.executed_at: datetime.now(timezone.utc),
                ScheduledOrder.execution_price: result["price"],
            },
            synchronize_session=False,
        )
        if finalized == 0:
            # Cancelled or re-claimed while we were executing
            db.rollback()
            logger.warning(f"[SCHEDULED_ORDER] Finalize of {order_id} lost, execution rolled back")
            return {"ok": True, "message": ALREADY_EXECUTING}
        db.commit()
    except OrderEngineError as e:
        logger.info(f"[SCHEDULED_ORDER] Execution of {order_id} rejected: {e.message}")
        _revert_claim(db, order_id, previous_status, claim_version)
        raise
    except SQLAlchemyError as e:
        logger.error(f"[SCHEDULED_ORDER] Execution of {order_id} failed: {e}")
        _revert_claim(db, order_id, previous_status, claim_version)
        raise ExecutionFailed("Order execution failed") from e

    order_logger.info(
        f"[SCHEDULED_ORDER] Executed {order_id} ({order.order_type}) @ {result['price']}"
    )
    response = {
        "ok": True,
        "message": "Order executed successfully",
        "order_id": order_id,
        "execution_price": result["price"],
    }
    if "position_id" in result:
        response["position_id"] = result["position_id"]
    if "open_order_id" in result:
        response["open_order_id"] = result["open_order_id"]
    return response
