"""
Position lifecycle for the simulated trading rooms.

open_position is the single place where a fill turns into a Position: it
runs the shared margin calculator, debits the room balance with a conditional
UPDATE, inserts the position and spawns its TP/SL orders. It does NOT commit;
the caller owns the transaction so the source order's terminal transition
lands in the same commit.

close_position settles a position back into the room balance.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from trading_room.core.errors import InsufficientBalance, NotFound, ValidationFailed
from trading_room.core.logging_config import get_order_logger
from trading_room.models.position import Position, PositionSide, PositionStatus
from trading_room.models.scheduled_order import OrderSide
from trading_room.models.tp_sl_order import TpSlOrder
from trading_room.models.trading_room import TradingRoom
from trading_room.services.margin_calculator import (
    FEE_RATE,
    MAX_LEVERAGE,
    PositionMetrics,
    calculate_position_metrics,
    to_decimal,
)
from trading_room.services.tp_sl_order_creator import (
    attach_tp_sl_orders,
    cancel_active_orders_for_position,
    is_valid_trigger,
)

logger = logging.getLogger(__name__)
order_logger = get_order_logger()


@dataclass
class CloseResult:
    position: Position
    pnl: Decimal
    close_fee: Decimal
    settlement: Decimal


@dataclass
class OpenResult:
    position: Position
    tp_sl_orders: List[TpSlOrder]
    virtual_balance: Decimal


def position_side_for(order_side: str) -> PositionSide:
    """Map a scheduled order's buy/sell side to the long/short side of its position."""
    if order_side == OrderSide.BUY.value:
        return PositionSide.LONG
    if order_side == OrderSide.SELL.value:
        return PositionSide.SHORT
    # Already a position side
    return PositionSide(order_side)


def debit_room_balance(db: Session, room_id: str, cost: Decimal) -> None:
    """
    Debit `cost` from the room balance.

    The read is only used to produce the user-facing error; the debit itself is
    a single conditional UPDATE so concurrent fills can never drive the balance
    below zero.
    """
    room = db.query(TradingRoom).filter(TradingRoom.id == room_id).first()
    if room is None:
        raise NotFound("Trading room not found")

    balance = to_decimal(room.virtual_balance if room.virtual_balance is not None else 0)
    if not balance.is_finite() or balance < cost:
        logger.info(f"[POSITION] Room {room_id} balance {balance} < required {cost}")
        raise InsufficientBalance("Insufficient balance")

    updated = db.query(TradingRoom).filter(
        TradingRoom.id == room_id,
        TradingRoom.virtual_balance >= cost,
    ).update(
        {TradingRoom.virtual_balance: TradingRoom.virtual_balance - cost},
        synchronize_session=False,
    )
    if updated == 0:
        # Another fill got there first
        logger.warning(f"[POSITION] Conditional debit of {cost} lost the race on room {room_id}")
        raise InsufficientBalance("Insufficient balance")


def open_position(
    db: Session,
    *,
    room_id: str,
    user_id: str,
    symbol: str,
    side,
    quantity,
    leverage,
    entry_price,
    order_type: str = "market",
    tp_enabled: Optional[bool] = False,
    sl_enabled: Optional[bool] = False,
    take_profit_price=None,
    stop_loss_price=None,
) -> Position:
    """
    Create a Position at `entry_price`, debiting initial margin + fee.

    Args:
        side: buy/sell or long/short
        leverage: clamped to >= 1 by the calculator

    Returns:
        The flushed (uncommitted) Position

    Raises:
        InvalidEntryPrice, ValidationFailed: before anything is written
        InsufficientBalance: balance does not cover initial margin + fee
        NotFound: the room does not exist
    """
    position_side = position_side_for(side)
    metrics: PositionMetrics = calculate_position_metrics(entry_price, quantity, leverage, position_side)

    debit_room_balance(db, room_id, metrics.required_cost)

    tp_on = is_valid_trigger(tp_enabled, take_profit_price)
    sl_on = is_valid_trigger(sl_enabled, stop_loss_price)
    position = Position(
        room_id=room_id,
        user_id=user_id,
        symbol=symbol,
        side=position_side.value,
        order_type=order_type,
        quantity=metrics.quantity,
        size=metrics.size,
        entry_price=metrics.entry_price,
        initial_margin=metrics.initial_margin,
        leverage=metrics.leverage,
        fee=metrics.fee,
        liquidation_price=metrics.liquidation_price,
        status=PositionStatus.FILLED.value,
        tp_enabled=tp_on,
        sl_enabled=sl_on,
        take_profit_price=to_decimal(take_profit_price) if tp_on else None,
        stop_loss_price=to_decimal(stop_loss_price) if sl_on else None,
    )
    db.add(position)
    db.flush()

    order_logger.info(
        f"[POSITION] Opened {position.side} {symbol} qty={metrics.quantity} @ {metrics.entry_price} "
        f"lev={metrics.leverage} margin={metrics.initial_margin} fee={metrics.fee} "
        f"liq={metrics.liquidation_price} position_id={position.id}"
    )

    if tp_on or sl_on:
        attach_tp_sl_orders(db, position, tp_on, take_profit_price, sl_on, stop_loss_price)

    return position


def open_position_for_user(
    db: Session,
    room_id: str,
    user_id: str,
    *,
    symbol: str,
    side: str,
    quantity,
    entry_price,
    leverage=1,
    tp_enabled: Optional[bool] = False,
    sl_enabled: Optional[bool] = False,
    take_profit_price=None,
    stop_loss_price=None,
) -> OpenResult:
    """Direct market open at a caller-quoted price, committed on success."""
    errors = []
    try:
        position_side_for(side)
    except ValueError:
        errors.append("Invalid side")
    lev = to_decimal(leverage if leverage is not None else 1)
    if lev.is_finite() and lev > MAX_LEVERAGE:
        errors.append(f"leverage cannot exceed {MAX_LEVERAGE}")
    if errors:
        raise ValidationFailed(errors)

    try:
        position = open_position(
            db,
            room_id=room_id,
            user_id=user_id,
            symbol=symbol,
            side=side,
            quantity=quantity,
            leverage=lev,
            entry_price=entry_price,
            order_type="market",
            tp_enabled=tp_enabled,
            sl_enabled=sl_enabled,
            take_profit_price=take_profit_price,
            stop_loss_price=stop_loss_price,
        )
        position_id = position.id
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(position)
    tp_sl_orders = db.query(TpSlOrder).filter(TpSlOrder.position_id == position_id).all()
    balance = db.query(TradingRoom.virtual_balance).filter(TradingRoom.id == room_id).scalar()
    return OpenResult(position=position, tp_sl_orders=tp_sl_orders, virtual_balance=to_decimal(balance))


def list_positions(db: Session, room_id: str, user_id: str, status: Optional[str] = None) -> List[Position]:
    query = db.query(Position).filter(Position.room_id == room_id, Position.user_id == user_id)
    if status == PositionStatus.CLOSED.value:
        query = query.filter(Position.closed_at.isnot(None))
    elif status:
        query = query.filter(Position.status == status, Position.closed_at.is_(None))
    return query.order_by(Position.opened_at.desc()).all()


def close_position(
    db: Session,
    room_id: str,
    user_id: str,
    position_id: str,
    close_price,
    fee_rate=None,
) -> CloseResult:
    """Close an open position at `close_price` and credit the settlement to the room."""
    price = to_decimal(close_price)
    if not price.is_finite() or price <= 0:
        raise ValidationFailed(["closePrice must be greater than 0"])
    rate = FEE_RATE if fee_rate is None else to_decimal(fee_rate)
    if not rate.is_finite() or rate < 0:
        raise ValidationFailed(["feeRate must be a non-negative number"])

    position = db.query(Position).filter(
        Position.id == position_id,
        Position.room_id == room_id,
        Position.user_id == user_id,
        Position.closed_at.is_(None),
    ).first()
    if position is None:
        raise NotFound("Position not found or already closed")

    quantity = Decimal(position.quantity)
    entry = Decimal(position.entry_price)
    if position.side == PositionSide.SHORT.value:
        pnl = (entry - price) * quantity
    else:
        pnl = (price - entry) * quantity
    close_fee = price * quantity * rate
    settlement = Decimal(position.initial_margin) + pnl - close_fee

    closed = db.query(Position).filter(
        Position.id == position_id,
        Position.closed_at.is_(None),
    ).update(
        {
            Position.closed_at: datetime.now(timezone.utc),
            Position.close_price: price,
            Position.pnl: pnl,
            Position.status: PositionStatus.CLOSED.value,
        },
        synchronize_session=False,
    )
    if closed == 0:
        db.rollback()
        raise NotFound("Position not found or already closed")

    credited = TradingRoom.virtual_balance + settlement
    db.query(TradingRoom).filter(TradingRoom.id == room_id).update(
        {TradingRoom.virtual_balance: case((credited < 0, 0), else_=credited)},
        synchronize_session=False,
    )
    cancel_active_orders_for_position(db, position_id)
    db.commit()
    db.refresh(position)

    order_logger.info(
        f"[POSITION] Closed {position_id} @ {price} pnl={pnl} close_fee={close_fee} settlement={settlement}"
    )
    return CloseResult(position=position, pnl=pnl, close_fee=close_fee, settlement=settlement)
