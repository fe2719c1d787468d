"""
Engine-level tests for the claim / revert / finalize protocol of scheduled orders.
"""
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from conftest import ROOM_ID, USER_ID, room_balance
from trading_room.core.errors import ExecutionFailed, OrderNotReady
from trading_room.models import Position, ScheduledOrder
from trading_room.services import scheduled_order_engine as engine


def _watching_order(db_session, **overrides) -> ScheduledOrder:
    data = {
        "symbol": "BTCUSDT",
        "side": "buy",
        "order_type": "market",
        "quantity": 1,
        "leverage": 10,
        "schedule_type": "price_based",
        "trigger_condition": "above",
        "trigger_price": 100,
        "current_price": 95,
    }
    data.update(overrides)
    return engine.create_scheduled_order(db_session, ROOM_ID, USER_ID, data)


def _reload(db_session, order_id) -> ScheduledOrder:
    db_session.expire_all()
    return db_session.query(ScheduledOrder).filter(ScheduledOrder.id == order_id).one()


def test_claim_bumps_lock_version(db_session, room):
    order = _watching_order(db_session)
    order_id = order.id

    engine.execute_scheduled_order(db_session, ROOM_ID, order_id, current_price=101)

    stored = _reload(db_session, order_id)
    assert stored.status == "executed"
    assert stored.lock_version == 1
    assert float(stored.execution_price) == pytest.approx(101)


def test_stale_claim_is_a_noop(db_session, room):
    order = _watching_order(db_session)
    order_id = order.id
    # Another executor claims between our read and our claim
    db_session.query(ScheduledOrder).filter(ScheduledOrder.id == order_id).update(
        {"lock_version": 5}, synchronize_session=False
    )
    db_session.commit()

    stale = ScheduledOrder(id=order_id, status="watching", lock_version=0)
    assert engine._claim(db_session, stale) is None
    assert _reload(db_session, order_id).lock_version == 5


def test_not_ready_reverts_with_price_at_boundary(db_session, room):
    order = _watching_order(db_session)
    order_id = order.id

    with pytest.raises(OrderNotReady):
        engine.execute_scheduled_order(db_session, ROOM_ID, order_id, current_price=99.99)
    assert _reload(db_session, order_id).status == "watching"

    result = engine.execute_scheduled_order(db_session, ROOM_ID, order_id, current_price=100)
    assert result["ok"] is True
    assert _reload(db_session, order_id).status == "executed"


def test_superseded_finalize_rolls_back_execution(db_session, room):
    order = _watching_order(db_session)
    order_id = order.id
    real_execute_market = engine._execute_market

    def supersede_midway(db, claimed_order, entry_price):
        result = real_execute_market(db, claimed_order, entry_price)
        # A newer claimer bumps the version while we are still executing
        db.query(ScheduledOrder).filter(ScheduledOrder.id == order_id).update(
            {"lock_version": 99}, synchronize_session=False
        )
        return result

    with patch.object(engine, "_execute_market", side_effect=supersede_midway):
        result = engine.execute_scheduled_order(db_session, ROOM_ID, order_id, current_price=150)

    assert result == {"ok": True, "message": engine.ALREADY_EXECUTING}
    db_session.expire_all()
    assert db_session.query(Position).count() == 0
    assert room_balance(db_session) == pytest.approx(10000)
    assert _reload(db_session, order_id).status == "watching"


def test_database_error_reverts_claim(db_session, room):
    order = _watching_order(db_session)
    order_id = order.id

    with patch.object(
        engine, "open_position", side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))
    ):
        with pytest.raises(ExecutionFailed):
            engine.execute_scheduled_order(db_session, ROOM_ID, order_id, current_price=150)

    stored = _reload(db_session, order_id)
    assert stored.status == "watching"
    assert stored.lock_version == 1
    assert db_session.query(Position).count() == 0


def test_pending_order_reverts_to_pending(db_session, room):
    pending = ScheduledOrder(
        room_id=ROOM_ID,
        user_id=USER_ID,
        symbol="BTCUSDT",
        side="buy",
        order_type="market",
        quantity=Decimal("1"),
        leverage=1,
        schedule_type="time_based",
        scheduled_at=None,
        status="pending",
    )
    db_session.add(pending)
    db_session.commit()
    order_id = pending.id

    with pytest.raises(OrderNotReady):
        engine.execute_scheduled_order(db_session, ROOM_ID, order_id, current_price=100)
    assert _reload(db_session, order_id).status == "pending"


def test_terminal_order_is_not_reclaimed(db_session, room):
    order = _watching_order(db_session)
    order_id = order.id
    engine.cancel_scheduled_order(db_session, ROOM_ID, USER_ID, order_id)

    result = engine.execute_scheduled_order(db_session, ROOM_ID, order_id, current_price=150)

    assert result["ok"] is True
    assert result["status"] == "cancelled"
    assert _reload(db_session, order_id).lock_version == 0
