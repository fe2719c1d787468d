"""
Tests for the open (resting limit) order endpoints and the fill path.
"""
from decimal import Decimal

import pytest

from conftest import OTHER_USER_ID, ROOM_ID, auth_headers, room_balance
from trading_room.models import OpenOrder, Position, TpSlOrder

BASE = f"/api/trading-room/{ROOM_ID}/open-orders"


def _create(client, headers, **overrides):
    body = {
        "symbol": "BTCUSDT",
        "side": "long",
        "limitPrice": 100,
        "quantity": 2,
        "leverage": 10,
    }
    body.update(overrides)
    response = client.post(BASE, json=body, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["id"]


def _order(db_session, order_id) -> OpenOrder:
    db_session.expire_all()
    return db_session.query(OpenOrder).filter(OpenOrder.id == order_id).one()


def test_create_and_list(client, room, headers):
    order_id = _create(client, headers)
    _create(client, auth_headers(OTHER_USER_ID))

    response = client.get(BASE, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert [o["id"] for o in data] == [order_id]
    assert data[0]["status"] == "open"
    assert data[0]["time_in_force"] == "GTC"
    assert data[0]["limit_price"] == pytest.approx(100)


def test_create_validates_prices(client, room, headers):
    response = client.post(
        BASE,
        json={"symbol": "BTCUSDT", "side": "sideways", "limitPrice": -1, "quantity": 0},
        headers=headers,
    )
    assert response.status_code == 400
    errors = response.json()["errors"]
    assert "limitPrice must be greater than 0" in errors
    assert "quantity must be greater than 0" in errors
    assert "Invalid side" in errors


def test_create_caps_leverage(client, db_session, room, headers):
    response = client.post(
        BASE,
        json={"symbol": "BTCUSDT", "side": "long", "limitPrice": 100, "quantity": 1, "leverage": 126},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["errors"] == ["leverage cannot exceed 125"]
    assert db_session.query(OpenOrder).count() == 0

    _create(client, headers, leverage=125)


def test_fill_fractional_leverage_matches_scheduled_margin(client, db_session, room, headers):
    order_id = _create(client, headers, side="short", limitPrice=49000, quantity=0.1, leverage=2.5)

    response = client.patch(BASE, json={"action": "fill", "orderId": order_id}, headers=headers)

    assert response.status_code == 200
    position = db_session.query(Position).one()
    assert float(position.initial_margin) == pytest.approx(1960)
    assert room_balance(db_session) == pytest.approx(10000 - 1962.45)


def test_create_missing_fields_is_400(client, room, headers):
    response = client.post(BASE, json={"symbol": "BTCUSDT"}, headers=headers)
    assert response.status_code == 400


def test_cancel_open_order(client, db_session, room, headers):
    order_id = _create(client, headers)

    response = client.patch(BASE, json={"action": "cancel", "orderId": order_id}, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert _order(db_session, order_id).status == "cancelled"


def test_cancel_other_users_order_is_forbidden(client, db_session, room, headers):
    order_id = _create(client, headers)

    response = client.patch(
        BASE, json={"action": "cancel", "orderId": order_id}, headers=auth_headers(OTHER_USER_ID)
    )

    assert response.status_code == 403
    assert _order(db_session, order_id).status == "open"


def test_fill_unknown_order_is_404(client, room, headers):
    response = client.patch(BASE, json={"action": "fill", "orderId": "missing"}, headers=headers)
    assert response.status_code == 404


def test_fill_long_prefers_ask(client, db_session, room, headers):
    order_id = _create(client, headers)

    response = client.patch(
        BASE,
        json={"action": "fill", "orderId": order_id, "fillPrice": 99, "bid": 98, "ask": 101},
        headers=headers,
    )

    assert response.status_code == 200, response.json()
    position = db_session.query(Position).one()
    assert response.json()["positionId"] == position.id
    assert float(position.entry_price) == pytest.approx(101)
    assert float(position.size) == pytest.approx(202)
    assert float(position.initial_margin) == pytest.approx(20.2)
    assert float(position.fee) == pytest.approx(0.101)
    assert float(position.liquidation_price) == pytest.approx(101 * 0.905)

    order = _order(db_session, order_id)
    assert order.status == "filled"
    assert order.position_id == position.id
    assert order.filled_at is not None
    assert room_balance(db_session) == pytest.approx(10000 - 20.301)


def test_fill_short_prefers_bid_then_limit_price(client, db_session, room, headers):
    order_id = _create(client, headers, side="short")

    client.patch(BASE, json={"action": "fill", "orderId": order_id, "fillPrice": 0}, headers=headers)

    position = db_session.query(Position).one()
    assert position.side == "short"
    assert float(position.entry_price) == pytest.approx(100)
    assert float(position.liquidation_price) == pytest.approx(109.5)


def test_fill_twice_creates_one_position(client, db_session, room, headers):
    order_id = _create(client, headers)

    first = client.patch(BASE, json={"action": "fill", "orderId": order_id}, headers=headers)
    second = client.patch(BASE, json={"action": "fill", "orderId": order_id}, headers=headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json() == {"ok": True}
    assert db_session.query(Position).count() == 1


def test_fill_insufficient_balance_leaves_order_open(client, db_session, room, headers):
    room.virtual_balance = Decimal("5")
    db_session.commit()
    order_id = _create(client, headers)

    response = client.patch(BASE, json={"action": "fill", "orderId": order_id}, headers=headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Insufficient balance"
    assert _order(db_session, order_id).status == "open"
    assert db_session.query(Position).count() == 0
    assert room_balance(db_session) == pytest.approx(5)


def test_fill_spawns_tp_sl_orders(client, db_session, room, headers):
    order_id = _create(client, headers, tpEnabled=True, takeProfitPrice=120, slEnabled=True, stopLossPrice=90)

    response = client.patch(BASE, json={"action": "fill", "orderId": order_id}, headers=headers)

    assert response.status_code == 200
    assert {o["order_type"] for o in response.json()["tpSlOrders"]} == {"take_profit", "stop_loss"}
    position = db_session.query(Position).one()
    orders = db_session.query(TpSlOrder).filter(TpSlOrder.position_id == position.id).all()
    assert len(orders) == 2
    assert all(o.status == "active" and o.side == "long" for o in orders)
    assert position.tp_order_id is not None
    assert position.sl_order_id is not None


def test_cancel_filled_order_is_noop(client, db_session, room, headers):
    order_id = _create(client, headers)
    client.patch(BASE, json={"action": "fill", "orderId": order_id}, headers=headers)

    response = client.patch(BASE, json={"action": "cancel", "orderId": order_id}, headers=headers)

    assert response.status_code == 200
    assert _order(db_session, order_id).status == "filled"


def test_unknown_action(client, room, headers):
    order_id = _create(client, headers)
    response = client.patch(BASE, json={"action": "modify", "orderId": order_id}, headers=headers)
    assert response.status_code == 400


def test_update_tp_sl_long_rules(client, db_session, room, headers):
    order_id = _create(client, headers)

    response = client.patch(
        f"{BASE}/{order_id}/tpsl", json={"sl_enabled": True, "stop_loss_price": 110}, headers=headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Stop loss price must be lower than limit price for long orders"

    response = client.patch(
        f"{BASE}/{order_id}/tpsl", json={"sl_enabled": True, "stop_loss_price": 95}, headers=headers
    )
    assert response.status_code == 200
    assert float(_order(db_session, order_id).stop_loss_price) == pytest.approx(95)


def test_update_tp_sl_on_filled_order_is_404(client, room, headers):
    order_id = _create(client, headers)
    client.patch(BASE, json={"action": "fill", "orderId": order_id}, headers=headers)

    response = client.patch(f"{BASE}/{order_id}/tpsl", json={"tp_enabled": False}, headers=headers)
    assert response.status_code == 404
