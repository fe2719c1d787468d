"""
Smoke tests for the assembled application: health check, router mounting and
the error envelope on unauthenticated calls.
"""
from fastapi.testclient import TestClient

from trading_room.main import app


def test_health():
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_routers_mounted_under_api_prefix():
    paths = app.openapi()["paths"]
    assert "/api/trading-room/{room_id}/scheduled-orders" in paths
    assert "/api/trading-room/{room_id}/scheduled-orders/{order_id}/execute" in paths
    assert "/api/trading-room/{room_id}/open-orders" in paths
    assert "/api/trading-room/{room_id}/positions/open" in paths
    assert "/api/trading-room/{room_id}/positions/close" in paths
    assert "/api/trading-room/{room_id}/tp-sl-orders/{order_id}" in paths


def test_missing_token_is_unauthorized():
    client = TestClient(app)
    response = client.get("/api/trading-room/room-1/scheduled-orders")
    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized"}
