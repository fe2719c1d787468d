"""
Shared fixtures: an in-memory SQLite database per test, a FastAPI app with the
trading-room routers mounted under /api, and helpers to mint session tokens.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")

from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from trading_room.api.routes_open_orders import router as open_orders_router
from trading_room.api.routes_positions import router as positions_router
from trading_room.api.routes_scheduled_orders import router as scheduled_orders_router
from trading_room.core.config import settings
from trading_room.core.errors import register_exception_handlers
from trading_room.database import Base, get_db
from trading_room.models import TradingRoom

TEST_SECRET = "test-secret-key"
ROOM_ID = "room-1"
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture(autouse=True)
def auth_settings(monkeypatch):
    monkeypatch.setattr(settings, "SECRET_KEY", TEST_SECRET)
    monkeypatch.setattr(settings, "ALGORITHM", "HS256")
    monkeypatch.setattr(settings, "JWT_AUDIENCE", None)
    monkeypatch.setattr(settings, "EXECUTE_SECRET", None)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import trading_room.models  # noqa: F401

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def app(db_session):
    """Create test FastAPI app bound to the in-memory session"""
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(scheduled_orders_router, prefix="/api")
    app.include_router(open_orders_router, prefix="/api")
    app.include_router(positions_router, prefix="/api")

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def make_token(user_id: str = USER_ID) -> str:
    return jwt.encode({"sub": user_id}, TEST_SECRET, algorithm="HS256")


def auth_headers(user_id: str = USER_ID) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def headers():
    return auth_headers(USER_ID)


@pytest.fixture
def room(db_session):
    room = TradingRoom(id=ROOM_ID, name="Test room", virtual_balance=Decimal("10000"))
    db_session.add(room)
    db_session.commit()
    return room


def room_balance(db_session, room_id: str = ROOM_ID) -> float:
    db_session.expire_all()
    return float(db_session.query(TradingRoom).filter(TradingRoom.id == room_id).one().virtual_balance)
