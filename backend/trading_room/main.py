from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from trading_room.core.config import settings
from trading_room.core.errors import register_exception_handlers
from trading_room.api.routes_scheduled_orders import router as scheduled_orders_router
from trading_room.api.routes_open_orders import router as open_orders_router
from trading_room.api.routes_positions import router as positions_router

# Setup logging configuration early
from trading_room.core.logging_config import setup_logging
setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Trading room order engine API"
)

# CORS middleware - must be added before routers to handle OPTIONS preflight requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,  # Session token travels in the Authorization header
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

register_exception_handlers(app)


@app.on_event("startup")
def startup_event():
    """Create missing tables. Schema migrations are handled outside the service."""
    from trading_room.database import init_db, check_database_connection

    ok, message = check_database_connection()
    if not ok:
        logger.error(f"Startup: {message}")
        return
    init_db()
    logger.info(f"Startup complete ({settings.ENVIRONMENT})")


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(scheduled_orders_router, prefix=settings.API_PREFIX, tags=["scheduled-orders"])
app.include_router(open_orders_router, prefix=settings.API_PREFIX, tags=["open-orders"])
app.include_router(positions_router, prefix=settings.API_PREFIX, tags=["positions"])
