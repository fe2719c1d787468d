import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException
from jose import JWTError, jwt

from trading_room.core.config import settings

logger = logging.getLogger(__name__)


def _decode_session_token(token: str) -> dict:
    if settings.JWT_AUDIENCE:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM], audience=settings.JWT_AUDIENCE)
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM], options={"verify_aud": False})


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """Resolve the caller's user id from a Bearer session token (`sub` claim)."""
    if not settings.SECRET_KEY:
        logger.warning("[AUTH] SECRET_KEY not configured, rejecting request")
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = _decode_session_token(token)
    except JWTError as e:
        logger.info(f"[AUTH] Invalid session token: {e}")
        raise HTTPException(status_code=401, detail="Unauthorized")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return str(user_id)


async def verify_execute_secret(x_exec_secret: Optional[str] = Header(None)) -> None:
    """Guard for the scheduler entry point; open when EXECUTE_SECRET is unset."""
    expected = settings.EXECUTE_SECRET
    if not expected:
        return
    if not x_exec_secret or not hmac.compare_digest(x_exec_secret, expected):
        logger.warning("[AUTH] Execute attempt with missing or invalid X-Exec-Secret")
        raise HTTPException(status_code=401, detail="Unauthorized")
