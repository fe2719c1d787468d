"""Last-price lookup used as the fallback when a trigger check has no caller-supplied price."""
import logging
import math
from typing import Optional

import requests

from trading_room.core.config import settings
from trading_room.utils.http_client import EgressGuardError, http_get

logger = logging.getLogger(__name__)

TICKERS_PATH = "/v5/market/tickers"


def fetch_last_price(symbol: str) -> Optional[float]:
    """
    Fetch the last traded price of a linear contract.

    Returns None (and logs a warning) on any failure: network errors, non-200
    responses, unexpected payloads or non-finite prices.
    """
    url = settings.MARKET_DATA_BASE_URL.rstrip("/") + TICKERS_PATH
    try:
        response = http_get(
            url,
            params={"category": "linear", "symbol": symbol},
            timeout=settings.MARKET_DATA_TIMEOUT,
            calling_module="market_data.fetch_last_price",
        )
    except (requests.exceptions.RequestException, EgressGuardError) as e:
        logger.warning(f"[MARKET_DATA] Price lookup for {symbol} failed: {e}")
        return None

    if response.status_code != 200:
        logger.warning(f"[MARKET_DATA] Price lookup for {symbol} returned HTTP {response.status_code}")
        return None

    try:
        tickers = response.json().get("result", {}).get("list") or []
        price = float(tickers[0]["lastPrice"])
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        logger.warning(f"[MARKET_DATA] Unexpected ticker payload for {symbol}: {e}")
        return None

    if not math.isfinite(price):
        logger.warning(f"[MARKET_DATA] Non-finite last price for {symbol}: {price}")
        return None
    return price
