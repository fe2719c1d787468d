"""
Margin, fee and liquidation math for opening a simulated position.

Every fill path (open-order fill, scheduled market execution, direct position
open) goes through calculate_position_metrics so that identical inputs always
produce identical numbers. All arithmetic is done in Decimal.

    size              = entry_price * quantity
    fee               = size * FEE_RATE
    initial_margin    = size / leverage            (leverage clamped to >= 1)
    liquidation long  = entry * (1 - 1/leverage + MMR)
    liquidation short = entry * (1 + 1/leverage - MMR)
    required_cost     = initial_margin + fee
"""
import decimal
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from trading_room.core.errors import InvalidEntryPrice, ValidationFailed
from trading_room.models.position import PositionSide

FEE_RATE = Decimal("0.0005")
MMR = Decimal("0.005")  # maintenance margin rate
MAX_LEVERAGE = 125

Number = Union[int, float, str, Decimal]


@dataclass(frozen=True)
class PositionMetrics:
    entry_price: Decimal
    quantity: Decimal
    leverage: Decimal
    size: Decimal
    fee: Decimal
    initial_margin: Decimal
    liquidation_price: Decimal

    @property
    def required_cost(self) -> Decimal:
        return self.initial_margin + self.fee


def to_decimal(value: Number) -> Decimal:
    """Convert a numeric input to Decimal via str() so floats keep their printed value."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (decimal.InvalidOperation, ValueError, TypeError):
        return Decimal("NaN")


def liquidation_price(entry_price: Decimal, leverage: Decimal, side: PositionSide) -> Decimal:
    inverse_leverage = Decimal(1) / leverage
    if side == PositionSide.LONG:
        return entry_price * (Decimal(1) - inverse_leverage + MMR)
    return entry_price * (Decimal(1) + inverse_leverage - MMR)


def calculate_position_metrics(
    entry_price: Number,
    quantity: Number,
    leverage: Number,
    side: Union[PositionSide, str],
) -> PositionMetrics:
    """
    Compute size, fee, initial margin and liquidation price for a new position.

    Raises:
        InvalidEntryPrice: entry price is missing, non-finite or <= 0
        ValidationFailed: quantity is non-finite or <= 0
    """
    entry = to_decimal(entry_price)
    if not entry.is_finite() or entry <= 0:
        raise InvalidEntryPrice("Invalid entry price")

    qty = to_decimal(quantity)
    if not qty.is_finite() or qty <= 0:
        raise ValidationFailed(["quantity must be greater than 0"])

    lev = to_decimal(leverage)
    if not lev.is_finite() or lev < 1:
        lev = Decimal(1)

    position_side = PositionSide(side)
    size = entry * qty
    return PositionMetrics(
        entry_price=entry,
        quantity=qty,
        leverage=lev,
        size=size,
        fee=size * FEE_RATE,
        initial_margin=size / lev,
        liquidation_price=liquidation_price(entry, lev, position_side),
    )
