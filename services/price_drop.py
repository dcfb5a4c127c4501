"""
services/price_drop.py

Decides whether a freshly observed price is a qualifying drop.

The baseline is the last alerted price, or the original price when the
flight has never alerted. Anchoring on the last alert means each alert
represents a new drop of at least 10% below the previous one.
"""

from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Optional

from config import PRICE_DROP_THRESHOLD_RATIO
from errors import InvalidPriceState

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


class DropDecision(NamedTuple):
    should_alert: bool
    savings_this_drop: Decimal
    baseline_price: Decimal
    threshold_price: Decimal


def _to_decimal(value) -> Optional[Decimal]:
    """Decimal for a finite number, None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() so floats like 449.99 keep their printed value
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def evaluate_price_drop(
    original_price,
    last_alerted_price,
    current_price,
    threshold_ratio: Decimal = PRICE_DROP_THRESHOLD_RATIO,
) -> DropDecision:
    original = _to_decimal(original_price)
    if original is None or original <= 0:
        raise InvalidPriceState(f"original price is not usable: {original_price!r}")

    last_alerted = None
    if last_alerted_price is not None:
        last_alerted = _to_decimal(last_alerted_price)
        if last_alerted is None:
            raise InvalidPriceState(f"last alerted price is not usable: {last_alerted_price!r}")

    current = _to_decimal(current_price)
    if current is None:
        raise ValueError(f"current price is not a number: {current_price!r}")

    baseline = last_alerted if last_alerted is not None else original
    threshold = baseline * Decimal(str(threshold_ratio))

    # A zero or negative fare is a lookup anomaly, never a drop
    should_alert = current > 0 and current < threshold
    savings = (baseline - current).quantize(CENTS) if should_alert else ZERO

    return DropDecision(
        should_alert=should_alert,
        savings_this_drop=savings,
        baseline_price=baseline,
        threshold_price=threshold,
    )
