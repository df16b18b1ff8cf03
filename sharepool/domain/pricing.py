"""Market-activity price formula, free of any storage concerns."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_HALF_UP, Decimal

from sharepool.domain.config import PricingConfig

PRICE_QUANT = Decimal("0.01")
PERCENT_QUANT = Decimal("0.0001")

# Change assumed when the previous window had no net movement.
NO_BASELINE_CHANGE_PERCENT = Decimal("5")
# Recalculations moving the price by less than this are not recorded.
MIN_SIGNIFICANT_CHANGE_PERCENT = Decimal("0.1")

_HUNDRED = Decimal(100)


def quantize_price(value: Decimal, rounding: str = ROUND_HALF_UP) -> Decimal:
    return value.quantize(PRICE_QUANT, rounding=rounding)


def percent_change(previous: Decimal, current: Decimal) -> Decimal:
    """Percent move from ``previous`` to ``current``, truncated toward zero."""

    if previous == 0:
        return Decimal("0")
    return ((current - previous) / previous * _HUNDRED).quantize(PERCENT_QUANT, rounding=ROUND_DOWN)


@dataclass(frozen=True, slots=True)
class TradeActivity:
    """Shares sold and bought back during one activity window."""

    sold_quantity: int = 0
    bought_back_quantity: int = 0

    @property
    def net_movement(self) -> int:
        return self.sold_quantity - self.bought_back_quantity


@dataclass(frozen=True, slots=True)
class PriceCalculation:
    """Every intermediate value of one recalculation, kept for the audit trail."""

    current_price: Decimal
    current_activity: TradeActivity
    previous_activity: TradeActivity
    raw_change_percent: Decimal
    weighted_change_percent: Decimal
    capped_change_percent: Decimal
    new_price: Decimal
    actual_change_percent: Decimal
    floor_applied: bool

    @property
    def is_significant(self) -> bool:
        return abs(self.actual_change_percent) >= MIN_SIGNIFICANT_CHANGE_PERCENT

    def factors(self, config: PricingConfig) -> dict[str, object]:
        """JSON-safe snapshot stored with the price history record."""

        return {
            "current_period": {
                "sold": self.current_activity.sold_quantity,
                "bought_back": self.current_activity.bought_back_quantity,
                "net_movement": self.current_activity.net_movement,
            },
            "previous_period": {
                "sold": self.previous_activity.sold_quantity,
                "bought_back": self.previous_activity.bought_back_quantity,
                "net_movement": self.previous_activity.net_movement,
            },
            "raw_change_percent": str(self.raw_change_percent),
            "weighted_change_percent": str(self.weighted_change_percent),
            "capped_change_percent": str(self.capped_change_percent),
            "floor_applied": self.floor_applied,
            "settings": {
                "sensitivity_scale": config.sensitivity_scale,
                "max_increase_percent": str(config.max_increase_percent),
                "max_decrease_percent": str(config.max_decrease_percent),
                "minimum_price_floor": str(config.minimum_price_floor),
                "market_activity_period": config.market_activity_period.value,
            },
        }


def raw_change_percent(current: TradeActivity, previous: TradeActivity) -> Decimal:
    """Relative change of net movement between two consecutive windows."""

    current_net = current.net_movement
    previous_net = previous.net_movement
    if previous_net == 0:
        if current_net > 0:
            return NO_BASELINE_CHANGE_PERCENT
        if current_net < 0:
            return -NO_BASELINE_CHANGE_PERCENT
        return Decimal("0")
    return Decimal(current_net - previous_net) / Decimal(abs(previous_net)) * _HUNDRED


def compute_market_activity_price(
    current_price: Decimal,
    current: TradeActivity,
    previous: TradeActivity,
    config: PricingConfig,
) -> PriceCalculation:
    """Apply the bounded market-activity formula to ``current_price``.

    The new price is rounded toward the current price so that the 2-decimal
    rounding can never push the move past the configured caps.
    """

    config.ensure_floor_reachable(current_price)

    raw = raw_change_percent(current, previous)
    weighted = raw * config.sensitivity_multiplier
    capped = min(max(weighted, -config.max_decrease_percent), config.max_increase_percent)

    rounding = ROUND_DOWN if capped >= 0 else ROUND_CEILING
    moved = quantize_price(current_price * (1 + capped / _HUNDRED), rounding)
    floor = quantize_price(config.minimum_price_floor, ROUND_CEILING)
    new_price = max(floor, moved)

    return PriceCalculation(
        current_price=current_price,
        current_activity=current,
        previous_activity=previous,
        raw_change_percent=raw.quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP),
        weighted_change_percent=weighted.quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP),
        capped_change_percent=capped.quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP),
        new_price=new_price,
        actual_change_percent=percent_change(current_price, new_price),
        floor_applied=new_price != moved,
    )


__all__ = [
    "MIN_SIGNIFICANT_CHANGE_PERCENT",
    "NO_BASELINE_CHANGE_PERCENT",
    "PRICE_QUANT",
    "PriceCalculation",
    "TradeActivity",
    "compute_market_activity_price",
    "percent_change",
    "quantize_price",
    "raw_change_percent",
]
