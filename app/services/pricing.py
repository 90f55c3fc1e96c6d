from __future__ import annotations

from typing import Any


def parse_money(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return max(0.0, round(float(value), 2))
    except (TypeError, ValueError):
        return 0.0


def calculate_selling_price(cost: float, markup_percentage: float) -> float:
    safe_cost = parse_money(cost)
    safe_markup = max(0.0, float(markup_percentage or 0.0))
    return round(safe_cost * (1 + safe_markup / 100), 2)


def resolve_pricing(cost: Any, markup_percentage: float, custom_price: float | None = None) -> dict[str, float]:
    """
    Selling price is the explicit custom price when given, otherwise cost plus markup.
    profit_margin is the per-unit amount, not a percentage.
    """
    cost_price = parse_money(cost)
    selling_price = parse_money(custom_price) if custom_price is not None else calculate_selling_price(cost_price, markup_percentage)
    return {
        "cost_price": cost_price,
        "custom_price": selling_price,
        "markup_percentage": float(markup_percentage),
        "profit_margin": round(selling_price - cost_price, 2),
    }
