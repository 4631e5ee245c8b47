"""Stock-status classification."""
from __future__ import annotations

import enum
from typing import Optional


class StockStatus(str, enum.Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    DISCONTINUED = "discontinued"


def effective_threshold(
    reorder_point: Optional[float],
    minimum_stock: Optional[float],
    default: float,
) -> float:
    """Pick the low-stock threshold for an item.

    A positive per-item reorder point wins, then a positive minimum stock,
    then the configured global default.
    """

    if reorder_point is not None and reorder_point > 0:
        return float(reorder_point)
    if minimum_stock is not None and minimum_stock > 0:
        return float(minimum_stock)
    return float(default)


def derive_status(
    current_stock: float,
    threshold: float,
    *,
    discontinued: bool = False,
) -> StockStatus:
    if discontinued:
        return StockStatus.DISCONTINUED
    if current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if current_stock <= threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def status_for(
    current_stock: float,
    *,
    reorder_point: Optional[float],
    minimum_stock: Optional[float],
    default_threshold: float,
    discontinued: bool = False,
) -> StockStatus:
    """Convenience wrapper combining :func:`effective_threshold` and :func:`derive_status`."""

    threshold = effective_threshold(reorder_point, minimum_stock, default_threshold)
    return derive_status(current_stock, threshold, discontinued=discontinued)


__all__ = ["StockStatus", "effective_threshold", "derive_status", "status_for"]
