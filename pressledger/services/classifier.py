from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


class StockStatus(str, enum.Enum):
    CRITICAL = "CRITICAL"
    LOW = "LOW"
    HEALTHY = "HEALTHY"


# Higher is worse
_SEVERITY = {StockStatus.HEALTHY: 0, StockStatus.LOW: 1, StockStatus.CRITICAL: 2}

ALERT_STATUSES = frozenset({StockStatus.LOW, StockStatus.CRITICAL})


@dataclass(frozen=True)
class Classification:
    status: StockStatus
    percentage: int

    @property
    def is_alert(self) -> bool:
        return self.status in ALERT_STATUSES


def stock_percentage(current_stock_sheets: int, threshold_sheets: int) -> int:
    if threshold_sheets <= 0:
        return 0
    pct = Decimal(int(current_stock_sheets)) * Decimal(100) / Decimal(int(threshold_sheets))
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify(current_stock_sheets: int, threshold_sheets: int) -> Classification:
    """
    Derive the stock status from current stock vs. threshold.

    - percentage <= 50        -> CRITICAL
    - 50 < percentage <= 100  -> LOW
    - otherwise               -> HEALTHY

    A material without a threshold (0) never alerts.
    """
    if threshold_sheets <= 0:
        return Classification(status=StockStatus.HEALTHY, percentage=0)
    pct = stock_percentage(current_stock_sheets, threshold_sheets)
    if pct <= 50:
        status = StockStatus.CRITICAL
    elif pct <= 100:
        status = StockStatus.LOW
    else:
        status = StockStatus.HEALTHY
    return Classification(status=status, percentage=pct)


def is_worse(after: StockStatus, before: StockStatus) -> bool:
    return _SEVERITY[after] > _SEVERITY[before]
