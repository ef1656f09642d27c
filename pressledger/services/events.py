from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from uuid import UUID

from pressledger.services.classifier import StockStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LowStockCrossed:
    material_id: UUID
    material_name: str
    category: str
    previous_status: StockStatus
    status: StockStatus
    percentage: int
    current_stock_sheets: int
    threshold_sheets: int
    reorder_quantity: int | None
    movement_id: UUID
    occurred_at: datetime

    def to_dict(self) -> dict:
        d = asdict(self)
        d["material_id"] = str(self.material_id)
        d["movement_id"] = str(self.movement_id)
        d["previous_status"] = self.previous_status.value
        d["status"] = self.status.value
        d["occurred_at"] = self.occurred_at.isoformat()
        return d


class LowStockBroadcaster:
    """
    Fan-out of LowStockCrossed signals to in-process subscribers (SSE streams, notifiers).

    Each subscriber owns a bounded queue; a slow subscriber loses its oldest signals
    instead of blocking the writer.
    """

    def __init__(self, *, max_queue: int = 100) -> None:
        self._max_queue = max_queue
        self._subscribers: set[asyncio.Queue[LowStockCrossed]] = set()

    def subscribe(self) -> asyncio.Queue[LowStockCrossed]:
        q: asyncio.Queue[LowStockCrossed] = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue[LowStockCrossed]) -> None:
        self._subscribers.discard(q)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: LowStockCrossed) -> None:
        logger.info(
            "low stock crossed: material_id=%s, name=%s, %s -> %s, percentage=%s, stock=%s, threshold=%s",
            event.material_id,
            event.material_name,
            event.previous_status.value,
            event.status.value,
            event.percentage,
            event.current_stock_sheets,
            event.threshold_sheets,
        )
        for q in list(self._subscribers):
            if q.full():
                try:
                    q.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            q.put_nowait(event)


low_stock_events = LowStockBroadcaster()
