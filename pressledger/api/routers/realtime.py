from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from pressledger.api.deps import get_db
from pressledger.core.config import settings
from pressledger.services import material_service
from pressledger.services.events import LowStockBroadcaster, LowStockCrossed, low_stock_events


router = APIRouter(prefix="/realtime", tags=["realtime"])


def _sse(data: dict, event: str | None = None) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, ensure_ascii=False)}")
    return "\n".join(lines) + "\n\n"


async def low_stock_stream(
    broadcaster: LowStockBroadcaster,
    queue: asyncio.Queue[LowStockCrossed],
    snapshot: list[dict],
    *,
    keepalive_sec: float,
) -> AsyncIterator[str]:
    """
    Current alerts first, then one `low_stock` event per threshold crossing.
    A comment line is sent every keepalive_sec so proxies keep the connection open.
    """
    try:
        yield _sse({"ts": datetime.now(timezone.utc).isoformat(), "materials": snapshot}, event="snapshot")
        while True:
            try:
                ev = await asyncio.wait_for(queue.get(), timeout=keepalive_sec)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield _sse(ev.to_dict(), event="low_stock")
    finally:
        broadcaster.unsubscribe(queue)


@router.get("/low-stock")
async def sse_low_stock(db: AsyncSession = Depends(get_db)) -> StreamingResponse:
    queue = low_stock_events.subscribe()
    try:
        items = await material_service.list_low_stock(db)
    except BaseException:
        low_stock_events.unsubscribe(queue)
        raise
    snapshot = [
        {
            "material_id": str(i.material.id),
            "material_name": i.material.material_name,
            "category": i.material.category,
            "status": i.classification.status.value,
            "percentage": i.classification.percentage,
            "current_stock_sheets": i.material.current_stock_sheets,
            "threshold_sheets": i.material.threshold_sheets,
            "reorder_quantity": i.material.reorder_quantity,
        }
        for i in items
    ]
    gen = low_stock_stream(low_stock_events, queue, snapshot, keepalive_sec=settings.sse_poll_interval_sec)
    return StreamingResponse(gen, media_type="text/event-stream")
