"""
Supabase realtime change feed for sales.

Subscribes to `postgres_changes` on the `sales` table of one venue and turns
each payload into a SaleChangeEvent. The row contents in the payload are not
trusted; subscribers refetch the sale.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Mapping, Optional, Set
from uuid import uuid4

from supabase import AsyncClient  # type: ignore[import-not-found]

from domain.events import ChangeOperation, SaleChangeEvent
from repositories.client import get_async_supabase
from services.change_feed_service import Unsubscribe

logger = logging.getLogger(__name__)

_OPERATIONS = {
    "INSERT": ChangeOperation.CREATE,
    "UPDATE": ChangeOperation.UPDATE,
    "DELETE": ChangeOperation.DELETE,
}


def parse_change_payload(payload: Mapping[str, Any]) -> Optional[SaleChangeEvent]:
    """
    Build a SaleChangeEvent from a realtime payload.

    Accepts both the `{"data": {"type", "record", "old_record"}}` shape and the
    flat `{"eventType", "new", "old"}` shape.

    Returns:
        The event, or None if the payload has no known operation or sale id
    """

    data = payload.get("data") if isinstance(payload.get("data"), Mapping) else payload
    kind = str(data.get("type") or data.get("eventType") or "").upper()
    operation = _OPERATIONS.get(kind)
    if operation is None:
        return None

    record = data.get("record") or data.get("new") or {}
    old_record = data.get("old_record") or data.get("old") or {}
    sale_id = record.get("id") or old_record.get("id")
    if not sale_id:
        return None

    venue_id = record.get("club_id") or old_record.get("club_id")
    return SaleChangeEvent(
        operation=operation,
        sale_id=str(sale_id),
        venue_id=str(venue_id) if venue_id else None,
    )


class SupabaseChangeFeed:
    """
    ChangeFeed implementation over Supabase realtime.

    Payloads are parsed on the event loop and queued. One worker per
    subscription hands each event to `on_event` in a thread, in arrival order,
    so handlers that refetch over the sync client never stall the channel.

    Args:
        client: Async Supabase client (defaults to the shared one)
        schema: Database schema of the sales table
        table: Table to watch
    """

    def __init__(self, client: Optional[AsyncClient] = None, schema: str = "public", table: str = "sales"):
        self._client = client
        self._schema = schema
        self._table = table
        self._queues: Set[asyncio.Queue] = set()

    async def subscribe(
        self,
        venue_id: str,
        on_event: Callable[[SaleChangeEvent], None],
    ) -> Unsubscribe:
        client = self._client if self._client is not None else await get_async_supabase()
        queue: asyncio.Queue = asyncio.Queue()

        def _dispatch(payload: Mapping[str, Any]) -> None:
            event = parse_change_payload(payload)
            if event is None:
                logger.debug("Ignoring realtime payload without a sale", extra={"venue_id": venue_id})
                return
            queue.put_nowait(event)

        async def _consume() -> None:
            while True:
                event = await queue.get()
                try:
                    await asyncio.to_thread(on_event, event)
                except Exception:
                    # Handler errors must not stop the worker.
                    logger.exception(
                        "Sale change handler failed",
                        extra={"sale_id": event.sale_id, "operation": event.operation.value},
                    )
                finally:
                    queue.task_done()

        worker = asyncio.create_task(_consume())
        self._queues.add(queue)

        channel = client.channel(f"{self._table}-{venue_id}-{uuid4().hex[:8]}")
        channel.on_postgres_changes(
            "*",
            schema=self._schema,
            table=self._table,
            filter=f"club_id=eq.{venue_id}",
            callback=_dispatch,
        )
        await channel.subscribe()
        logger.info("Subscribed to sale changes", extra={"venue_id": venue_id, "table": self._table})

        async def unsubscribe() -> None:
            await client.remove_channel(channel)
            self._queues.discard(queue)
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
            if not queue.empty():
                logger.info(
                    "Pending sale changes discarded on unsubscribe",
                    extra={"venue_id": venue_id, "pending": queue.qsize()},
                )
            logger.info("Unsubscribed from sale changes", extra={"venue_id": venue_id})

        return unsubscribe

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""

        for queue in list(self._queues):
            await queue.join()


__all__ = [
    "SupabaseChangeFeed",
    "parse_change_payload",
]
