"""
Change feed service.

Keeps a client's local list of sales in sync with remote changes made by other
sessions, without clobbering edits in progress.

Edit sessions:
- begin_edit_session(sale_id) suspends merges for that sale only.
- begin_edit_session() with no sale (a new-sale form) suspends every merge.
- Events arriving while suspended are dropped. The local edit is authoritative
  until the session ends; ending it refetches the sale (or, for the last
  global session, reloads the whole list).

This module is the only place allowed to overwrite cached sales
asynchronously.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Protocol
from uuid import uuid4

from domain.errors import SaleError
from domain.events import ChangeOperation, SaleChangeEvent
from domain.sale import Sale
from services.gateway import SaleReader

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], Awaitable[None]]


class ChangeFeed(Protocol):
    """
    Asynchronous source of sale change events scoped to a venue.

    `on_event` may block on I/O; feeds must call it off the event loop and in
    arrival order.
    """

    async def subscribe(
        self,
        venue_id: str,
        on_event: Callable[[SaleChangeEvent], None],
    ) -> Unsubscribe:
        ...


class SalesWorkingSet:
    """Locally cached sales, newest sale date first."""

    def __init__(self, sales: Optional[List[Sale]] = None):
        self._by_id: Dict[str, Sale] = {}
        if sales:
            self.replace_all(sales)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, sale_id: object) -> bool:
        return sale_id in self._by_id

    def get(self, sale_id: str) -> Optional[Sale]:
        return self._by_id.get(sale_id)

    def list(self) -> List[Sale]:
        return sorted(self._by_id.values(), key=lambda s: s.sale_date, reverse=True)

    def upsert(self, sale: Sale) -> None:
        self._by_id[sale.sale_id] = sale

    def remove(self, sale_id: str) -> None:
        self._by_id.pop(sale_id, None)

    def replace_all(self, sales: List[Sale]) -> None:
        self._by_id = {sale.sale_id: sale for sale in sales}


@dataclass(frozen=True, slots=True)
class EditSession:
    """Token returned by begin_edit_session; sale_id None means all sales."""
    sale_id: Optional[str]
    token: str = field(default_factory=lambda: str(uuid4()))


class ChangeFeedSubscriber:
    """
    Applies remote sale changes to a SalesWorkingSet.

    Args:
        reader: Used to refetch single sales
        working_set: Local cache to keep in sync (a new one by default)
        venue_id: Events reporting another venue are ignored
        reload: Full reconciliation fetch; defaults to reader.list_sales()
    """

    def __init__(
        self,
        reader: SaleReader,
        working_set: Optional[SalesWorkingSet] = None,
        venue_id: Optional[str] = None,
        reload: Optional[Callable[[], List[Sale]]] = None,
    ):
        self._reader = reader
        self.working_set = working_set if working_set is not None else SalesWorkingSet()
        self._venue_id = venue_id
        self._reload = reload if reload is not None else reader.list_sales
        self._sessions: Dict[str, EditSession] = {}
        self._pending_full_reload = False
        self._unsubscribe: Optional[Unsubscribe] = None
        self.dropped_events: int = 0
        # Events are applied from a worker thread while sessions open on the caller.
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Edit sessions
    # ------------------------------------------------------------------

    def begin_edit_session(self, sale_id: Optional[str] = None) -> EditSession:
        session = EditSession(sale_id=sale_id)
        with self._lock:
            self._sessions[session.token] = session
        logger.debug("Edit session started", extra={"sale_id": sale_id, "session": session.token})
        return session

    def end_edit_session(self, session: EditSession) -> None:
        """
        Close a session and reconcile what it suspended.

        Ending an unknown or already-ended session does nothing.
        """

        with self._lock:
            if self._sessions.pop(session.token, None) is None:
                return
            logger.debug("Edit session ended", extra={"sale_id": session.sale_id, "session": session.token})

            if self._has_global_session():
                # Another form still suspends everything; reconcile when it closes.
                self._pending_full_reload = True
                return

            if session.sale_id is None or self._pending_full_reload:
                self.reconcile()
            elif not self.is_suspended(session.sale_id):
                self._refetch(session.sale_id)

    def is_suspended(self, sale_id: Optional[str] = None) -> bool:
        """True if merges for `sale_id` (or, with no id, for any sale) are suspended."""

        if sale_id is None:
            return bool(self._sessions)
        return any(s.sale_id is None or s.sale_id == sale_id for s in self._sessions.values())

    def _has_global_session(self) -> bool:
        return any(s.sale_id is None for s in self._sessions.values())

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def handle_event(self, event: SaleChangeEvent) -> bool:
        """
        Merge one change event. Returns True if the working set was updated.
        """

        if self._venue_id is not None and event.venue_id is not None and event.venue_id != self._venue_id:
            return False

        with self._lock:
            if self.is_suspended(event.sale_id):
                self.dropped_events += 1
                logger.info(
                    "Sale change dropped during edit session",
                    extra={"sale_id": event.sale_id, "operation": event.operation.value},
                )
                return False

            if event.operation == ChangeOperation.DELETE:
                self.working_set.remove(event.sale_id)
                return True
            return self._refetch(event.sale_id)

    def reconcile(self) -> bool:
        """Reload the whole working set. Returns False if the fetch failed."""

        with self._lock:
            try:
                sales = self._reload()
            except SaleError:
                logger.warning("Full sales reconciliation failed", exc_info=True)
                self._pending_full_reload = True
                return False

            # Sales still open in an edit session keep their cached copy.
            held = {s.sale_id for s in self._sessions.values() if s.sale_id is not None}
            merged: List[Sale] = []
            for sale in sales:
                cached = self.working_set.get(sale.sale_id) if sale.sale_id in held else None
                merged.append(cached if cached is not None else sale)
            self.working_set.replace_all(merged)
            self._pending_full_reload = False
            logger.info("Sales reconciled", extra={"sales_count": len(sales)})
            return True

    def _refetch(self, sale_id: str) -> bool:
        try:
            sale = self._reader.get_sale(sale_id)
        except SaleError:
            logger.warning("Sale refetch failed", extra={"sale_id": sale_id}, exc_info=True)
            return False

        if sale is None:
            self.working_set.remove(sale_id)
        else:
            self.working_set.upsert(sale)
        return True

    # ------------------------------------------------------------------
    # Feed wiring
    # ------------------------------------------------------------------

    async def start(self, feed: ChangeFeed, venue_id: Optional[str] = None) -> None:
        """Subscribe to `feed` for the venue (defaults to the configured one)."""

        scope = venue_id or self._venue_id
        if scope is None:
            raise ValueError("A venue_id is required to subscribe to sale changes")
        if self._unsubscribe is not None:
            await self.stop()
        self._venue_id = scope
        self._unsubscribe = await feed.subscribe(scope, self.handle_event)

    async def stop(self) -> None:
        if self._unsubscribe is None:
            return
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        await unsubscribe()


__all__ = [
    "ChangeFeed",
    "ChangeFeedSubscriber",
    "EditSession",
    "SalesWorkingSet",
]
