"""
Tests for `repositories/realtime.py` payload parsing, channel wiring and
event dispatch off the event loop.
"""

from __future__ import annotations

import asyncio
import time

import pytest

from domain.events import ChangeOperation, SaleChangeEvent
from repositories.realtime import SupabaseChangeFeed, parse_change_payload
from services.change_feed_service import ChangeFeedSubscriber


def test_parse_insert_payload() -> None:
    payload = {"data": {"type": "INSERT", "table": "sales", "record": {"id": "s1", "club_id": "club-a"}}}

    assert parse_change_payload(payload) == SaleChangeEvent(ChangeOperation.CREATE, "s1", "club-a")


def test_parse_delete_uses_old_record() -> None:
    """Verify deletes read the sale id from the old record."""

    payload = {"data": {"type": "DELETE", "record": None, "old_record": {"id": "s2"}}}

    event = parse_change_payload(payload)

    assert event is not None
    assert event.operation == ChangeOperation.DELETE
    assert event.sale_id == "s2"
    assert event.venue_id is None


def test_parse_flat_payload_shape() -> None:
    payload = {"eventType": "UPDATE", "new": {"id": "s3", "club_id": "club-b"}, "old": {}}

    assert parse_change_payload(payload) == SaleChangeEvent(ChangeOperation.UPDATE, "s3", "club-b")


def test_parse_ignores_unknown_or_incomplete_payloads() -> None:
    assert parse_change_payload({"data": {"type": "TRUNCATE"}}) is None
    assert parse_change_payload({"data": {"type": "UPDATE", "record": {}}}) is None
    assert parse_change_payload({}) is None


class FakeChannel:
    def __init__(self, name):
        self.name = name
        self.listeners = []
        self.subscribed = False

    def on_postgres_changes(self, event, schema=None, table=None, filter=None, callback=None):
        self.listeners.append({"event": event, "schema": schema, "table": table, "filter": filter})
        self.callback = callback
        return self

    async def subscribe(self):
        self.subscribed = True
        return self


class FakeAsyncClient:
    def __init__(self):
        self.channels = []
        self.removed = []

    def channel(self, name):
        channel = FakeChannel(name)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel):
        self.removed.append(channel)


@pytest.mark.asyncio
async def test_subscribe_filters_by_venue_and_dispatches_events() -> None:
    """Verify the channel is scoped to the venue and payloads reach the handler."""

    client = FakeAsyncClient()
    feed = SupabaseChangeFeed(client)
    received = []

    unsubscribe = await feed.subscribe("club-a", received.append)
    channel = client.channels[0]
    channel.callback({"data": {"type": "UPDATE", "record": {"id": "s1", "club_id": "club-a"}}})
    channel.callback({"data": {"type": "UPDATE", "record": {}}})
    channel.callback({"data": {"type": "DELETE", "old_record": {"id": "s2", "club_id": "club-a"}}})
    await feed.drain()
    await unsubscribe()

    assert channel.subscribed
    assert channel.listeners == [{"event": "*", "schema": "public", "table": "sales", "filter": "club_id=eq.club-a"}]
    assert received == [
        SaleChangeEvent(ChangeOperation.UPDATE, "s1", "club-a"),
        SaleChangeEvent(ChangeOperation.DELETE, "s2", "club-a"),
    ]
    assert client.removed == [channel]


@pytest.mark.asyncio
async def test_handler_errors_do_not_stop_later_events() -> None:
    client = FakeAsyncClient()
    feed = SupabaseChangeFeed(client)
    received = []

    def flaky_handler(event):
        if event.sale_id == "s1":
            raise RuntimeError("boom")
        received.append(event.sale_id)

    unsubscribe = await feed.subscribe("club-a", flaky_handler)
    client.channels[0].callback({"data": {"type": "INSERT", "record": {"id": "s1"}}})
    client.channels[0].callback({"data": {"type": "INSERT", "record": {"id": "s2"}}})
    await feed.drain()
    await unsubscribe()

    assert received == ["s2"]


class SlowReader:
    def __init__(self, sale):
        self.sale = sale

    def get_sale(self, sale_id):
        time.sleep(0.4)
        return self.sale

    def list_sales(self, period=None, status=None):
        return [self.sale]


@pytest.mark.asyncio
async def test_slow_refetch_does_not_stall_the_event_loop(make_sale) -> None:
    """Verify a blocking sale refetch runs while other tasks keep being scheduled."""

    client = FakeAsyncClient()
    feed = SupabaseChangeFeed(client)
    subscriber = ChangeFeedSubscriber(SlowReader(make_sale(sale_id="s1")), venue_id="club-a")
    await subscriber.start(feed)

    ticks = []

    async def ticker():
        loop = asyncio.get_running_loop()
        for _ in range(10):
            ticks.append(loop.time())
            await asyncio.sleep(0.05)

    ticking = asyncio.create_task(ticker())
    client.channels[0].callback({"data": {"type": "INSERT", "record": {"id": "s1", "club_id": "club-a"}}})
    await ticking
    await feed.drain()
    await subscriber.stop()

    gaps = [later - earlier for earlier, later in zip(ticks, ticks[1:])]
    assert max(gaps) < 0.2
    assert "s1" in subscriber.working_set
