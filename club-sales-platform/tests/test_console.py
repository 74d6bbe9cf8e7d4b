"""
Tests for `repositories/client.py` settings and `services/console.py` wiring.
"""

from __future__ import annotations

import pytest

from domain.events import ChangeOperation, SaleChangeEvent
from repositories.client import Settings, load_settings
from services.console import build_sales_console


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "service-key")
    monkeypatch.delenv("VENUE_ID", raising=False)
    monkeypatch.delenv("VENUE_TIMEZONE", raising=False)
    return monkeypatch


def test_load_settings_defaults(env) -> None:
    settings = load_settings()

    assert settings.venue_id is None
    assert settings.venue_timezone == "UTC"


def test_load_settings_reads_venue_scope(env) -> None:
    env.setenv("VENUE_ID", "club-a")
    env.setenv("VENUE_TIMEZONE", "America/Argentina/Buenos_Aires")

    settings = load_settings()

    assert settings.venue_id == "club-a"
    assert settings.tz.key == "America/Argentina/Buenos_Aires"


@pytest.mark.parametrize("missing", ["SUPABASE_URL", "SUPABASE_KEY"])
def test_load_settings_requires_credentials(env, missing) -> None:
    env.delenv(missing)

    with pytest.raises(RuntimeError, match=missing):
        load_settings()


def test_load_settings_rejects_unknown_timezone(env) -> None:
    env.setenv("VENUE_TIMEZONE", "Mars/Olympus_Mons")

    with pytest.raises(RuntimeError, match="VENUE_TIMEZONE"):
        load_settings()


def test_console_shares_venue_scope() -> None:
    """Verify the composed services ignore changes from other venues without any network call."""

    settings = Settings("https://example.supabase.co", "service-key", venue_id="club-a")

    console = build_sales_console(settings)

    assert console.settings is settings
    assert console.change_feed.handle_event(SaleChangeEvent(ChangeOperation.DELETE, "s1", "club-b")) is False
    assert console.change_feed.handle_event(SaleChangeEvent(ChangeOperation.DELETE, "s1", "club-a")) is True
