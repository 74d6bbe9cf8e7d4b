"""
Supabase client initialization.

This module contains *only* the connection setup. Clients are created on first
use, so domain modules and tests can be imported without credentials.

Environment variables:
- SUPABASE_URL: Your Supabase project URL (required)
- SUPABASE_KEY: Your Supabase API key (required; server-side key only on the backend)
- VENUE_ID: Venue (club) whose sales are in scope (optional)
- VENUE_TIMEZONE: IANA timezone of the venue, e.g. America/Argentina/Buenos_Aires (default: UTC)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import AsyncClient, Client, acreate_client, create_client  # type: ignore[import-not-found]

# Load environment variables from .env file
# Look for .env in the club-sales-platform directory
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


@dataclass(frozen=True, slots=True)
class Settings:
    supabase_url: str
    supabase_key: str
    venue_id: Optional[str] = None
    venue_timezone: str = "UTC"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.venue_timezone)


def load_settings() -> Settings:
    """
    Read settings from the environment.

    Raises:
        RuntimeError: If a required variable is missing or the timezone is unknown
    """

    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    venue_timezone = os.getenv("VENUE_TIMEZONE") or "UTC"
    try:
        ZoneInfo(venue_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise RuntimeError(
            f"Invalid VENUE_TIMEZONE: {venue_timezone!r}. "
            "Use an IANA timezone name such as America/Argentina/Buenos_Aires."
        ) from exc

    return Settings(
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        venue_id=os.getenv("VENUE_ID") or None,
        venue_timezone=venue_timezone,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Shared synchronous client used by the repositories."""

    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_key)


_async_client: Optional[AsyncClient] = None


async def get_async_supabase() -> AsyncClient:
    """Shared asynchronous client; required for realtime subscriptions."""

    global _async_client
    if _async_client is None:
        settings = get_settings()
        _async_client = await acreate_client(settings.supabase_url, settings.supabase_key)
    return _async_client


__all__ = [
    "Settings",
    "load_settings",
    "get_settings",
    "get_supabase",
    "get_async_supabase",
]
