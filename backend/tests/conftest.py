"""Pytest configuration and fixtures."""

import random
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient, ASGITransport

from cryptoterm.main import create_app
from cryptoterm.services.config import TerminalSettings
from cryptoterm.services.external_data import (
    DataSourceType,
    ExternalDataService,
    FALLBACK_CHAINS,
    MarketAsset,
    NewsItem,
    NewsSentiment,
    SentimentReading,
    build_sources,
    generate_whale_batch,
    process_chains,
)


FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChannel:
    """Stand-in for a WebSocket: records what was sent, optionally fails."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail
        self.accepted = False
        self.closed = False

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("channel closed")
        self.sent.append(data)

    async def close(self, code: int = 1000):
        self.closed = True


def make_asset(
    symbol: str,
    change_24h: float = 0.0,
    change_7d: float = 0.0,
    market_cap: float = 5_000_000_000,
    ath_change_percentage: float = -20.0,
    total_volume: float = 1_000_000_000,
    price: float = 10.0,
    rank: int = 1,
) -> MarketAsset:
    """Create a market asset with neutral defaults (fires no signal)."""
    return MarketAsset(
        id=symbol.lower(),
        symbol=symbol.lower(),
        name=symbol.upper(),
        rank=rank,
        price=price,
        market_cap=market_cap,
        total_volume=total_volume,
        change_24h=change_24h,
        change_7d=change_7d,
        ath=price * 1.5,
        ath_change_percentage=ath_change_percentage,
    )


# No BTC on purpose: details lookups for "BTC" must come back empty.
SAMPLE_ASSETS = [
    make_asset("eth", 2.0, 5.0, market_cap=400_000_000_000, ath_change_percentage=-30.0,
               total_volume=15_000_000_000, rank=1),
    make_asset("sol", 18.0, 25.0, market_cap=60_000_000_000, ath_change_percentage=-3.0,
               total_volume=3_000_000_000, rank=2),
    make_asset("doge", -12.0, 4.0, market_cap=20_000_000_000, ath_change_percentage=-70.0,
               total_volume=2_000_000_000, rank=3),
    make_asset("abc", 120.0, 130.0, market_cap=500_000_000, ath_change_percentage=-10.0,
               total_volume=900_000_000, rank=4),
    make_asset("xyz", 22.0, -3.0, market_cap=50_000_000, ath_change_percentage=-20.0,
               total_volume=100_000_000, rank=5),
]

SAMPLE_SENTIMENT = SentimentReading(
    value=72,
    classification="Greed",
    timestamp=FIXED_NOW,
    next_update="3600",
)

SAMPLE_NEWS = [
    NewsItem(
        title="Solana rally lifts altcoins",
        description="Solana rally lifts altcoins",
        url="https://example.com/a",
        source="CryptoNews",
        published_at=FIXED_NOW,
        sentiment=NewsSentiment.POSITIVE,
    ),
]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return TerminalSettings()


@pytest.fixture
def sources(settings, clock):
    """Real sources with their upstream calls replaced by canned data."""
    sources = build_sources(settings, clock=clock, rng=random.Random(7))

    market = sources[DataSourceType.MARKET]
    market.fetch_top = AsyncMock(side_effect=lambda limit: SAMPLE_ASSETS[:limit])
    market.fetch_global = AsyncMock(side_effect=RuntimeError("global endpoint down"))

    sources[DataSourceType.SENTIMENT].fetch = AsyncMock(return_value=SAMPLE_SENTIMENT)
    sources[DataSourceType.WHALES].fetch = AsyncMock(
        return_value=generate_whale_batch(random.Random(1), now=FIXED_NOW)
    )
    sources[DataSourceType.CHAINS].fetch = AsyncMock(return_value=process_chains(FALLBACK_CHAINS))
    sources[DataSourceType.NEWS].fetch = AsyncMock(return_value=SAMPLE_NEWS)
    return sources


@pytest.fixture
def data_service(settings, sources):
    return ExternalDataService(settings, sources=sources)


@pytest.fixture
def app(settings, data_service):
    return create_app(settings, data_service)


@pytest.fixture
async def client(app):
    """Create async test client (lifespan not run, no scheduler)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
