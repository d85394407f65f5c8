"""External data sources service.

Provides access to the five upstream feeds the terminal aggregates:
- Market: top assets by market cap (CoinGecko)
- Sentiment: Fear & Greed Index (alternative.me)
- Whales: large-value transfers (synthetic unless a feed URL is configured)
- Chains: per-chain total value locked (DefiLlama)
- News: crypto headlines with keyword sentiment (CryptoPanic)

Every source sits behind its own StaleTolerantCache. A failed refresh serves
the last known good value; a failure before any value was ever obtained
serves the source's synthetic fallback, so the terminal keeps running with
all upstreams down.
"""

import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from .cache import StaleTolerantCache
from .config import SourceConfig, TerminalSettings
from .market_signals import MarketSignalDetector, Signal

logger = logging.getLogger(__name__)

WHALE_THRESHOLD_USD = 1_000_000
WHALE_BATCH_SIZE = 15
CHAIN_TVL_FLOOR_USD = 100_000_000
CHAIN_TOP_N = 15
MOVERS_MARKET_CAP_FLOOR = 100_000_000
MOVERS_COUNT = 10
VOLUME_VIEW_SIZE = 20
NEWS_LIMIT = 20

POSITIVE_KEYWORDS = ("surge", "rally", "gain", "bullish", "breakthrough", "soar", "pump")
NEGATIVE_KEYWORDS = ("crash", "plunge", "drop", "bearish", "dump", "fall", "decline")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DataSourceType(str, Enum):
    """Types of external data sources."""
    MARKET = "market"
    SENTIMENT = "sentiment"
    WHALES = "whales"
    CHAINS = "chains"
    NEWS = "news"


class UpstreamError(Exception):
    """An upstream call failed: network error, non-2xx status or malformed body."""


def _float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    return float(value)


@dataclass(frozen=True)
class MarketAsset:
    """One tradable asset's current market state."""
    id: str
    symbol: str
    name: str
    rank: Optional[int]
    price: float
    market_cap: float
    total_volume: float
    change_24h: float
    change_7d: float
    ath: float
    ath_change_percentage: float
    circulating_supply: float = 0.0
    image: Optional[str] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "MarketAsset":
        """Build an asset from a CoinGecko /coins/markets row."""
        try:
            change_7d = item.get("price_change_percentage_7d_in_currency")
            if change_7d is None:
                change_7d = item.get("price_change_percentage_7d")
            return cls(
                id=str(item["id"]),
                symbol=str(item["symbol"]),
                name=str(item.get("name") or item["symbol"]),
                rank=item.get("market_cap_rank"),
                price=_float(item.get("current_price")),
                market_cap=_float(item.get("market_cap")),
                total_volume=_float(item.get("total_volume")),
                change_24h=_float(item.get("price_change_percentage_24h")),
                change_7d=_float(change_7d),
                ath=_float(item.get("ath")),
                ath_change_percentage=_float(item.get("ath_change_percentage")),
                circulating_supply=_float(item.get("circulating_supply")),
                image=item.get("image"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed market row: {e}") from e


@dataclass(frozen=True)
class VolumeEntry:
    """One row of the volume view.

    volume_change reuses the 24h price change as a stand-in for a real volume
    delta, which the upstream does not provide.
    """
    symbol: str
    volume: float
    volume_change: float


@dataclass
class MarketMovers:
    """Top gainers and losers among assets above the market cap floor."""
    gainers: List[MarketAsset]
    losers: List[MarketAsset]


@dataclass(frozen=True)
class GlobalMarketStats:
    """Market-wide aggregates."""
    btc_dominance: float
    total_market_cap: float
    timestamp: datetime


@dataclass(frozen=True)
class SentimentReading:
    """Fear and Greed Index reading."""
    value: int  # 0-100
    classification: str  # Extreme Fear, Fear, Neutral, Greed, Extreme Greed
    timestamp: datetime
    next_update: str = "N/A"


class WhaleDirection(str, Enum):
    ACCUMULATION = "accumulation"
    DISTRIBUTION = "distribution"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class WhaleTransfer:
    """One large-value transfer event."""
    blockchain: str
    symbol: str
    amount: float
    amount_usd: float
    from_address: str
    to_address: str
    direction: WhaleDirection
    timestamp: datetime
    tx_hash: str


@dataclass
class WhaleFlow:
    """USD totals of the current whale batch by direction."""
    accumulation: float
    distribution: float
    net_flow: float


@dataclass(frozen=True)
class ChainMetric:
    """One blockchain's aggregate locked value."""
    name: str
    tvl: float
    tvl_change_24h: float
    protocols: int
    dominance: float  # percent of the filtered cohort's TVL


@dataclass
class TvlTrend:
    """Count of chains whose TVL rose / fell over 24h."""
    increasing: int
    decreasing: int


class NewsSentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class NewsItem:
    """A news headline."""
    title: str
    description: str
    url: str
    source: str
    published_at: datetime
    sentiment: NewsSentiment


@dataclass
class DataSourceStatus:
    """Status of a data source."""
    source_type: DataSourceType
    enabled: bool
    healthy: bool
    using_fallback: bool = False
    last_fetch: Optional[datetime] = None
    last_error: Optional[str] = None
    data_age_seconds: Optional[int] = None


@dataclass
class MarketSnapshot:
    """Full view sent to a subscriber on connect or refresh."""
    market_data: List[MarketAsset]
    fear_greed: SentimentReading
    whales: List[WhaleTransfer]
    chain_activity: List[ChainMetric]
    news: List[NewsItem]
    signals: List[Signal]


@dataclass
class MarketUpdate:
    """Partial view pushed on every broadcast tick."""
    market_data: List[MarketAsset]
    fear_greed: SentimentReading
    signals: List[Signal]
    timestamp: datetime = field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Pure derivation helpers
# ---------------------------------------------------------------------------

def build_volume_view(assets: List[MarketAsset], size: int = VOLUME_VIEW_SIZE) -> List[VolumeEntry]:
    """Re-sort assets by trading volume and keep the top ``size``."""
    entries = [
        VolumeEntry(
            symbol=asset.symbol.upper(),
            volume=asset.total_volume,
            volume_change=asset.change_24h,
        )
        for asset in assets
    ]
    entries.sort(key=lambda e: e.volume, reverse=True)
    return entries[:size]


def classify_sentiment(text: str) -> NewsSentiment:
    """Tag a headline by keyword presence; mixed or no keywords is neutral."""
    text_lower = text.lower()
    has_positive = any(word in text_lower for word in POSITIVE_KEYWORDS)
    has_negative = any(word in text_lower for word in NEGATIVE_KEYWORDS)

    if has_positive and not has_negative:
        return NewsSentiment.POSITIVE
    if has_negative and not has_positive:
        return NewsSentiment.NEGATIVE
    return NewsSentiment.NEUTRAL


def process_chains(raw_chains: List[Dict[str, Any]]) -> List[ChainMetric]:
    """Filter chains by the TVL floor, compute dominance, keep the top N."""
    filtered = [
        chain for chain in raw_chains
        if chain.get("tvl") and _float(chain["tvl"]) > CHAIN_TVL_FLOOR_USD
    ]
    total_tvl = sum(_float(chain["tvl"]) for chain in filtered)

    metrics = [
        ChainMetric(
            name=str(chain.get("name", "Unknown")),
            tvl=_float(chain["tvl"]),
            tvl_change_24h=_float(chain.get("change_1d")),
            protocols=int(chain.get("protocols") or 0),
            dominance=(_float(chain["tvl"]) / total_tvl) * 100 if total_tvl else 0.0,
        )
        for chain in filtered
    ]
    metrics.sort(key=lambda c: c.tvl, reverse=True)
    return metrics[:CHAIN_TOP_N]


def _random_hex(rng: random.Random, length: int) -> str:
    return "0x" + "".join(rng.choice("0123456789abcdef") for _ in range(length))


def generate_whale_batch(
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    count: int = WHALE_BATCH_SIZE,
) -> List[WhaleTransfer]:
    """Generate placeholder whale transfers from the last hour, newest first."""
    rng = rng or random.Random()
    now = now or utcnow()
    blockchains = ["Ethereum", "BSC", "Bitcoin"]
    symbols = ["BTC", "ETH", "USDT", "USDC", "BNB"]
    directions = list(WhaleDirection)

    transfers = []
    for _ in range(count):
        # rng.random() is in [0, 1); adding a cent keeps amounts strictly above the threshold
        amount_usd = rng.random() * 50_000_000 + WHALE_THRESHOLD_USD + 0.01
        transfers.append(WhaleTransfer(
            blockchain=rng.choice(blockchains),
            symbol=rng.choice(symbols),
            amount=amount_usd / (rng.random() * 50_000 + 1_000),
            amount_usd=amount_usd,
            from_address=_random_hex(rng, 40),
            to_address=_random_hex(rng, 40),
            direction=rng.choice(directions),
            timestamp=now - timedelta(milliseconds=rng.randrange(3_600_000)),
            tx_hash=_random_hex(rng, 64),
        ))

    transfers.sort(key=lambda t: t.timestamp, reverse=True)
    return transfers


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class BaseDataSource(ABC):
    """Base class for external data sources.

    Subclasses implement the upstream call; the base wraps it with a time
    bound, health bookkeeping and the injected stale-tolerant cache.
    """

    def __init__(self, source_type: DataSourceType, config: SourceConfig, cache: StaleTolerantCache):
        self.source_type = source_type
        self.config = config
        self.cache = cache
        self._last_fetch: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._healthy = True
        self._using_fallback = False

    def _key(self, name: str) -> str:
        return f"{self.source_type.value}:{name}"

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a JSON document, raising UpstreamError on non-200 or bad body."""
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, params=params) as resp:
                if resp.status != 200:
                    raise UpstreamError(f"{self.source_type.value} upstream returned {resp.status}")
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise UpstreamError(f"{self.source_type.value} upstream sent malformed JSON: {e}") from e

    async def _cached(
        self,
        name: str,
        fetch: Callable[[], Any],
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Any:
        """Serve ``name`` from cache, refreshing through a time-bounded ``fetch``."""
        if not self.config.enabled:
            if fallback is None:
                raise UpstreamError(f"{self.source_type.value} source is disabled")
            return self._disabled_value(name, fallback)

        async def bounded_fetch():
            try:
                value = await asyncio.wait_for(fetch(), timeout=self.config.timeout_seconds)
            except asyncio.TimeoutError:
                self._record_failure(f"timed out after {self.config.timeout_seconds}s")
                raise
            except Exception as e:
                self._record_failure(str(e) or type(e).__name__)
                raise
            self._healthy = True
            self._last_error = None
            self._using_fallback = False
            self._last_fetch = utcnow()
            return value

        def seeded_fallback():
            self._using_fallback = True
            return fallback()

        return await self.cache.get_or_refresh(
            self._key(name),
            self.config.ttl_seconds,
            bounded_fetch,
            fallback=seeded_fallback if fallback is not None else None,
        )

    def _disabled_value(self, name: str, fallback: Callable[[], Any]) -> Any:
        """Serve a disabled source's fallback, cached at the source TTL like real data."""
        self._using_fallback = True
        key = self._key(name)
        entry = self.cache.peek(key)
        if entry is not None and entry.is_fresh(self.cache.now()):
            return entry.value
        return self.cache.seed(key, fallback(), self.config.ttl_seconds).value

    def _record_failure(self, message: str) -> None:
        self._healthy = False
        self._last_error = message
        logger.error(f"Error fetching from {self.source_type.value}: {message}")

    def get_status(self) -> DataSourceStatus:
        """Get the status of this data source."""
        data_age = None
        if self._last_fetch:
            data_age = int((utcnow() - self._last_fetch).total_seconds())

        return DataSourceStatus(
            source_type=self.source_type,
            enabled=self.config.enabled,
            healthy=self._healthy,
            using_fallback=self._using_fallback,
            last_fetch=self._last_fetch,
            last_error=self._last_error,
            data_age_seconds=data_age,
        )

    @abstractmethod
    def fallback(self) -> Any:
        """Synthetic value served when no real data was ever obtained."""


class MarketDataSource(BaseDataSource):
    """Top assets by market capitalization."""

    def __init__(
        self,
        config: SourceConfig,
        cache: StaleTolerantCache,
        top_limit: int = 100,
        details_limit: int = 250,
    ):
        super().__init__(DataSourceType.MARKET, config, cache)
        self.top_limit = top_limit
        self.details_limit = details_limit

    async def fetch_top(self, limit: int) -> List[MarketAsset]:
        data = await self._get_json(
            f"{self.config.url}/coins/markets",
            params={
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": limit,
                "page": 1,
                "sparkline": "false",
                "price_change_percentage": "24h,7d",
            },
        )
        if not isinstance(data, list):
            raise UpstreamError("Unexpected /coins/markets payload")
        return [MarketAsset.from_api(item) for item in data]

    async def fetch_global(self) -> GlobalMarketStats:
        data = await self._get_json(f"{self.config.url}/global")
        try:
            market_data = data["data"]
            return GlobalMarketStats(
                btc_dominance=_float(market_data["market_cap_percentage"]["btc"]),
                total_market_cap=_float(market_data["total_market_cap"]["usd"]),
                timestamp=utcnow(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Unexpected /global payload: {e}") from e

    def fallback(self, limit: Optional[int] = None) -> List[MarketAsset]:
        return synthetic_market_assets()[:limit or self.top_limit]

    async def get_top_assets(self, limit: Optional[int] = None) -> List[MarketAsset]:
        """Current top ``limit`` assets by market cap (default: configured top limit)."""
        limit = limit or self.top_limit
        return await self._cached(
            f"top-{limit}",
            lambda: self.fetch_top(limit),
            fallback=lambda: self.fallback(limit),
        )

    async def get_asset_details(self, symbol: str) -> Optional[MarketAsset]:
        """Case-insensitive symbol lookup within the wider top list; None if absent."""
        assets = await self.get_top_assets(self.details_limit)
        wanted = symbol.lower()
        for asset in assets:
            if asset.symbol.lower() == wanted:
                return asset
        return None

    async def get_volume_view(self) -> List[VolumeEntry]:
        return build_volume_view(await self.get_top_assets())

    async def get_market_movers(self) -> MarketMovers:
        """Ten biggest 24h gainers and losers above the market cap floor."""
        assets = await self.get_top_assets()
        filtered = [a for a in assets if a.market_cap > MOVERS_MARKET_CAP_FLOOR]
        ranked = sorted(filtered, key=lambda a: a.change_24h, reverse=True)
        return MarketMovers(
            gainers=ranked[:MOVERS_COUNT],
            losers=list(reversed(ranked[-MOVERS_COUNT:])),
        )

    async def get_global_stats(self) -> GlobalMarketStats:
        """BTC dominance and total market cap. Raises SourceUnavailableError if never fetched."""
        return await self._cached("global", self.fetch_global)


class SentimentSource(BaseDataSource):
    """Fear and Greed Index data source."""

    def __init__(self, config: SourceConfig, cache: StaleTolerantCache):
        super().__init__(DataSourceType.SENTIMENT, config, cache)

    async def fetch(self) -> SentimentReading:
        data = await self._get_json(self.config.url)
        try:
            current = data["data"][0]
            value = int(current["value"])
            timestamp = datetime.fromtimestamp(int(current["timestamp"]), tz=timezone.utc)
            classification = str(current["value_classification"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise UpstreamError(f"Unexpected Fear & Greed payload: {e}") from e

        if not 0 <= value <= 100:
            raise UpstreamError(f"Fear & Greed value out of range: {value}")

        return SentimentReading(
            value=value,
            classification=classification,
            timestamp=timestamp,
            next_update=str(current.get("time_until_update") or "N/A"),
        )

    def fallback(self) -> SentimentReading:
        return SentimentReading(
            value=50,
            classification="Neutral",
            timestamp=utcnow(),
            next_update="Error fetching data",
        )

    async def get_fear_greed(self) -> SentimentReading:
        return await self._cached("index", self.fetch, fallback=self.fallback)


class WhaleSource(BaseDataSource):
    """Large transfer tracker.

    No free live feed exists, so without a configured URL every refresh
    generates a placeholder batch. Consumers must not treat it as real data.
    """

    def __init__(self, config: SourceConfig, cache: StaleTolerantCache, rng: Optional[random.Random] = None):
        super().__init__(DataSourceType.WHALES, config, cache)
        self._rng = rng or random.Random()

    async def fetch(self) -> List[WhaleTransfer]:
        if not self.config.url:
            return generate_whale_batch(self._rng)

        data = await self._get_json(self.config.url)
        if not isinstance(data, list):
            raise UpstreamError("Unexpected whale feed payload")
        try:
            transfers = [
                WhaleTransfer(
                    blockchain=str(item["blockchain"]),
                    symbol=str(item["symbol"]).upper(),
                    amount=_float(item.get("amount")),
                    amount_usd=_float(item["amount_usd"]),
                    from_address=str(item.get("from", "")),
                    to_address=str(item.get("to", "")),
                    direction=WhaleDirection(item.get("type", "transfer")),
                    timestamp=datetime.fromtimestamp(int(item["timestamp"]) / 1000, tz=timezone.utc),
                    tx_hash=str(item.get("hash", "")),
                )
                for item in data
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed whale transfer: {e}") from e

        transfers = [t for t in transfers if t.amount_usd > WHALE_THRESHOLD_USD]
        transfers.sort(key=lambda t: t.timestamp, reverse=True)
        return transfers

    def fallback(self) -> List[WhaleTransfer]:
        return generate_whale_batch(self._rng)

    async def get_recent_transfers(self) -> List[WhaleTransfer]:
        return await self._cached("recent", self.fetch, fallback=self.fallback)

    async def get_flow(self) -> WhaleFlow:
        transfers = await self.get_recent_transfers()
        accumulation = sum(t.amount_usd for t in transfers if t.direction == WhaleDirection.ACCUMULATION)
        distribution = sum(t.amount_usd for t in transfers if t.direction == WhaleDirection.DISTRIBUTION)
        return WhaleFlow(
            accumulation=accumulation,
            distribution=distribution,
            net_flow=accumulation - distribution,
        )


FALLBACK_CHAINS = [
    {"name": "Ethereum", "tvl": 45_000_000_000, "change_1d": 2.5, "protocols": 450},
    {"name": "BSC", "tvl": 8_500_000_000, "change_1d": -1.2, "protocols": 380},
    {"name": "Tron", "tvl": 7_200_000_000, "change_1d": 0.8, "protocols": 45},
    {"name": "Arbitrum", "tvl": 3_800_000_000, "change_1d": 5.2, "protocols": 220},
    {"name": "Polygon", "tvl": 2_900_000_000, "change_1d": -0.5, "protocols": 310},
    {"name": "Optimism", "tvl": 2_100_000_000, "change_1d": 3.1, "protocols": 150},
    {"name": "Avalanche", "tvl": 1_800_000_000, "change_1d": -2.3, "protocols": 180},
    {"name": "Base", "tvl": 1_500_000_000, "change_1d": 8.7, "protocols": 95},
]


class ChainActivitySource(BaseDataSource):
    """Per-chain TVL from DefiLlama."""

    def __init__(self, config: SourceConfig, cache: StaleTolerantCache):
        super().__init__(DataSourceType.CHAINS, config, cache)

    async def fetch(self) -> List[ChainMetric]:
        data = await self._get_json(f"{self.config.url}/v2/chains")
        if not isinstance(data, list):
            raise UpstreamError("Unexpected /v2/chains payload")
        try:
            return process_chains(data)
        except (AttributeError, TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed chain row: {e}") from e

    def fallback(self) -> List[ChainMetric]:
        return process_chains(FALLBACK_CHAINS)

    async def get_chain_activity(self) -> List[ChainMetric]:
        return await self._cached("chains", self.fetch, fallback=self.fallback)

    async def get_tvl_trend(self) -> TvlTrend:
        chains = await self.get_chain_activity()
        return TvlTrend(
            increasing=sum(1 for c in chains if c.tvl_change_24h > 0),
            decreasing=sum(1 for c in chains if c.tvl_change_24h < 0),
        )


class NewsSource(BaseDataSource):
    """Crypto headlines from CryptoPanic."""

    def __init__(self, config: SourceConfig, cache: StaleTolerantCache):
        super().__init__(DataSourceType.NEWS, config, cache)

    async def fetch(self) -> List[NewsItem]:
        data = await self._get_json(
            self.config.url,
            params={
                "auth_token": self.config.api_key or "free",
                "public": "true",
                "kind": "news",
            },
        )
        try:
            results = data["results"][:NEWS_LIMIT]
            return [
                NewsItem(
                    title=item["title"],
                    # the free tier has no description field
                    description=item.get("description") or item["title"],
                    url=item["url"],
                    source=(item.get("source") or {}).get("title") or "Unknown",
                    published_at=datetime.fromisoformat(item["published_at"].replace("Z", "+00:00")),
                    sentiment=classify_sentiment(item["title"]),
                )
                for item in results
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UpstreamError(f"Malformed news payload: {e}") from e

    def fallback(self) -> List[NewsItem]:
        now = utcnow()
        headlines = [
            ("Bitcoin rally extends as institutional adoption grows",
             "Major institutions continue to increase their Bitcoin holdings",
             "https://example.com/news1", "CryptoNews", 30),
            ("Ethereum upgrade improves network scalability",
             "Latest Ethereum upgrade shows promising results",
             "https://example.com/news2", "CoinTelegraph", 60),
            ("Regulatory concerns drive altcoin decline",
             "New regulations being discussed in major markets",
             "https://example.com/news3", "BlockNews", 90),
        ]
        return [
            NewsItem(
                title=title,
                description=description,
                url=url,
                source=source,
                published_at=now - timedelta(minutes=minutes_ago),
                sentiment=classify_sentiment(title),
            )
            for title, description, url, source, minutes_ago in headlines
        ]

    async def get_latest_news(self) -> List[NewsItem]:
        return await self._cached("latest", self.fetch, fallback=self.fallback)


def synthetic_market_assets() -> List[MarketAsset]:
    """Calm placeholder market used when CoinGecko was never reachable."""
    rows = [
        ("bitcoin", "btc", "Bitcoin", 65_000.0, 1_280_000_000_000, 28_000_000_000, 0.8, 2.1, 73_700.0, -11.8),
        ("ethereum", "eth", "Ethereum", 3_200.0, 385_000_000_000, 14_000_000_000, 1.1, 3.4, 4_878.0, -34.4),
        ("tether", "usdt", "Tether", 1.0, 110_000_000_000, 45_000_000_000, 0.0, 0.0, 1.32, -24.2),
        ("binancecoin", "bnb", "BNB", 580.0, 85_000_000_000, 1_500_000_000, -0.4, 1.2, 720.0, -19.4),
        ("solana", "sol", "Solana", 145.0, 67_000_000_000, 2_600_000_000, 2.3, -1.5, 260.0, -44.2),
        ("usd-coin", "usdc", "USDC", 1.0, 33_000_000_000, 6_000_000_000, 0.0, 0.0, 1.17, -14.5),
        ("ripple", "xrp", "XRP", 0.52, 29_000_000_000, 1_100_000_000, -1.0, 0.6, 3.40, -84.7),
    ]
    return [
        MarketAsset(
            id=coin_id,
            symbol=symbol,
            name=name,
            rank=rank,
            price=price,
            market_cap=market_cap,
            total_volume=volume,
            change_24h=change_24h,
            change_7d=change_7d,
            ath=ath,
            ath_change_percentage=ath_change,
        )
        for rank, (coin_id, symbol, name, price, market_cap, volume, change_24h, change_7d, ath, ath_change)
        in enumerate(rows, start=1)
    ]


def build_sources(
    settings: TerminalSettings,
    clock: Callable[[], float] = time.monotonic,
    rng: Optional[random.Random] = None,
) -> Dict[DataSourceType, BaseDataSource]:
    """Construct every source with its own independently built cache."""

    def cache_for(source_type: DataSourceType) -> StaleTolerantCache:
        return StaleTolerantCache(name=f"{source_type.value}-cache", clock=clock)

    return {
        DataSourceType.MARKET: MarketDataSource(
            settings.source("market"),
            cache_for(DataSourceType.MARKET),
            top_limit=settings.top_limit,
            details_limit=settings.details_limit,
        ),
        DataSourceType.SENTIMENT: SentimentSource(settings.source("sentiment"), cache_for(DataSourceType.SENTIMENT)),
        DataSourceType.WHALES: WhaleSource(settings.source("whales"), cache_for(DataSourceType.WHALES), rng=rng),
        DataSourceType.CHAINS: ChainActivitySource(settings.source("chains"), cache_for(DataSourceType.CHAINS)),
        DataSourceType.NEWS: NewsSource(settings.source("news"), cache_for(DataSourceType.NEWS)),
    }


class ExternalDataService:
    """Unified interface to all external data sources.

    Provides:
    - Concurrent assembly of the full snapshot and the periodic update
    - Signal detection over the current market view
    - Per-source health reporting
    """

    def __init__(
        self,
        settings: Optional[TerminalSettings] = None,
        sources: Optional[Dict[DataSourceType, BaseDataSource]] = None,
        detector: Optional[MarketSignalDetector] = None,
    ):
        self.settings = settings or TerminalSettings()
        self._sources = sources if sources is not None else build_sources(self.settings)
        self._detector = detector or MarketSignalDetector()

    @property
    def market(self) -> MarketDataSource:
        return self._sources[DataSourceType.MARKET]

    @property
    def sentiment(self) -> SentimentSource:
        return self._sources[DataSourceType.SENTIMENT]

    @property
    def whales(self) -> WhaleSource:
        return self._sources[DataSourceType.WHALES]

    @property
    def chains(self) -> ChainActivitySource:
        return self._sources[DataSourceType.CHAINS]

    @property
    def news(self) -> NewsSource:
        return self._sources[DataSourceType.NEWS]

    def detect_signals(self, assets: List[MarketAsset]) -> List[Signal]:
        try:
            volume_view = build_volume_view(assets)
        except (AttributeError, TypeError) as e:
            logger.error(f"Could not build volume view: {e}")
            volume_view = []
        return self._detector.detect(assets, volume_view)

    async def get_signals(self) -> List[Signal]:
        """Run a detection pass over the current market view."""
        return self.detect_signals(await self.market.get_top_assets())

    async def get_snapshot(self) -> MarketSnapshot:
        """Fetch all five views concurrently and run a detection pass."""
        market_data, fear_greed, whales, chains, news = await asyncio.gather(
            self.market.get_top_assets(),
            self.sentiment.get_fear_greed(),
            self.whales.get_recent_transfers(),
            self.chains.get_chain_activity(),
            self.news.get_latest_news(),
        )
        return MarketSnapshot(
            market_data=market_data,
            fear_greed=fear_greed,
            whales=whales,
            chain_activity=chains,
            news=news,
            signals=self.detect_signals(market_data),
        )

    async def get_update(self) -> MarketUpdate:
        """Refresh the fast-changing views (market, sentiment) and recompute signals."""
        market_data, fear_greed = await asyncio.gather(
            self.market.get_top_assets(),
            self.sentiment.get_fear_greed(),
        )
        return MarketUpdate(
            market_data=market_data,
            fear_greed=fear_greed,
            signals=self.detect_signals(market_data),
        )

    def get_all_statuses(self) -> List[DataSourceStatus]:
        """Get status of all data sources."""
        return [source.get_status() for source in self._sources.values()]
