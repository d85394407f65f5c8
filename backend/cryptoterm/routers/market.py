"""Market data API router.

Read-only REST views over the same cached sources the WebSocket feed uses:
- Top assets, single asset details, market movers, global stats
- Fear & Greed reading
- Whale transfers and net flow
- Chain TVL and TVL trend
- News headlines
- Current signals and per-source status
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from ..dependencies import get_data_service
from ..services.cache import SourceUnavailableError
from ..services.external_data import (
    ChainMetric,
    ExternalDataService,
    MarketAsset,
    MarketMovers,
    NewsItem,
    SentimentReading,
    TvlTrend,
    UpstreamError,
    WhaleFlow,
    WhaleTransfer,
)
from ..services.market_signals import Signal

router = APIRouter()


class GlobalStatsResponse(BaseModel):
    """Market-wide aggregates response."""
    btc_dominance: float
    total_market_cap: float
    timestamp: str


class SourceStatusResponse(BaseModel):
    """Per-source health response."""
    source: str
    enabled: bool
    healthy: bool
    using_fallback: bool
    last_fetch: Optional[str]
    last_error: Optional[str]
    data_age_seconds: Optional[int]


@router.get("/market/top", response_model=List[MarketAsset])
async def get_top_assets(
    limit: int = Query(100, ge=1, le=250),
    data: ExternalDataService = Depends(get_data_service),
):
    """Top assets by market capitalization."""
    return await data.market.get_top_assets(limit)


@router.get("/market/movers", response_model=MarketMovers)
async def get_market_movers(data: ExternalDataService = Depends(get_data_service)):
    """Biggest 24h gainers and losers among assets above $100M market cap."""
    return await data.market.get_market_movers()


@router.get("/market/global", response_model=GlobalStatsResponse)
async def get_global_stats(data: ExternalDataService = Depends(get_data_service)):
    """BTC dominance and total market cap."""
    try:
        stats = await data.market.get_global_stats()
    except (SourceUnavailableError, UpstreamError) as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Global market data unavailable: {e}"
        )
    return GlobalStatsResponse(
        btc_dominance=stats.btc_dominance,
        total_market_cap=stats.total_market_cap,
        timestamp=stats.timestamp.isoformat(),
    )


@router.get("/market/{symbol}", response_model=MarketAsset)
async def get_asset_details(symbol: str, data: ExternalDataService = Depends(get_data_service)):
    """Details for one asset by symbol (case-insensitive)."""
    asset = await data.market.get_asset_details(symbol)
    if asset is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Symbol not found: {symbol}"
        )
    return asset


@router.get("/sentiment", response_model=SentimentReading)
async def get_fear_greed(data: ExternalDataService = Depends(get_data_service)):
    """Current Fear & Greed Index reading."""
    return await data.sentiment.get_fear_greed()


@router.get("/whales", response_model=List[WhaleTransfer])
async def get_whale_transfers(data: ExternalDataService = Depends(get_data_service)):
    """Current whale transfer batch, newest first."""
    return await data.whales.get_recent_transfers()


@router.get("/whales/flow", response_model=WhaleFlow)
async def get_whale_flow(data: ExternalDataService = Depends(get_data_service)):
    """Accumulation vs distribution totals for the current batch."""
    return await data.whales.get_flow()


@router.get("/chains", response_model=List[ChainMetric])
async def get_chain_activity(data: ExternalDataService = Depends(get_data_service)):
    """Top chains by total value locked."""
    return await data.chains.get_chain_activity()


@router.get("/chains/trend", response_model=TvlTrend)
async def get_tvl_trend(data: ExternalDataService = Depends(get_data_service)):
    """How many chains gained / lost TVL over 24h."""
    return await data.chains.get_tvl_trend()


@router.get("/news", response_model=List[NewsItem])
async def get_news(data: ExternalDataService = Depends(get_data_service)):
    """Latest headlines with sentiment tags."""
    return await data.news.get_latest_news()


@router.get("/signals", response_model=List[Signal])
async def get_signals(data: ExternalDataService = Depends(get_data_service)):
    """Run a detection pass over the current market view."""
    return await data.get_signals()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@router.get("/sources/status", response_model=List[SourceStatusResponse])
async def get_source_statuses(data: ExternalDataService = Depends(get_data_service)):
    """Health of every upstream source."""
    return [
        SourceStatusResponse(
            source=s.source_type.value,
            enabled=s.enabled,
            healthy=s.healthy,
            using_fallback=s.using_fallback,
            last_fetch=_iso(s.last_fetch),
            last_error=s.last_error,
            data_age_seconds=s.data_age_seconds,
        )
        for s in data.get_all_statuses()
    ]
