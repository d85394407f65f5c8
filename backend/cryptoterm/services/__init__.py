# Business Logic Services

from .cache import (
    StaleTolerantCache,
    CacheEntry,
    SourceUnavailableError,
)
from .config import (
    ConfigService,
    ConfigValidationException,
    ConfigValidationError,
    SourceConfig,
    TerminalSettings,
)
from .logging_service import configure_logging
from .market_signals import (
    MarketSignalDetector,
    Signal,
    SignalKind,
    Severity,
)
from .external_data import (
    ExternalDataService,
    DataSourceType,
    UpstreamError,
    MarketAsset,
    VolumeEntry,
    SentimentReading,
    WhaleTransfer,
    ChainMetric,
    NewsItem,
    MarketSnapshot,
    MarketUpdate,
    build_sources,
)
from .websocket import (
    WebSocketManager,
    BroadcastScheduler,
    SubscriberRegistry,
    Subscriber,
)

__all__ = [
    # Cache
    "StaleTolerantCache",
    "CacheEntry",
    "SourceUnavailableError",
    # Config
    "ConfigService",
    "ConfigValidationException",
    "ConfigValidationError",
    "SourceConfig",
    "TerminalSettings",
    # Logging
    "configure_logging",
    # Signals
    "MarketSignalDetector",
    "Signal",
    "SignalKind",
    "Severity",
    # External Data
    "ExternalDataService",
    "DataSourceType",
    "UpstreamError",
    "MarketAsset",
    "VolumeEntry",
    "SentimentReading",
    "WhaleTransfer",
    "ChainMetric",
    "NewsItem",
    "MarketSnapshot",
    "MarketUpdate",
    "build_sources",
    # WebSocket
    "WebSocketManager",
    "BroadcastScheduler",
    "SubscriberRegistry",
    "Subscriber",
]
