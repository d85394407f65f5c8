# API Routers

from . import health, market, websocket

__all__ = ["health", "market", "websocket"]
