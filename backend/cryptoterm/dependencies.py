"""FastAPI dependencies resolving the services built by create_app()."""

from fastapi import Request, WebSocket

from .services.external_data import ExternalDataService
from .services.websocket import WebSocketManager


def get_data_service(request: Request) -> ExternalDataService:
    return request.app.state.data_service


def get_ws_manager(websocket: WebSocket) -> WebSocketManager:
    return websocket.app.state.ws_manager
