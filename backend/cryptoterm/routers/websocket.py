"""WebSocket router for the live terminal feed."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging

from ..dependencies import get_ws_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for the terminal.

    Messages from client:
    - {"command": "refresh"}
    - {"command": "details", "args": {"symbol": "BTC"}}
    - {"command": "whales"}
    - {"command": "signals"}
    - {"command": "help"}

    Messages to client:
    - {"type": "initial", "data": {market_data, fear_greed, whales, chain_activity, news, signals}}
    - {"type": "update", "data": {market_data, fear_greed, signals, timestamp}}
    - {"type": "details" | "whales" | "signals" | "help", "data": ...}
    - {"type": "error", "data": "<message>"}
    """
    manager = get_ws_manager(websocket)

    try:
        subscriber = await manager.connect_client(websocket)
    except WebSocketDisconnect:
        return
    except Exception as e:
        logger.error(f"Failed to initialize WebSocket client: {e}")
        try:
            await websocket.close(code=1011)
        except Exception as close_error:
            # the peer is usually already gone here
            logger.debug(f"Error closing WebSocket after failed init: {close_error}")
        return

    try:
        while True:
            message = await websocket.receive_text()
            manager.dispatch(subscriber, message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await manager.disconnect_client(subscriber)
