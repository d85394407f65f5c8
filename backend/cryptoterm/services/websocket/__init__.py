# WebSocket Services
from .messages import (
    MessageType,
    CommandType,
    COMMAND_CATALOGUE,
    InitialMessage,
    UpdateMessage,
    DetailsMessage,
    WhalesMessage,
    SignalsMessage,
    ErrorMessage,
    HelpMessage,
    OutboundMessage,
    CommandError,
    Command,
    parse_command,
    encode_message,
)
from .registry import Subscriber, SubscriberRegistry
from .manager import BroadcastScheduler, WebSocketManager

__all__ = [
    # Messages
    "MessageType",
    "CommandType",
    "COMMAND_CATALOGUE",
    "InitialMessage",
    "UpdateMessage",
    "DetailsMessage",
    "WhalesMessage",
    "SignalsMessage",
    "ErrorMessage",
    "HelpMessage",
    "OutboundMessage",
    "CommandError",
    "Command",
    "parse_command",
    "encode_message",
    # Registry
    "Subscriber",
    "SubscriberRegistry",
    # Manager
    "BroadcastScheduler",
    "WebSocketManager",
]
