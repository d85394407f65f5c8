"""Messages exchanged with terminal subscribers.

Outbound messages are a closed set of dataclasses, one per ``type``. Inbound
messages decode into a closed set of command variants; anything else raises
CommandError, whose text is sent back as an ``error`` message.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ValidationError

from ..external_data import MarketAsset, MarketSnapshot, MarketUpdate, WhaleTransfer
from ..market_signals import Signal


class MessageType(str, Enum):
    """Outbound message types."""
    INITIAL = "initial"
    UPDATE = "update"
    DETAILS = "details"
    WHALES = "whales"
    SIGNALS = "signals"
    ERROR = "error"
    HELP = "help"


class CommandType(str, Enum):
    """Inbound command names."""
    REFRESH = "refresh"
    DETAILS = "details"
    WHALES = "whales"
    SIGNALS = "signals"
    HELP = "help"


COMMAND_CATALOGUE = [
    "refresh - Refresh all data",
    "details <symbol> - Get detailed info for a crypto",
    "whales - Show recent whale transactions",
    "signals - Show current market signals",
    "help - Show this help message",
]


@dataclass
class InitialMessage:
    data: MarketSnapshot
    type: MessageType = MessageType.INITIAL


@dataclass
class UpdateMessage:
    data: MarketUpdate
    type: MessageType = MessageType.UPDATE


@dataclass
class DetailsMessage:
    data: Optional[MarketAsset]
    type: MessageType = MessageType.DETAILS


@dataclass
class WhalesMessage:
    data: List[WhaleTransfer]
    type: MessageType = MessageType.WHALES


@dataclass
class SignalsMessage:
    data: List[Signal]
    type: MessageType = MessageType.SIGNALS


@dataclass
class ErrorMessage:
    data: str
    type: MessageType = MessageType.ERROR


@dataclass
class HelpMessage:
    data: Dict[str, List[str]] = field(default_factory=lambda: {"commands": list(COMMAND_CATALOGUE)})
    type: MessageType = MessageType.HELP


OutboundMessage = Union[
    InitialMessage,
    UpdateMessage,
    DetailsMessage,
    WhalesMessage,
    SignalsMessage,
    ErrorMessage,
    HelpMessage,
]


def encode_message(message: OutboundMessage) -> Dict[str, Any]:
    """Convert an outbound message to a JSON-ready dict ({"type", "data"})."""
    return jsonable_encoder({"type": message.type, "data": message.data})


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

class CommandError(Exception):
    """An inbound message was rejected; str(e) is the reply sent to the client."""


class ClientCommand(BaseModel):
    """Raw shape of a client message."""
    command: str
    args: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class RefreshCommand:
    type: CommandType = CommandType.REFRESH


@dataclass(frozen=True)
class DetailsCommand:
    symbol: str
    type: CommandType = CommandType.DETAILS


@dataclass(frozen=True)
class WhalesCommand:
    type: CommandType = CommandType.WHALES


@dataclass(frozen=True)
class SignalsCommand:
    type: CommandType = CommandType.SIGNALS


@dataclass(frozen=True)
class HelpCommand:
    type: CommandType = CommandType.HELP


Command = Union[RefreshCommand, DetailsCommand, WhalesCommand, SignalsCommand, HelpCommand]


def parse_command(raw: str) -> Command:
    """Decode a client message into a command variant.

    Raises:
        CommandError: undecodable JSON, wrong shape, unknown command or
            missing required argument.
    """
    try:
        payload = json.loads(raw)
        client_command = ClientCommand.model_validate(payload)
    except (ValueError, ValidationError):
        raise CommandError("Invalid command")

    name = client_command.command
    args = client_command.args or {}

    if name == CommandType.REFRESH.value:
        return RefreshCommand()
    if name == CommandType.DETAILS.value:
        symbol = args.get("symbol")
        if not isinstance(symbol, str) or not symbol.strip():
            raise CommandError(f"Command '{name}' requires args.symbol")
        return DetailsCommand(symbol=symbol.strip())
    if name == CommandType.WHALES.value:
        return WhalesCommand()
    if name == CommandType.SIGNALS.value:
        return SignalsCommand()
    if name == CommandType.HELP.value:
        return HelpCommand()

    raise CommandError(f"Unknown command: {name}")
