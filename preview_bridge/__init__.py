"""Message bridge between the preview host and its widget sandbox."""

from . import topics
from .bus import RuntimeBus
from .mailbox import Mailbox
from .messages import (
    BridgeMessage,
    DatasourceCommit,
    IframeReady,
    MessageEnvelope,
    SandboxError,
    UnknownMessageError,
    UpdateProperties,
    decode_message,
    encode_message,
)

__all__ = [
    "topics",
    "RuntimeBus",
    "Mailbox",
    "BridgeMessage",
    "DatasourceCommit",
    "IframeReady",
    "MessageEnvelope",
    "SandboxError",
    "UnknownMessageError",
    "UpdateProperties",
    "decode_message",
    "encode_message",
]
