from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Union

from . import topics


class UnknownMessageError(ValueError):
    """Raised when an envelope does not carry one of the bridge message types."""


@dataclass(frozen=True)
class IframeReady:
    component_name: str = ""


@dataclass(frozen=True)
class UpdateProperties:
    properties: Dict[str, Any] = field(default_factory=dict)
    spec: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DatasourceCommit:
    datasource_key: str
    items: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class SandboxError:
    error_type: str
    message: str


BridgeMessage = Union[IframeReady, UpdateProperties, DatasourceCommit, SandboxError]

_TYPE_BY_CLASS = {
    IframeReady: topics.IFRAME_READY,
    UpdateProperties: topics.UPDATE_PROPERTIES,
    DatasourceCommit: topics.DATASOURCE_COMMIT,
    SandboxError: topics.SANDBOX_ERROR,
}


@dataclass(slots=True)
class MessageEnvelope:
    """Envelope for all bridge traffic, stamped with the sandbox generation."""

    msg_id: str
    type: str
    timestamp: str
    source: str
    generation: int
    payload: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "msg_id": self.msg_id,
            "type": self.type,
            "timestamp": self.timestamp,
            "source": self.source,
            "generation": self.generation,
            "payload": copy.deepcopy(self.payload),
        }


def _iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def message_type(message: BridgeMessage) -> str:
    msg_type = _TYPE_BY_CLASS.get(type(message))
    if msg_type is None:
        raise UnknownMessageError(f"not a bridge message: {type(message).__name__}")
    return msg_type


def encode_message(message: BridgeMessage, *, source: str, generation: int) -> MessageEnvelope:
    """Wrap a typed message; the payload is a deep copy so no state is shared."""
    msg_type = message_type(message)
    if isinstance(message, IframeReady):
        payload: Dict[str, object] = {"component_name": message.component_name}
    elif isinstance(message, UpdateProperties):
        payload = {"properties": message.properties, "spec": message.spec}
    elif isinstance(message, DatasourceCommit):
        payload = {"datasource_key": message.datasource_key, "items": message.items}
    else:
        payload = {"error_type": message.error_type, "message": message.message}
    return MessageEnvelope(
        msg_id=str(uuid.uuid4()),
        type=msg_type,
        timestamp=_iso_timestamp(),
        source=source,
        generation=int(generation),
        payload=copy.deepcopy(payload),
    )


def decode_message(envelope: MessageEnvelope) -> BridgeMessage:
    payload = envelope.payload if isinstance(envelope.payload, dict) else {}
    if envelope.type == topics.IFRAME_READY:
        return IframeReady(component_name=str(payload.get("component_name") or ""))
    if envelope.type == topics.UPDATE_PROPERTIES:
        return UpdateProperties(
            properties=dict(payload.get("properties") or {}),
            spec=dict(payload.get("spec") or {}),
        )
    if envelope.type == topics.DATASOURCE_COMMIT:
        key = payload.get("datasource_key")
        if not isinstance(key, str):
            raise UnknownMessageError("datasource commit without a datasource key")
        return DatasourceCommit(datasource_key=key, items=list(payload.get("items") or []))
    if envelope.type == topics.SANDBOX_ERROR:
        return SandboxError(
            error_type=str(payload.get("error_type") or "Error"),
            message=str(payload.get("message") or ""),
        )
    raise UnknownMessageError(f"unknown message type: {envelope.type!r}")
