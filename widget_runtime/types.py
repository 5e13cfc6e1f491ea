from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


class PropertyType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DECIMAL = "decimal"
    ENUMERATION = "enumeration"
    EXPRESSION = "expression"
    TEXT_TEMPLATE = "textTemplate"
    FILE = "file"
    ATTRIBUTE = "attribute"
    ASSOCIATION = "association"
    OBJECT = "object"
    DATASOURCE = "datasource"
    ICON = "icon"
    IMAGE = "image"
    WIDGETS = "widgets"
    ACTION = "action"

    @classmethod
    def coerce(cls, value: Any) -> Optional["PropertyType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class LifecycleState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    DESTROYED = "destroyed"


# Anything a bundle may export as a component: a function of props, or a class with render().
ComponentRef = Callable[..., Any]


@dataclass(frozen=True)
class BundleHandle:
    """One compiled widget. A new handle always means a new sandbox."""

    script: str
    stylesheet: str = ""
    component_name: str = ""
    component_id: str = ""
    handle_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def content_hash(self) -> str:
        digest = hashlib.sha256()
        for part in (self.script, self.stylesheet, self.component_name, self.component_id):
            digest.update((part or "").encode("utf-8"))
            digest.update(b"\x00")
        return digest.hexdigest()
