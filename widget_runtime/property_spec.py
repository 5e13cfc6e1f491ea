"""Static description of a widget's configurable inputs.

The spec arrives from collaborators in one of two plain shapes: a list of
property dicts, or a ``{"properties": [...], "propertyGroups": [...]}``
dict as produced by the widget XML parser. Both parse into the same tree
of :class:`PropertyGroup` and :class:`PropertyNode`. ``to_dict`` gives the
canonical plain form that travels over the bridge.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from .errors import PropertySpecError
from .types import PropertyType


@dataclass(frozen=True)
class PropertyNode:
    key: str
    type: str
    caption: str = ""
    is_list: bool = False
    options: List[str] = field(default_factory=list)
    data_source_ref: Optional[str] = None
    nested_groups: List["PropertyGroup"] = field(default_factory=list)
    description: str = ""
    default_value: Optional[str] = None
    required: bool = False

    @property
    def kind(self) -> Optional[PropertyType]:
        return PropertyType.coerce(self.type)

    @property
    def is_object_list(self) -> bool:
        return self.kind is PropertyType.OBJECT and self.is_list

    def nested_spec(self) -> "PropertySpec":
        return PropertySpec(properties=[], property_groups=list(self.nested_groups))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "key": self.key,
            "type": self.type,
            "caption": self.caption,
            "isList": self.is_list,
        }
        if self.options:
            data["options"] = list(self.options)
        if self.data_source_ref:
            data["dataSource"] = self.data_source_ref
        if self.nested_groups:
            data["nestedPropertyGroups"] = [group.to_dict() for group in self.nested_groups]
        if self.description:
            data["description"] = self.description
        if self.default_value is not None:
            data["defaultValue"] = self.default_value
        if self.required:
            data["required"] = True
        return data


@dataclass(frozen=True)
class PropertyGroup:
    caption: str = ""
    properties: List[PropertyNode] = field(default_factory=list)
    property_groups: List["PropertyGroup"] = field(default_factory=list)

    def iter_nodes(self) -> Iterator[PropertyNode]:
        yield from self.properties
        for group in self.property_groups:
            yield from group.iter_nodes()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "caption": self.caption,
            "properties": [node.to_dict() for node in self.properties],
            "propertyGroups": [group.to_dict() for group in self.property_groups],
        }


@dataclass(frozen=True)
class PropertySpec:
    properties: List[PropertyNode] = field(default_factory=list)
    property_groups: List[PropertyGroup] = field(default_factory=list)

    def flatten(self) -> List[PropertyNode]:
        nodes = list(self.properties)
        for group in self.property_groups:
            nodes.extend(group.iter_nodes())
        return nodes

    def find(self, key: str) -> Optional[PropertyNode]:
        for node in self.flatten():
            if node.key == key:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "properties": [node.to_dict() for node in self.properties],
            "propertyGroups": [group.to_dict() for group in self.property_groups],
        }


def _first(data: Dict[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _parse_options(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    options = []
    for option in raw:
        if isinstance(option, dict):
            option = option.get("key", option.get("value"))
        if option is not None:
            options.append(str(option))
    return options


def _parse_node(data: Any) -> PropertyNode:
    if isinstance(data, PropertyNode):
        return data
    if not isinstance(data, dict):
        raise PropertySpecError(f"property entry must be a dict, got {type(data).__name__}")
    key = data.get("key")
    if not isinstance(key, str) or not key.strip():
        raise PropertySpecError("property entry without a key")
    prop_type = _first(data, "type", "property_type", default="")
    nested_raw = _first(data, "nestedPropertyGroups", "nested_property_groups", "nestedGroups", default=[])
    default_value = _first(data, "defaultValue", "default_value")
    return PropertyNode(
        key=key,
        type=str(prop_type),
        caption=str(_first(data, "caption", default="")),
        is_list=_as_bool(_first(data, "isList", "is_list", default=False)),
        options=_parse_options(data.get("options")),
        data_source_ref=_first(data, "dataSource", "data_source", "dataSourceRef"),
        nested_groups=_parse_groups(nested_raw),
        description=str(_first(data, "description", default="")),
        default_value=None if default_value is None else str(default_value),
        required=_as_bool(data.get("required", False)),
    )


def _parse_nodes(raw: Any, where: str) -> List[PropertyNode]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise PropertySpecError(f"{where}: properties must be a list")
    nodes = [_parse_node(entry) for entry in raw]
    seen: set[str] = set()
    for node in nodes:
        if node.key in seen:
            raise PropertySpecError(f"{where}: duplicate property key '{node.key}'")
        seen.add(node.key)
    return nodes


def _parse_groups(raw: Any) -> List[PropertyGroup]:
    if not raw:
        return []
    if not isinstance(raw, list):
        raise PropertySpecError("propertyGroups must be a list")
    groups = []
    for entry in raw:
        if isinstance(entry, PropertyGroup):
            groups.append(entry)
            continue
        if not isinstance(entry, dict):
            raise PropertySpecError("property group must be a dict")
        caption = str(entry.get("caption") or "")
        groups.append(
            PropertyGroup(
                caption=caption,
                properties=_parse_nodes(entry.get("properties"), f"group '{caption}'"),
                property_groups=_parse_groups(_first(entry, "propertyGroups", "property_groups", default=[])),
            )
        )
    return groups


def parse_property_spec(raw: Any) -> PropertySpec:
    if isinstance(raw, PropertySpec):
        return raw
    if raw is None:
        return PropertySpec()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PropertySpecError(f"property spec is not valid JSON: {exc}") from exc
    if isinstance(raw, list):
        return PropertySpec(properties=_parse_nodes(raw, "properties"))
    if isinstance(raw, dict):
        return PropertySpec(
            properties=_parse_nodes(raw.get("properties"), "properties"),
            property_groups=_parse_groups(_first(raw, "propertyGroups", "property_groups", default=[])),
        )
    raise PropertySpecError(f"unsupported property spec shape: {type(raw).__name__}")


def coerce_default(node: PropertyNode) -> Any:
    value = node.default_value
    kind = node.kind
    if kind is PropertyType.BOOLEAN:
        return _as_bool(value)
    if kind is PropertyType.INTEGER:
        try:
            return int(value)
        except (TypeError, ValueError):
            return value
    if kind is PropertyType.DECIMAL:
        try:
            return float(value)
        except (TypeError, ValueError):
            return value
    return value


def default_values(spec: Any) -> Dict[str, Any]:
    """Initial value map built from the spec's default values."""
    values: Dict[str, Any] = {}
    for node in parse_property_spec(spec).flatten():
        if node.default_value is not None:
            values[node.key] = coerce_default(node)
        elif node.kind is PropertyType.ENUMERATION and node.options:
            values[node.key] = node.options[0]
    return values
