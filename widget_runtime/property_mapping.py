from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .mock_data import Datasource, MockDataLayer, MockObject
from .property_spec import PropertyNode, PropertySpec, coerce_default, parse_property_spec
from .types import PropertyType

logger = logging.getLogger(__name__)


@dataclass
class DynamicValue:
    """Expression / text template value as the platform hands it to widgets."""

    value: Any = None
    status: str = "available"


@dataclass
class EditableValue:
    """Writable attribute wrapper around a raw value."""

    value: Any = None
    status: str = "available"
    read_only: bool = False
    validation: Optional[str] = None

    @property
    def display_value(self) -> str:
        return "" if self.value is None else str(self.value)

    def set_value(self, value: Any) -> None:
        logger.debug("attribute set_value: %r", value)
        self.value = value

    def set_validation(self, message: Optional[str]) -> None:
        self.validation = message


class BoundAttributeValue:
    """Per-item view of a list attribute; reads and writes go to the item."""

    def __init__(self, item: MockObject, field_name: str) -> None:
        self._item = item
        self.field = field_name
        self.status = "available"
        self.read_only = False
        self.validation: Optional[str] = None

    @property
    def value(self) -> Any:
        return self._item.get(self.field)

    @property
    def display_value(self) -> str:
        value = self.value
        return "" if value is None else str(value)

    def set_value(self, value: Any) -> None:
        self._item.set(self.field, value)


@dataclass
class ListAttributeValue:
    """Read/display wrapper bound to a field of a datasource's items."""

    field: str
    datasource: Optional[str] = None
    type: str = "String"

    def get(self, item: MockObject) -> BoundAttributeValue:
        return BoundAttributeValue(item, self.field)


@dataclass
class _MappingContext:
    data_layer: MockDataLayer
    key_prefix: str = ""
    datasource_keys: Dict[str, str] = field(default_factory=dict)


Strategy = Callable[[PropertyNode, Any, _MappingContext], Any]


def _passthrough(node: PropertyNode, raw: Any, ctx: _MappingContext) -> Any:
    return raw


def _map_datasource(node: PropertyNode, raw: Any, ctx: _MappingContext) -> Datasource:
    key = f"{ctx.key_prefix}{node.key}"
    ctx.datasource_keys[node.key] = key
    return ctx.data_layer.sync_datasource(key, raw)


def _map_attribute(node: PropertyNode, raw: Any, ctx: _MappingContext) -> Any:
    if raw is None or raw == "":
        return EditableValue(value=raw)
    # a present value names the bound field, with or without a datasource
    field_name = str(raw)
    datasource_key = None
    attr_type = "String"
    if node.data_source_ref:
        datasource_key = ctx.datasource_keys.get(node.data_source_ref, f"{ctx.key_prefix}{node.data_source_ref}")
        datasource = ctx.data_layer.datasource(datasource_key)
        if datasource is not None:
            attr_type = datasource.attribute_schema.get(field_name, {}).get("type", attr_type)
    return ListAttributeValue(field=field_name, datasource=datasource_key, type=attr_type)


def _map_expression(node: PropertyNode, raw: Any, ctx: _MappingContext) -> DynamicValue:
    return DynamicValue(value=raw, status="available")


def _map_text_template(node: PropertyNode, raw: Any, ctx: _MappingContext) -> DynamicValue:
    return DynamicValue(value="" if raw is None else str(raw))


def _object_records(node: PropertyNode, raw: Any) -> List[Dict[str, Any]]:
    value = raw
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("object list %s: value is not JSON, using empty list", node.key)
            return []
    if not isinstance(value, list):
        return []
    return [record for record in value if isinstance(record, dict)]


def _map_object(node: PropertyNode, raw: Any, ctx: _MappingContext) -> Any:
    if not node.is_list:
        return raw
    nested = node.nested_spec()
    base = f"{ctx.key_prefix}{node.key}."
    mapped = []
    for index, record in enumerate(_object_records(node, raw)):
        mapped.append(_map_spec(nested, record, ctx.data_layer, f"{base}{index}."))
    _prune_rows(ctx.data_layer, base, len(mapped))
    return mapped


def _prune_rows(data_layer: MockDataLayer, base: str, row_count: int) -> None:
    # rows past the end of a shrunk list are never synced again
    for key in list(data_layer.datasources):
        if not key.startswith(base):
            continue
        row = key[len(base):].split(".", 1)[0]
        if row.isdigit() and int(row) >= row_count:
            data_layer.drop_datasource(key)


_STRATEGIES: Dict[str, Strategy] = {
    PropertyType.DATASOURCE.value: _map_datasource,
    PropertyType.ATTRIBUTE.value: _map_attribute,
    PropertyType.EXPRESSION.value: _map_expression,
    PropertyType.TEXT_TEMPLATE.value: _map_text_template,
    PropertyType.OBJECT.value: _map_object,
}


def strategy_for(prop_type: str) -> Strategy:
    """Mapping strategy for a type tag; unknown tags map to the identity."""
    strategy = _STRATEGIES.get(prop_type)
    if strategy is None:
        if PropertyType.coerce(prop_type) is None:
            logger.debug("unmapped property type %r passed through", prop_type)
        return _passthrough
    return strategy


def _raw_value(node: PropertyNode, values: Dict[str, Any]) -> Any:
    if node.key in values:
        return values[node.key]
    if node.default_value is not None:
        return coerce_default(node)
    return None


def _map_spec(spec: PropertySpec, values: Dict[str, Any], data_layer: MockDataLayer, key_prefix: str) -> Dict[str, Any]:
    ctx = _MappingContext(data_layer=data_layer, key_prefix=key_prefix)
    nodes = spec.flatten()
    # datasources first so attribute properties can resolve their schema
    ordered = sorted(nodes, key=lambda node: node.type != PropertyType.DATASOURCE.value)
    mapped: Dict[str, Any] = {}
    for node in ordered:
        raw = _raw_value(node, values)
        strategy = strategy_for(node.type)
        if raw is None and strategy is _passthrough:
            continue
        mapped[node.key] = strategy(node, raw, ctx)
    spec_keys = {node.key for node in nodes}
    for key, raw in values.items():
        if key not in spec_keys:
            mapped[key] = raw
    ordered_result = {node.key: mapped[node.key] for node in nodes if node.key in mapped}
    ordered_result.update((key, value) for key, value in mapped.items() if key not in spec_keys)
    return ordered_result


def map_properties(
    spec: Any,
    values: Optional[Dict[str, Any]],
    data_layer: MockDataLayer,
    key_prefix: str = "",
) -> Dict[str, Any]:
    """Turn the flat value map into the typed props the mounted widget expects."""
    return _map_spec(parse_property_spec(spec), dict(values or {}), data_layer, key_prefix)
