"""Read a widget definition XML file into a property spec."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import PropertySpecError
from .property_spec import PropertyGroup, PropertyNode, PropertySpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WidgetDefinition:
    widget_id: str
    name: str = ""
    description: str = ""
    spec: PropertySpec = field(default_factory=PropertySpec)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _text(element: ET.Element, name: str) -> str:
    child = _child(element, name)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _flag(element: ET.Element, name: str) -> bool:
    return (element.get(name) or "").strip().lower() == "true"


def _enumeration_options(element: ET.Element) -> List[str]:
    values = _child(element, "enumerationValues")
    if values is None:
        return []
    return [value.get("key", "") for value in _children(values, "enumerationValue") if value.get("key")]


def _parse_property(element: ET.Element) -> PropertyNode:
    key = element.get("key")
    if not key:
        raise PropertySpecError("widget XML property without a key")
    nested = _child(element, "properties")
    return PropertyNode(
        key=key,
        type=element.get("type", ""),
        caption=_text(element, "caption"),
        is_list=_flag(element, "isList"),
        options=_enumeration_options(element),
        data_source_ref=element.get("dataSource"),
        nested_groups=_nested_groups(nested) if nested is not None else [],
        description=_text(element, "description"),
        default_value=element.get("defaultValue"),
        required=_flag(element, "required"),
    )


def _parse_group(element: ET.Element) -> PropertyGroup:
    properties = [_parse_property(child) for child in _children(element, "property")]
    keys = [node.key for node in properties]
    duplicates = {key for key in keys if keys.count(key) > 1}
    if duplicates:
        raise PropertySpecError(f"duplicate property key(s) {sorted(duplicates)} in group '{element.get('caption', '')}'")
    return PropertyGroup(
        caption=element.get("caption", ""),
        properties=properties,
        property_groups=[_parse_group(child) for child in _children(element, "propertyGroup")],
    )


def _parse_container(element: ET.Element) -> PropertySpec:
    # <properties> may hold groups (current format) or bare properties (older widgets)
    groups = [_parse_group(child) for child in _children(element, "propertyGroup")]
    loose = [_parse_property(child) for child in _children(element, "property")]
    if loose and not groups:
        groups = [PropertyGroup(caption="General", properties=loose)]
        loose = []
    return PropertySpec(properties=loose, property_groups=groups)


def _nested_groups(element: ET.Element) -> List[PropertyGroup]:
    spec = _parse_container(element)
    if spec.properties:
        return [PropertyGroup(caption="General", properties=list(spec.properties))] + list(spec.property_groups)
    return list(spec.property_groups)


def parse_widget_xml(text: str) -> WidgetDefinition:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise PropertySpecError(f"widget XML is not well-formed: {exc}") from exc
    if _local(root.tag) != "widget":
        raise PropertySpecError(f"expected a <widget> root element, got <{_local(root.tag)}>")
    properties = _child(root, "properties")
    spec = _parse_container(properties) if properties is not None else PropertySpec()
    definition = WidgetDefinition(
        widget_id=root.get("id", ""),
        name=_text(root, "name"),
        description=_text(root, "description"),
        spec=spec,
    )
    logger.debug("parsed widget %s with %s properties", definition.widget_id, len(spec.flatten()))
    return definition


def widget_id_from_xml(text: str) -> Optional[str]:
    """``id`` attribute of the root ``<widget>`` element, if the text has one."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return None
    if _local(root.tag) != "widget":
        return None
    return root.get("id") or None

