from .bundle_reader import read_widget_bundle, read_widget_definition
from .config import PreviewConfig, load_preview_config, save_preview_config
from .controller import SandboxController
from .errors import (
    BundleEvaluationError,
    BundleReadError,
    ComponentNotFoundError,
    MalformedDatasourceError,
    MockDataOperationError,
    ObjectNotFoundError,
    PropertySpecError,
    WidgetRuntimeError,
)
from .mock_data import Datasource, MockDataLayer, MockObject
from .property_mapping import DynamicValue, EditableValue, ListAttributeValue, map_properties
from .property_spec import PropertyGroup, PropertyNode, PropertySpec, default_values, parse_property_spec
from .shims import load_bundle
from .types import BundleHandle, LifecycleState, PropertyType
from .widget_xml import WidgetDefinition, parse_widget_xml

__all__ = [
    "read_widget_bundle",
    "read_widget_definition",
    "PreviewConfig",
    "load_preview_config",
    "save_preview_config",
    "SandboxController",
    "BundleEvaluationError",
    "BundleReadError",
    "ComponentNotFoundError",
    "MalformedDatasourceError",
    "MockDataOperationError",
    "ObjectNotFoundError",
    "PropertySpecError",
    "WidgetRuntimeError",
    "Datasource",
    "MockDataLayer",
    "MockObject",
    "DynamicValue",
    "EditableValue",
    "ListAttributeValue",
    "map_properties",
    "PropertyGroup",
    "PropertyNode",
    "PropertySpec",
    "default_values",
    "parse_property_spec",
    "load_bundle",
    "BundleHandle",
    "LifecycleState",
    "PropertyType",
    "WidgetDefinition",
    "parse_widget_xml",
]
