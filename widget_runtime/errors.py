from __future__ import annotations


class WidgetRuntimeError(Exception):
    """Base class for widget preview runtime failures."""


class ComponentNotFoundError(WidgetRuntimeError):
    def __init__(self, component_name: str, component_id: str = "") -> None:
        self.component_name = component_name
        self.component_id = component_id
        label = component_name or "<unnamed>"
        if component_id:
            label = f"{label} ({component_id})"
        super().__init__(f'Widget "{label}" not found. The widget may not have exported correctly.')


class BundleEvaluationError(WidgetRuntimeError):
    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class BundleReadError(WidgetRuntimeError):
    pass


class MockDataOperationError(WidgetRuntimeError):
    pass


class ObjectNotFoundError(MockDataOperationError):
    def __init__(self, guid: str) -> None:
        self.guid = guid
        super().__init__(f"Object not found: {guid}")


class MalformedDatasourceError(MockDataOperationError):
    def __init__(self, datasource_key: str, detail: str) -> None:
        self.datasource_key = datasource_key
        super().__init__(f"Malformed datasource JSON for '{datasource_key}': {detail}")


class PropertySpecError(ValueError):
    pass
