"""Stand-ins for the foreign APIs a widget bundle may reference.

Three packaging conventions are accepted without knowing in advance which
one a bundle uses:

* factory-callback registration: ``define(["react", "exports"], factory)``
* global attachment: ``Foo = ...`` at module level, or a dotted namespace
* plain export: ``module.exports = Foo`` or ``exports["Foo"] = Foo``

``define``, ``require``, ``module`` and ``exports`` only exist for the
duration of one evaluation; a :class:`ModuleLoader` is created per load and
restores whatever the namespace held before.
"""

from __future__ import annotations

import builtins
import logging
from collections.abc import Mapping
from contextlib import contextmanager
from types import SimpleNamespace
from typing import Any, Dict, Iterator, Optional

from . import rendering
from .errors import BundleEvaluationError, ComponentNotFoundError
from .mock_data import MockDataLayer
from .types import ComponentRef

logger = logging.getLogger(__name__)
console_logger = logging.getLogger("widget_runtime.sandbox.console")

LOADER_GLOBALS = ("define", "require", "module", "exports")
CONFIG_EXPORTS = frozenset({"getProperties", "getPreviewCss", "preview", "check", "get_properties", "get_preview_css"})
_MISSING = object()


class Console:
    """``console.*`` for bundle code, routed to the sandbox console logger."""

    def log(self, *args: Any) -> None:
        console_logger.info(" ".join(str(arg) for arg in args))

    info = log

    def debug(self, *args: Any) -> None:
        console_logger.debug(" ".join(str(arg) for arg in args))

    def warn(self, *args: Any) -> None:
        console_logger.warning(" ".join(str(arg) for arg in args))

    warning = warn

    def error(self, *args: Any) -> None:
        console_logger.error(" ".join(str(arg) for arg in args))


class _MxUi:
    def info(self, message: str, modal: bool = False) -> None:
        console_logger.info("mx.ui.info: %s", message)

    def error(self, message: str, modal: bool = False) -> None:
        console_logger.error("mx.ui.error: %s", message)

    def confirmation(self, content: str = "", proceed: Any = None, cancel: Any = None, **_: Any) -> None:
        console_logger.info("mx.ui.confirmation: %s", content)
        if callable(proceed):
            proceed()


class _MxParser:
    @staticmethod
    def parse_value(value: Any, *_: Any) -> Any:
        return value


def make_react() -> SimpleNamespace:
    return SimpleNamespace(
        create_element=rendering.create_element,
        Fragment=rendering.Fragment,
        use_state=rendering.use_state,
        use_effect=rendering.use_effect,
        use_ref=rendering.use_ref,
        use_memo=rendering.use_memo,
        use_callback=rendering.use_callback,
    )


def make_jsx_runtime() -> SimpleNamespace:
    return SimpleNamespace(jsx=rendering.jsx, jsxs=rendering.jsx, Fragment=rendering.Fragment)


class _Root:
    def __init__(self, react_dom: "ReactDOM", container: Any) -> None:
        self._react_dom = react_dom
        self._container = container

    def render(self, element: Any) -> None:
        self._react_dom.render(element, self._container)


class ReactDOM:
    """Renderer shim; ``container`` is anything with a ``show(html)`` method."""

    def __init__(self, renderer: rendering.HtmlRenderer) -> None:
        self._renderer = renderer

    def render(self, element: Any, container: Any) -> str:
        output = self._renderer.render(element)
        if container is not None:
            container.show(output or '<div class="widget-hello-world">Widget rendered</div>')
        return output

    def create_root(self, container: Any) -> _Root:
        return _Root(self, container)


def make_mx(data_layer: MockDataLayer) -> SimpleNamespace:
    return SimpleNamespace(data=data_layer, ui=_MxUi(), parser=_MxParser())


def build_sandbox_namespace(react: Any, react_dom: Any, mx: Any, name: str = "widget_bundle") -> Dict[str, Any]:
    """Fresh global scope for one sandbox, with the permanent shims installed."""
    return {
        "__name__": name,
        "__builtins__": dict(builtins.__dict__),
        "React": react,
        "ReactDOM": react_dom,
        "mx": mx,
        "console": Console(),
    }


def _exports_of(result: Any) -> Dict[str, Any]:
    if isinstance(result, Mapping):
        return dict(result)
    if callable(result):
        return {}
    try:
        return {key: value for key, value in vars(result).items() if not key.startswith("_")}
    except TypeError:
        return {}


def _is_empty(result: Any) -> bool:
    if result is None:
        return True
    if isinstance(result, Mapping):
        return len(result) == 0
    return not callable(result) and not _exports_of(result)


def pick_component(result: Any, component_name: str) -> Optional[ComponentRef]:
    exports = _exports_of(result)
    if component_name and exports.get(component_name) is not None:
        return exports[component_name]
    if exports.get("default") is not None:
        return exports["default"]
    functions = [value for key, value in exports.items() if callable(value) and key not in CONFIG_EXPORTS]
    if len(functions) == 1:
        return functions[0]
    if callable(result):
        return result
    return None


def _walk(namespace: Dict[str, Any], dotted: str) -> Any:
    parts = dotted.split(".")
    current: Any = namespace.get(parts[0])
    for part in parts[1:]:
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


class ModuleLoader:
    """Module-loading primitives scoped to a single bundle evaluation."""

    def __init__(self, dependencies: Optional[Dict[str, Any]] = None) -> None:
        self._dependencies = dict(dependencies or {})
        self.module = SimpleNamespace(exports={})
        self.exports: Dict[str, Any] = self.module.exports
        self.registration: Any = None

    def require(self, name: str) -> Any:
        if name == "exports":
            return self.exports
        if name == "module":
            return self.module
        if name == "require":
            return self.require
        if name in self._dependencies:
            return self._dependencies[name]
        if "mendix" in name and "mendix" in self._dependencies:
            return self._dependencies["mendix"]
        logger.debug("unresolved bundle dependency %r", name)
        return None

    def define(self, *args: Any) -> None:
        # define(factory) | define(deps, factory) | define(name, deps, factory)
        args_list = list(args)
        if args_list and isinstance(args_list[0], str):
            args_list.pop(0)
        if len(args_list) == 1:
            deps, factory = [], args_list[0]
        elif len(args_list) >= 2:
            deps, factory = list(args_list[0] or []), args_list[1]
        else:
            return
        if callable(factory):
            result = factory(*[self.require(dep) for dep in deps])
        else:
            result = factory
        if not _is_empty(result):
            self.registration = result
        elif not _is_empty(self.exports):
            self.registration = self.exports

    @contextmanager
    def installed(self, namespace: Dict[str, Any]) -> Iterator["ModuleLoader"]:
        saved = {name: namespace.get(name, _MISSING) for name in LOADER_GLOBALS}

        def define(*args: Any) -> None:
            self.define(*args)

        define.amd = True  # type: ignore[attr-defined]
        namespace.update(define=define, require=self.require, module=self.module, exports=self.exports)
        try:
            yield self
        finally:
            rebound = namespace.get("exports")
            if rebound is not self.exports and isinstance(rebound, Mapping) and rebound:
                self.exports = dict(rebound)
            for name, value in saved.items():
                if value is _MISSING:
                    namespace.pop(name, None)
                else:
                    namespace[name] = value

    def evaluate(self, script: str, namespace: Dict[str, Any], filename: str = "<bundle>") -> None:
        try:
            code = compile(script, filename, "exec")
            with self.installed(namespace):
                exec(code, namespace)
        except Exception as exc:
            raise BundleEvaluationError(f"{type(exc).__name__}: {exc}", cause=exc) from exc

    def commonjs_exports(self) -> Any:
        for candidate in (self.module.exports, self.exports):
            if not _is_empty(candidate):
                return candidate
        return None

    def resolve(self, namespace: Dict[str, Any], component_name: str, component_id: str = "") -> ComponentRef:
        if self.registration is not None:
            picked = pick_component(self.registration, component_name)
            if picked is not None:
                logger.info("component %s resolved from factory registration", component_name)
                return picked
        exported = self.commonjs_exports()
        if exported is not None:
            picked = pick_component(exported, component_name)
            if picked is not None:
                logger.info("component %s resolved from module exports", component_name)
                return picked
        if component_name and namespace.get(component_name) is not None:
            logger.info("component %s resolved from global binding", component_name)
            return namespace[component_name]
        if component_id and "." in component_id:
            found = _walk(namespace, component_id)
            if found is None:
                found = namespace.get(component_id.rsplit(".", 1)[-1])
            if found is not None:
                logger.info("component resolved from namespace %s", component_id)
                return found
        raise ComponentNotFoundError(component_name, component_id)


def load_bundle(
    script: str,
    component_name: str,
    component_id: str,
    namespace: Dict[str, Any],
    dependencies: Optional[Dict[str, Any]] = None,
) -> ComponentRef:
    """Evaluate ``script`` in ``namespace`` and return the widget component."""
    loader = ModuleLoader(dependencies)
    loader.evaluate(script, namespace, filename=f"<bundle:{component_name or 'widget'}>")
    return loader.resolve(namespace, component_name, component_id)
