"""Element tree, hook state and HTML output for sandboxed widgets.

Bundles build trees with ``React.create_element`` (or ``jsx`` for the
automatic runtime). Function components and classes with a ``render``
method are expanded lazily by :class:`HtmlRenderer`, which also keeps
hook state per component position so a re-render after a property update
sees the same state as before.
"""

from __future__ import annotations

import html
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

VOID_TAGS = frozenset({"area", "br", "col", "hr", "img", "input", "link", "meta", "source", "wbr"})
_ATTRIBUTE_ALIASES = {"className": "class", "class_name": "class", "htmlFor": "for", "html_for": "for"}
_SKIPPED_PROPS = frozenset({"children", "key", "ref"})
_MAX_RENDER_PASSES = 25

_BASE_CSS = """
* { box-sizing: border-box; }
body { margin: 0; padding: 16px; font-family: "Segoe UI", Roboto, Arial, sans-serif; background: #f5f5f5; }
.preview-container { background: white; border-radius: 8px; padding: 24px; min-height: 200px; }
.preview-error { color: #d32f2f; padding: 16px; background: #ffebee; border-left: 4px solid #d32f2f; }
.preview-loading { text-align: center; padding: 32px; color: #666; }
.widget-error { color: #dc3545; background: #f8d7da; border: 1px solid #f5c6cb; padding: 12px; }
"""


class Fragment:
    """Marker type: render children without a wrapping tag."""


@dataclass
class Element:
    type: Any
    props: Dict[str, Any] = field(default_factory=dict)
    key: Optional[str] = None

    @property
    def children(self) -> Any:
        return self.props.get("children")


def _flatten(children: Any) -> List[Any]:
    flat: List[Any] = []
    for child in children:
        if isinstance(child, (list, tuple)):
            flat.extend(_flatten(child))
        elif child is not None:
            flat.append(child)
    return flat


def create_element(type_: Any, props: Optional[Dict[str, Any]] = None, *children: Any) -> Element:
    final = dict(props or {})
    flat = _flatten(children)
    if flat:
        final["children"] = flat[0] if len(flat) == 1 else flat
    key = final.pop("key", None)
    return Element(type_, final, None if key is None else str(key))


def jsx(type_: Any, props: Optional[Dict[str, Any]] = None, key: Any = None) -> Element:
    return Element(type_, dict(props or {}), None if key is None else str(key))


# --- hooks --------------------------------------------------------------------

_current = threading.local()


class _HookFrame:
    def __init__(self, renderer: "HtmlRenderer", path: str) -> None:
        self.renderer = renderer
        self.path = path
        self.index = 0

    def slot(self) -> Tuple[str, int]:
        slot = (self.path, self.index)
        self.index += 1
        return slot


def _frame() -> _HookFrame:
    frame = getattr(_current, "frame", None)
    if frame is None:
        raise RuntimeError("hooks can only be called while a function component renders")
    return frame


def use_state(initial: Any) -> Tuple[Any, Callable[[Any], None]]:
    frame = _frame()
    renderer, slot = frame.renderer, frame.slot()
    if slot not in renderer.hook_state:
        renderer.hook_state[slot] = initial() if callable(initial) else initial

    def set_state(value: Any) -> None:
        current = renderer.hook_state.get(slot)
        new_value = value(current) if callable(value) else value
        if new_value != current:
            renderer.hook_state[slot] = new_value
            renderer.needs_render = True

    return renderer.hook_state[slot], set_state


def use_ref(initial: Any = None) -> Any:
    frame = _frame()
    renderer, slot = frame.renderer, frame.slot()
    if slot not in renderer.hook_state:
        renderer.hook_state[slot] = _Ref(initial)
    return renderer.hook_state[slot]


def use_memo(factory: Callable[[], Any], deps: Optional[List[Any]] = None) -> Any:
    frame = _frame()
    renderer, slot = frame.renderer, frame.slot()
    stored = renderer.hook_state.get(slot)
    deps_key = None if deps is None else list(deps)
    if stored is None or deps_key is None or stored[0] != deps_key:
        stored = (deps_key, factory())
        renderer.hook_state[slot] = stored
    return stored[1]


def use_callback(callback: Callable, deps: Optional[List[Any]] = None) -> Callable:
    return use_memo(lambda: callback, deps)


def use_effect(effect: Callable[[], Any], deps: Optional[List[Any]] = None) -> None:
    frame = _frame()
    renderer, slot = frame.renderer, frame.slot()
    stored = renderer.hook_state.get(slot)
    deps_key = None if deps is None else list(deps)
    if stored is not None and deps_key is not None and stored.deps == deps_key:
        return
    renderer.pending_effects.append((slot, effect, deps_key))


class _Ref:
    def __init__(self, current: Any) -> None:
        self.current = current


@dataclass
class _EffectState:
    deps: Optional[List[Any]]
    cleanup: Optional[Callable[[], Any]] = None


# --- HTML output --------------------------------------------------------------


def _style_text(style: Dict[str, Any]) -> str:
    parts = []
    for name, value in style.items():
        css_name = "".join(f"-{ch.lower()}" if ch.isupper() else ch for ch in str(name)).replace("_", "-")
        parts.append(f"{css_name}: {value}")
    return "; ".join(parts)


def _attributes(props: Dict[str, Any]) -> str:
    attrs = []
    for name, value in props.items():
        if name in _SKIPPED_PROPS or value is None or value is False or callable(value):
            continue
        attr = _ATTRIBUTE_ALIASES.get(name, name)
        if value is True:
            attrs.append(attr)
        elif attr == "style" and isinstance(value, dict):
            attrs.append(f'style="{html.escape(_style_text(value))}"')
        else:
            attrs.append(f'{attr}="{html.escape(str(value))}"')
    return " ".join(attrs)


def error_html(title: str, message: str, details: str = "") -> str:
    body = f"<strong>{html.escape(title)}</strong><br/>{html.escape(message)}"
    if details:
        body += f"<details><summary>Error Details</summary><pre>{html.escape(details)}</pre></details>"
    return f'<div class="preview-error">{body}</div>'


class HtmlRenderer:
    """Expands an element tree to HTML, keeping hook state between renders."""

    def __init__(self) -> None:
        self.hook_state: Dict[Tuple[str, int], Any] = {}
        self.pending_effects: List[Tuple[Tuple[str, int], Callable, Optional[List[Any]]]] = []
        self.needs_render = False
        self._seen_paths: set[str] = set()

    def render(self, node: Any) -> str:
        """Render until hook state settles; effects run after each pass."""
        output = ""
        for _ in range(_MAX_RENDER_PASSES):
            self.needs_render = False
            self._seen_paths = set()
            output = self._node(node, "0")
            self._drop_unmounted()
            self._run_effects()
            if not self.needs_render:
                break
        else:
            logger.warning("render did not settle after %s passes", _MAX_RENDER_PASSES)
        return output

    def dispose(self) -> None:
        for value in list(self.hook_state.values()):
            if isinstance(value, _EffectState) and value.cleanup is not None:
                self._safe_call(value.cleanup)
        self.hook_state.clear()
        self.pending_effects.clear()

    def _node(self, node: Any, path: str) -> str:
        if node is None or isinstance(node, bool):
            return ""
        if isinstance(node, (str, int, float)):
            return html.escape(str(node))
        if isinstance(node, (list, tuple)):
            return "".join(self._node(child, f"{path}.{index}") for index, child in enumerate(node))
        if not isinstance(node, Element):
            return ""
        if node.type is Fragment:
            return self._node(node.children, path)
        if isinstance(node.type, str):
            return self._tag(node, path)
        if callable(node.type):
            return self._component(node, path)
        return ""

    def _tag(self, node: Element, path: str) -> str:
        tag = node.type
        attrs = _attributes(node.props)
        opening = f"<{tag} {attrs}" if attrs else f"<{tag}"
        if tag in VOID_TAGS:
            return opening + " />"
        return f"{opening}>{self._node(node.children, path + '.' + tag)}</{tag}>"

    def _component(self, node: Element, path: str) -> str:
        name = getattr(node.type, "__name__", "component")
        comp_path = f"{path}/{name}" + (f"#{node.key}" if node.key else "")
        self._seen_paths.add(comp_path)
        previous = getattr(_current, "frame", None)
        _current.frame = _HookFrame(self, comp_path)
        try:
            if isinstance(node.type, type) and hasattr(node.type, "render"):
                output = node.type(dict(node.props)).render()
            else:
                output = node.type(dict(node.props))
        except Exception as exc:
            logger.warning("component %s failed to render: %s", name, exc)
            return f'<div class="widget-error">Component render failed: {html.escape(str(exc))}</div>'
        finally:
            _current.frame = previous
        return self._node(output, comp_path)

    def _drop_unmounted(self) -> None:
        for slot in [slot for slot in self.hook_state if slot[0] not in self._seen_paths]:
            value = self.hook_state.pop(slot)
            if isinstance(value, _EffectState) and value.cleanup is not None:
                self._safe_call(value.cleanup)

    def _run_effects(self) -> None:
        effects, self.pending_effects = self.pending_effects, []
        for slot, effect, deps in effects:
            stored = self.hook_state.get(slot)
            if isinstance(stored, _EffectState) and stored.cleanup is not None:
                self._safe_call(stored.cleanup)
            cleanup = self._safe_call(effect)
            self.hook_state[slot] = _EffectState(deps=deps, cleanup=cleanup if callable(cleanup) else None)

    @staticmethod
    def _safe_call(fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except Exception as exc:
            logger.warning("widget effect failed: %s", exc)
            return None


class RenderSurface:
    """The sandbox's visual output: latest HTML plus the bundle stylesheet."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._html = '<div class="preview-loading">Loading widget...</div>'
        self._stylesheet = ""
        self._version = 0

    def set_stylesheet(self, css: str) -> None:
        with self._lock:
            self._stylesheet = css or ""

    def show(self, content: str) -> None:
        with self._lock:
            self._html = content
            self._version += 1

    def show_error(self, title: str, message: str, details: str = "") -> None:
        self.show(error_html(title, message, details))

    @property
    def html(self) -> str:
        with self._lock:
            return self._html

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def document(self, title: str = "Widget Preview") -> str:
        with self._lock:
            content, css = self._html, self._stylesheet
        return (
            "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
            f"<title>{html.escape(title)}</title>"
            f"<style>{_BASE_CSS}</style><style>{css}</style></head>"
            f'<body><div class="preview-container"><div id="widget-root">{content}</div></div></body></html>'
        )
