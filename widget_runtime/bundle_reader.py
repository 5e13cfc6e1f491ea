"""Locate a built widget on disk and turn it into a :class:`BundleHandle`.

Layout expected under the widget directory::

    package.json          {"widgetName": "Foo", ...}
    src/Foo.xml           <widget id="com.example.Foo"> ... </widget>
    dist/**/Foo.py        compiled bundle
    dist/**/Foo.css       optional stylesheet
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from .errors import BundleReadError
from .types import BundleHandle
from .widget_xml import WidgetDefinition, parse_widget_xml, widget_id_from_xml

logger = logging.getLogger(__name__)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise BundleReadError(f"Cannot read {path}: {exc}") from exc


def widget_name(widget_dir: Path) -> str:
    package_json = widget_dir / "package.json"
    if not package_json.exists():
        raise BundleReadError(f"package.json not found in {widget_dir}")
    try:
        data = json.loads(_read_text(package_json))
    except json.JSONDecodeError as exc:
        raise BundleReadError(f"package.json is not valid JSON: {exc}") from exc
    name = data.get("widgetName") if isinstance(data, dict) else None
    if not isinstance(name, str) or not name:
        raise BundleReadError("widgetName not found in package.json")
    return name


def find_widget_xml(widget_dir: Path, name: str) -> Optional[Path]:
    src = widget_dir / "src"
    if not src.is_dir():
        return None
    preferred = src / f"{name}.xml"
    if preferred.exists():
        return preferred
    for path in sorted(src.glob("*.xml")):
        if path.name != "package.xml":
            return path
    return None


def _find_dist_file(dist: Path, name: str, suffix: str) -> Optional[Path]:
    exact = sorted(dist.rglob(f"{name}{suffix}"))
    if exact:
        return exact[0]
    candidates = sorted(dist.rglob(f"*{suffix}"))
    return candidates[0] if candidates else None


def read_widget_definition(widget_dir: Path) -> Optional[WidgetDefinition]:
    widget_dir = Path(widget_dir)
    xml_path = find_widget_xml(widget_dir, widget_name(widget_dir))
    if xml_path is None:
        return None
    return parse_widget_xml(_read_text(xml_path))


def read_widget_bundle(widget_dir: Path) -> BundleHandle:
    widget_dir = Path(widget_dir)
    if not widget_dir.is_dir():
        raise BundleReadError(f"Widget directory not found: {widget_dir}")
    name = widget_name(widget_dir)

    widget_id = name
    xml_path = find_widget_xml(widget_dir, name)
    if xml_path is not None:
        widget_id = widget_id_from_xml(_read_text(xml_path)) or name

    dist = widget_dir / "dist"
    if not dist.is_dir():
        raise BundleReadError(f"dist folder not found in {widget_dir}; build the widget first")
    script_path = _find_dist_file(dist, name, ".py")
    if script_path is None:
        raise BundleReadError(f"No bundle script found under {dist}")
    css_path = _find_dist_file(dist, name, ".css")

    logger.info("read widget bundle %s from %s", widget_id, script_path)
    return BundleHandle(
        script=_read_text(script_path),
        stylesheet=_read_text(css_path) if css_path is not None else "",
        component_name=name,
        component_id=widget_id,
    )
