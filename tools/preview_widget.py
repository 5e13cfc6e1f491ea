from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diagnostics.logging_setup import configure_logging, get_logger
from widget_runtime.bundle_reader import read_widget_bundle, read_widget_definition
from widget_runtime.config import PreviewConfig, load_preview_config
from widget_runtime.controller import SandboxController
from widget_runtime.errors import WidgetRuntimeError
from widget_runtime.property_spec import PropertySpec, default_values


def _load_values(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    candidate = Path(raw)
    text = candidate.read_text(encoding="utf-8") if candidate.is_file() else raw
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("--props must be a JSON object")
    return data


def render_headless(
    widget_dir: Path,
    values: Dict[str, Any],
    config: PreviewConfig,
    timeout: float,
) -> tuple[int, str, List[str]]:
    """Render ``widget_dir`` once; returns (exit code, html document, commit log lines)."""
    bundle = read_widget_bundle(widget_dir)
    definition = read_widget_definition(widget_dir)
    spec = definition.spec if definition is not None else PropertySpec()
    merged = default_values(spec)
    merged.update(values)

    commits: List[str] = []
    controller = SandboxController(
        config=config,
        on_datasource_commit=lambda key, items_json: commits.append(f"{key}: {items_json}"),
    )
    try:
        controller.load(bundle)
        controller.update_properties(merged, spec)
        ready = controller.wait_until_ready(timeout)
        controller.sync(timeout)
        document = controller.surface.document(bundle.component_name or "Widget Preview")
        if not ready:
            error = controller.last_error
            reason = f"{error.error_type}: {error.message}" if error else "sandbox did not become ready"
            commits.append(f"error: {reason}")
            return 1, document, commits
        return 0, document, commits
    finally:
        controller.destroy()


def run_gui(widget_dir: Path, values: Dict[str, Any], config: PreviewConfig) -> int:
    from PyQt6 import QtWidgets

    from widget_runtime.host import WidgetPreviewHost

    bundle = read_widget_bundle(widget_dir)
    definition = read_widget_definition(widget_dir)
    spec = definition.spec if definition is not None else PropertySpec()
    merged = default_values(spec)
    merged.update(values)

    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(sys.argv)
    host = WidgetPreviewHost(config=config)
    host.setWindowTitle(f"Widget Preview - {bundle.component_name}")
    host.datasource_committed.connect(lambda key, items: sys.stdout.write(f"commit {key}: {items}\n"))
    host.resize(900, 640)
    host.load_bundle(bundle)
    host.set_properties(merged, spec)
    host.show()
    return int(app.exec())


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Preview a built Mendix-style widget bundle.")
    parser.add_argument("widget_dir", type=Path, help="Widget folder containing package.json, src/ and dist/.")
    parser.add_argument("--props", default=None, help="Property values as a JSON object or a path to a JSON file.")
    parser.add_argument("--out", type=Path, default=None, help="Write the rendered HTML here (default: stdout).")
    parser.add_argument("--gui", action="store_true", help="Open the Qt preview window instead of rendering headless.")
    parser.add_argument("--config", type=Path, default=None, help="Preview config JSON (default: data/roaming).")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the sandbox.")
    parser.add_argument("--log", action="store_true", help="Write logs to data/roaming/logs/widgetpreview.log.")
    args = parser.parse_args(argv)

    if args.log:
        configure_logging()
        get_logger().info("preview requested for %s", args.widget_dir)
    config = load_preview_config(args.config) if args.config else PreviewConfig()
    timeout = args.timeout if args.timeout is not None else config.ready_timeout_s
    try:
        values = _load_values(args.props)
        if args.gui:
            return run_gui(args.widget_dir, values, config)
        code, document, log_lines = render_headless(args.widget_dir, values, config, timeout)
    except (WidgetRuntimeError, ValueError, OSError) as exc:
        sys.stderr.write(f"Failed to preview widget: {exc}\n")
        return 1

    for line in log_lines:
        sys.stderr.write(line + "\n")
    if args.out is not None:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(document, encoding="utf-8")
        sys.stdout.write(f"Wrote preview to: {args.out}\n")
    else:
        sys.stdout.write(document + "\n")
    return code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
