from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from PyQt6 import QtCore, QtWidgets

from .config import PreviewConfig
from .controller import SandboxController
from .types import BundleHandle, LifecycleState

logger = logging.getLogger(__name__)


class WidgetPreviewHost(QtWidgets.QWidget):
    """Mounts a widget bundle and shields the app from sandbox failures."""

    ready_changed = QtCore.pyqtSignal(bool)
    datasource_committed = QtCore.pyqtSignal(str, str)

    def __init__(
        self,
        config: Optional[PreviewConfig] = None,
        parent: Optional[QtWidgets.QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.controller = SandboxController(config=config, on_datasource_commit=self._on_commit)
        self._was_ready = False
        self._shown_version = -1
        self._shown_surface = None

        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        self._error_label = QtWidgets.QLabel("")
        self._error_label.setStyleSheet("color: #b00;")
        self._error_label.setWordWrap(True)
        self._error_label.setVisible(False)
        layout.addWidget(self._error_label)

        self._browser = QtWidgets.QTextBrowser()
        self._browser.setOpenLinks(False)
        layout.addWidget(self._browser, stretch=1)

        self._timer = QtCore.QTimer(self)
        self._timer.setInterval(self.controller.config.pump_interval_ms)
        self._timer.timeout.connect(self.pump)

    def load_bundle(self, bundle: BundleHandle) -> None:
        self._error_label.setVisible(False)
        self._set_ready(False)
        try:
            self.controller.load(bundle)
        except Exception as exc:
            logger.warning("widget preview failed to load: %s", exc)
            self._show_error(f"Failed to open widget: {exc}")
            return
        self._timer.start()
        self.pump()

    def set_properties(self, values: Dict[str, Any], spec: Any = None) -> bool:
        try:
            return self.controller.update_properties(values, spec)
        except ValueError as exc:
            self._show_error(f"Invalid property definition: {exc}")
            return False

    def pump(self) -> None:
        """Apply pending sandbox messages and refresh the view when the surface changed."""
        self.controller.process_messages()
        self._set_ready(self.controller.is_ready)
        error = self.controller.last_error
        if error is not None:
            self._show_error(f"{error.error_type}: {error.message}")
        surface = self.controller.surface
        if surface is not self._shown_surface or surface.version != self._shown_version:
            self._shown_surface = surface
            self._shown_version = surface.version
            bundle = self.controller.bundle
            title = bundle.component_name if bundle is not None and bundle.component_name else "Widget Preview"
            self._browser.setHtml(surface.document(title))

    def unmount(self) -> None:
        self._timer.stop()
        self.controller.destroy()
        self._set_ready(False)

    def html(self) -> str:
        return self._browser.toHtml()

    @property
    def error_text(self) -> str:
        return "" if self._error_label.isHidden() else self._error_label.text()

    def _set_ready(self, ready: bool) -> None:
        if ready != self._was_ready:
            self._was_ready = ready
            self.ready_changed.emit(ready)

    def _on_commit(self, datasource_key: str, items_json: str) -> None:
        self.datasource_committed.emit(datasource_key, items_json)

    def _show_error(self, message: str) -> None:
        self._error_label.setText(message)
        self._error_label.setVisible(True)

    def closeEvent(self, event) -> None:
        if self.controller.state is not LifecycleState.DESTROYED:
            self.unmount()
        super().closeEvent(event)
