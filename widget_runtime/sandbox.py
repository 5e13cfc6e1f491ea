"""One isolated execution context per bundle.

A :class:`Sandbox` owns the bundle's global namespace, its mock data layer
and its renderer, and touches them only from its own daemon thread. The
host talks to it exclusively through envelopes: ``post`` puts host
messages on the sandbox inbox, and everything the sandbox reports goes to
the host mailbox passed in at construction.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import traceback
from typing import Any, List, Optional

from preview_bridge.mailbox import Mailbox
from preview_bridge.messages import (
    BridgeMessage,
    DatasourceCommit,
    IframeReady,
    MessageEnvelope,
    SandboxError,
    UnknownMessageError,
    UpdateProperties,
    decode_message,
    encode_message,
)

from .config import PreviewConfig
from .errors import BundleEvaluationError, ComponentNotFoundError
from .mock_data import MockDataLayer
from .property_mapping import map_properties
from .rendering import HtmlRenderer, RenderSurface, create_element
from .shims import ReactDOM, build_sandbox_namespace, load_bundle, make_jsx_runtime, make_mx, make_react
from .types import BundleHandle, ComponentRef

logger = logging.getLogger(__name__)

SANDBOX_SOURCE = "sandbox"
HOST_SOURCE = "host"


class Sandbox:
    def __init__(
        self,
        bundle: BundleHandle,
        generation: int,
        host_mailbox: Mailbox,
        surface: Optional[RenderSurface] = None,
        config: Optional[PreviewConfig] = None,
    ) -> None:
        self.bundle = bundle
        self.generation = generation
        self.surface = surface or RenderSurface()
        self.inbox = Mailbox(f"sandbox-{generation}")
        self._host_mailbox = host_mailbox
        self._config = config or PreviewConfig()
        self.data_layer = MockDataLayer(
            self._commit_sink,
            identity_key_field=self._config.identity_key_field,
            evict_after_misses=self._config.evict_after_misses,
        )
        self._renderer = HtmlRenderer()
        self._react_dom = ReactDOM(self._renderer)
        self._component: Optional[ComponentRef] = None
        self._last_applied: Optional[str] = None
        self._evaluated = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"widget-sandbox-{generation}",
            daemon=True,
        )

    # --- host side -----------------------------------------------------------
    def start(self) -> None:
        self._thread.start()

    def post(self, message: BridgeMessage) -> bool:
        envelope = encode_message(message, source=HOST_SOURCE, generation=self.generation)
        return self.inbox.post(envelope)

    def stop(self) -> None:
        """Close the inbox; a bundle stuck in a render is abandoned, not joined."""
        self.inbox.close()

    def wait_idle(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        if not self._evaluated.wait(timeout):
            return False
        return self.inbox.wait_idle(max(0.0, deadline - time.monotonic()))

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    # --- sandbox thread ------------------------------------------------------
    def _run(self) -> None:
        try:
            loaded = self._evaluate()
        finally:
            self._evaluated.set()
        if loaded:
            self._loop()
        self._renderer.dispose()
        logger.debug("sandbox %s stopped", self.generation)

    def _evaluate(self) -> bool:
        react = make_react()
        mx = make_mx(self.data_layer)
        namespace = build_sandbox_namespace(react, self._react_dom, mx)
        dependencies = {
            "react": react,
            "react-dom": self._react_dom,
            "react-dom/client": self._react_dom,
            "react/jsx-runtime": make_jsx_runtime(),
            "mendix": mx,
            "mendix/mx": mx,
            "mx": mx,
        }
        self.surface.set_stylesheet(self.bundle.stylesheet)
        try:
            self._component = load_bundle(
                self.bundle.script,
                self.bundle.component_name,
                self.bundle.component_id,
                namespace,
                dependencies,
            )
        except BundleEvaluationError as exc:
            logger.error("widget bundle failed to evaluate: %s", exc)
            cause = exc.cause or exc
            details = "".join(traceback.format_exception(type(cause), cause, cause.__traceback__))
            self._fail("Failed to load widget", exc, details)
            return False
        except ComponentNotFoundError as exc:
            logger.error("%s", exc)
            self._fail("Widget not found", exc, "")
            return False
        logger.info("sandbox %s ready for %s", self.generation, self.bundle.component_name or "widget")
        self._send(IframeReady(component_name=self.bundle.component_name))
        return True

    def _fail(self, title: str, exc: Exception, details: str) -> None:
        self.surface.show_error(title, str(exc), details)
        self._send(SandboxError(error_type=type(exc).__name__, message=str(exc)))

    def _loop(self) -> None:
        while True:
            envelope = self.inbox.take()
            if envelope is None:
                break
            batch = [envelope] + self.inbox.drain()
            try:
                self._handle_batch(batch)
            except Exception as exc:
                logger.exception("sandbox %s message handling failed: %s", self.generation, exc)
            finally:
                self.inbox.task_done(len(batch))

    def _handle_batch(self, batch: List[MessageEnvelope]) -> None:
        latest: Optional[UpdateProperties] = None
        for envelope in batch:
            if envelope.generation != self.generation:
                logger.debug("sandbox %s dropped envelope from generation %s", self.generation, envelope.generation)
                continue
            try:
                message = decode_message(envelope)
            except UnknownMessageError as exc:
                logger.warning("sandbox %s: %s", self.generation, exc)
                continue
            if isinstance(message, UpdateProperties):
                latest = message
            else:
                logger.debug("sandbox %s ignored %s", self.generation, envelope.type)
        # last write wins: only the newest queued update is rendered
        if latest is not None:
            self._apply(latest)

    def _apply(self, update: UpdateProperties) -> None:
        fingerprint = json.dumps(
            {"properties": update.properties, "spec": update.spec},
            sort_keys=True,
            default=str,
        )
        if fingerprint == self._last_applied:
            logger.debug("sandbox %s skipped identical property update", self.generation)
            return
        self._last_applied = fingerprint
        props = map_properties(update.spec, update.properties, self.data_layer)
        self._render(props)

    def _render(self, props: dict) -> None:
        element = create_element(self._component, props)
        self._react_dom.render(element, self.surface)

    def _commit_sink(self, datasource_key: str, items: List[Any]) -> None:
        self._send(DatasourceCommit(datasource_key=datasource_key, items=items))

    def _send(self, message: BridgeMessage) -> None:
        envelope = encode_message(message, source=SANDBOX_SOURCE, generation=self.generation)
        if not self._host_mailbox.post(envelope):
            logger.debug("host mailbox closed; %s dropped", envelope.type)


__all__ = ["HOST_SOURCE", "SANDBOX_SOURCE", "Sandbox"]
