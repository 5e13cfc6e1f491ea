"""Host-side owner of the sandbox lifecycle.

The controller is driven from a single host thread (the Qt event loop, a
CLI, a test). It never touches sandbox state directly: readiness, data
commits and load failures all arrive as envelopes on the host mailbox and
are applied in ``process_messages``.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from preview_bridge import topics
from preview_bridge.bus import RuntimeBus
from preview_bridge.mailbox import Mailbox
from preview_bridge.messages import (
    DatasourceCommit,
    IframeReady,
    MessageEnvelope,
    SandboxError,
    UnknownMessageError,
    UpdateProperties,
    decode_message,
)

from .config import PreviewConfig
from .errors import WidgetRuntimeError
from .property_spec import PropertySpec, parse_property_spec
from .rendering import RenderSurface
from .sandbox import Sandbox
from .types import BundleHandle, LifecycleState

logger = logging.getLogger(__name__)

CommitCallback = Callable[[str, str], None]

_POLL_SLICE_S = 0.05


class SandboxController:
    def __init__(
        self,
        config: Optional[PreviewConfig] = None,
        bus: Optional[RuntimeBus] = None,
        on_datasource_commit: Optional[CommitCallback] = None,
    ) -> None:
        self.config = config or PreviewConfig()
        self.bus = bus or RuntimeBus()
        self.on_datasource_commit = on_datasource_commit
        self._host_mailbox = Mailbox("host")
        self._sandbox: Optional[Sandbox] = None
        self._bundle: Optional[BundleHandle] = None
        self._surface = RenderSurface()
        self._generation = 0
        self._state = LifecycleState.EMPTY
        self._values: Dict[str, Any] = {}
        self._spec = PropertySpec()
        self._last_error: Optional[SandboxError] = None

    # --- properties ----------------------------------------------------------
    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_ready(self) -> bool:
        return self._state is LifecycleState.READY

    @property
    def surface(self) -> RenderSurface:
        return self._surface

    @property
    def bundle(self) -> Optional[BundleHandle]:
        return self._bundle

    @property
    def last_error(self) -> Optional[SandboxError]:
        return self._last_error

    @property
    def sandbox(self) -> Optional[Sandbox]:
        return self._sandbox

    @property
    def host_mailbox(self) -> Mailbox:
        return self._host_mailbox

    # --- lifecycle -----------------------------------------------------------
    def load(self, bundle: BundleHandle) -> int:
        """Mount ``bundle`` in a fresh sandbox and return its generation."""
        self._ensure_alive()
        if (
            self.config.reuse_identical_bundles
            and self._state is LifecycleState.READY
            and self._bundle is not None
            and self._bundle.content_hash == bundle.content_hash
        ):
            logger.info("reusing sandbox %s for identical bundle", self._generation)
            self._bundle = bundle
            self._send_current()
            return self._generation
        return self._start(bundle)

    def reload(self) -> int:
        self._ensure_alive()
        if self._bundle is None:
            raise WidgetRuntimeError("No widget bundle loaded")
        return self._start(self._bundle)

    def destroy(self) -> None:
        if self._state is LifecycleState.DESTROYED:
            return
        self._teardown()
        self._host_mailbox.close()
        self._set_state(LifecycleState.DESTROYED)

    def _start(self, bundle: BundleHandle) -> int:
        self._teardown()
        self._generation += 1
        self._bundle = bundle
        self._last_error = None
        self._surface = RenderSurface()
        self._set_state(LifecycleState.LOADING)
        self._sandbox = Sandbox(bundle, self._generation, self._host_mailbox, self._surface, self.config)
        self._sandbox.start()
        logger.info(
            "sandbox %s started for %s",
            self._generation,
            bundle.component_name or bundle.component_id or bundle.handle_id,
        )
        return self._generation

    def _teardown(self) -> None:
        if self._sandbox is None:
            return
        self._sandbox.stop()
        logger.debug("sandbox %s torn down", self._sandbox.generation)
        self._sandbox = None

    def _ensure_alive(self) -> None:
        if self._state is LifecycleState.DESTROYED:
            raise WidgetRuntimeError("Preview controller has been destroyed")

    def _set_state(self, state: LifecycleState) -> None:
        if state is self._state:
            return
        self._state = state
        self.bus.publish(
            topics.PREVIEW_STATE_CHANGED,
            {"state": state.value, "generation": self._generation},
        )

    # --- properties in -------------------------------------------------------
    def update_properties(self, values: Optional[Dict[str, Any]], spec: Any = None) -> bool:
        """Store the latest values; returns True when they were sent to the sandbox."""
        if spec is not None:
            self._spec = parse_property_spec(spec)
        self._values = copy.deepcopy(dict(values or {}))
        if self._state is not LifecycleState.READY:
            return False
        return self._send_current()

    def _send_current(self) -> bool:
        if self._sandbox is None:
            return False
        return self._sandbox.post(UpdateProperties(properties=self._values, spec=self._spec.to_dict()))

    # --- messages out --------------------------------------------------------
    def process_messages(self, timeout: float = 0.0) -> int:
        """Apply every envelope waiting on the host mailbox; returns how many were handled."""
        envelopes = []
        if timeout > 0:
            first = self._host_mailbox.take(timeout)
            if first is not None:
                envelopes.append(first)
        envelopes.extend(self._host_mailbox.drain())
        for envelope in envelopes:
            try:
                self._dispatch(envelope)
            finally:
                self._host_mailbox.task_done()
        return len(envelopes)

    def _dispatch(self, envelope: MessageEnvelope) -> None:
        if envelope.generation != self._generation or self._sandbox is None:
            logger.debug("dropped %s from stale generation %s", envelope.type, envelope.generation)
            return
        try:
            message = decode_message(envelope)
        except UnknownMessageError as exc:
            logger.warning("dropped malformed envelope: %s", exc)
            return
        if isinstance(message, IframeReady):
            self._set_state(LifecycleState.READY)
            self.bus.publish(
                topics.PREVIEW_READY,
                {"generation": self._generation, "component_name": message.component_name},
            )
            self._send_current()
        elif isinstance(message, DatasourceCommit):
            self._deliver_commit(message)
        elif isinstance(message, SandboxError):
            self._last_error = message
            logger.error("sandbox %s reported %s: %s", self._generation, message.error_type, message.message)
            self.bus.publish(
                topics.PREVIEW_ERROR,
                {"generation": self._generation, "error_type": message.error_type, "message": message.message},
            )
        else:
            logger.debug("host ignored %s", envelope.type)

    def _deliver_commit(self, message: DatasourceCommit) -> None:
        items_json = json.dumps(message.items, default=str)
        if self.on_datasource_commit is not None:
            try:
                self.on_datasource_commit(message.datasource_key, items_json)
            except Exception as exc:
                logger.error("datasource commit callback failed for %s: %s", message.datasource_key, exc)
        self.bus.publish(
            topics.PREVIEW_DATASOURCE_COMMIT,
            {"datasource_key": message.datasource_key, "items": message.items, "items_json": items_json},
        )

    # --- waiting helpers -----------------------------------------------------
    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        timeout = self.config.ready_timeout_s if timeout is None else timeout
        deadline = time.monotonic() + timeout
        while self._state is LifecycleState.LOADING:
            if self._last_error is not None:
                return False
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self.process_messages(timeout=min(remaining, _POLL_SLICE_S))
        return self.is_ready

    def sync(self, timeout: Optional[float] = None) -> bool:
        """Let the sandbox finish queued work and apply everything it reported."""
        timeout = self.config.ready_timeout_s if timeout is None else timeout
        deadline = time.monotonic() + timeout
        while True:
            sandbox = self._sandbox
            remaining = max(0.0, deadline - time.monotonic())
            idle = sandbox is None or sandbox.wait_idle(remaining)
            handled = self.process_messages()
            if idle and handled == 0:
                return True
            if time.monotonic() >= deadline:
                return False
