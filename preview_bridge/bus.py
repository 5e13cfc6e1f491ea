from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, object]], None]


class RuntimeBus:
    """In-process pub/sub used to fan preview events out to host-side listeners."""

    def __init__(self):
        self._lock = threading.RLock()
        self._subscribers: Dict[str, tuple[str, Handler]] = {}
        self._topic_index: Dict[str, set[str]] = {}

    def subscribe(self, topic: str, handler: Handler) -> str:
        sub_id = str(uuid.uuid4())
        with self._lock:
            self._subscribers[sub_id] = (topic, handler)
            self._topic_index.setdefault(topic, set()).add(sub_id)
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        with self._lock:
            topic, _ = self._subscribers.pop(sub_id, (None, None))
            if topic and topic in self._topic_index:
                self._topic_index[topic].discard(sub_id)
                if not self._topic_index[topic]:
                    self._topic_index.pop(topic, None)

    def publish(self, topic: str, payload: Optional[Dict[str, object]] = None) -> int:
        body = dict(payload) if isinstance(payload, dict) else {}
        handlers = self._copy_handlers(topic)
        for handler in handlers:
            try:
                handler(body)
            except Exception as exc:
                logger.error("preview bus handler error on %s: %s", topic, exc)
        return len(handlers)

    def _copy_handlers(self, topic: str) -> list[Handler]:
        with self._lock:
            sub_ids = list(self._topic_index.get(topic, ()))
            return [self._subscribers[sid][1] for sid in sub_ids if sid in self._subscribers]
