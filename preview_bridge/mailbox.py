from __future__ import annotations

import threading
import time
from collections import deque
from typing import Deque, List, Optional

from .messages import MessageEnvelope


class Mailbox:
    """Thread-safe FIFO of envelopes with completion tracking for idle waits."""

    def __init__(self, name: str = "mailbox") -> None:
        self.name = name
        self._items: Deque[MessageEnvelope] = deque()
        self._cond = threading.Condition()
        self._unfinished = 0
        self._closed = False

    def post(self, envelope: MessageEnvelope) -> bool:
        with self._cond:
            if self._closed:
                return False
            self._items.append(envelope)
            self._unfinished += 1
            self._cond.notify_all()
        return True

    def take(self, timeout: Optional[float] = None) -> Optional[MessageEnvelope]:
        """Block until an envelope arrives, the mailbox closes or the timeout expires."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items:
                if self._closed:
                    return None
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)
            return self._items.popleft()

    def drain(self) -> List[MessageEnvelope]:
        with self._cond:
            items = list(self._items)
            self._items.clear()
        return items

    def task_done(self, count: int = 1) -> None:
        with self._cond:
            self._unfinished = max(0, self._unfinished - count)
            if self._unfinished == 0:
                self._cond.notify_all()

    def wait_idle(self, timeout: float) -> bool:
        """Wait until every posted envelope has been marked done."""
        deadline = time.monotonic() + timeout
        with self._cond:
            while self._unfinished:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
        return True

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._items.clear()
            self._unfinished = 0
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)
