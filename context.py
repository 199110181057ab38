"""Per-process client state shared by the controller and both pumps."""

from __future__ import annotations

import threading
from typing import Optional


class ClientContext:
    """Holds the username, the reconnect intent and the cancellation token.

    The username is set once and survives reconnects. The reconnect intent
    starts True; it is cleared by the ``exit`` command or by :meth:`cancel`,
    and re-evaluated by the reconnect prompt. Once cancelled, the prompt can
    no longer turn it back on.
    """

    def __init__(self, identity: Optional[str] = None):
        self._lock = threading.Lock()
        self._identity = identity
        self._reconnect = True
        self.cancelled = threading.Event()

    # ------------------------------------------------------------------  identity
    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @identity.setter
    def identity(self, name: str):
        with self._lock:
            if self._identity is not None:
                raise AttributeError("identity is already set")
            self._identity = name

    # ------------------------------------------------------------------  reconnect intent
    @property
    def reconnect(self) -> bool:
        return self._reconnect

    def request_reconnect(self, answer: bool):
        """Apply the user's answer to the reconnect prompt."""
        with self._lock:
            self._reconnect = bool(answer) and not self.cancelled.is_set()

    def stop_reconnecting(self):
        with self._lock:
            self._reconnect = False

    def cancel(self):
        """Termination request: stop reconnecting and wake every waiter."""
        with self._lock:
            self._reconnect = False
            self.cancelled.set()
