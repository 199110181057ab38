"""
Single-use duplex WebSocket session to the chat server.

A :class:`Session` is opened once, exchanges text frames in both directions
from two threads, and ends in one of the terminal states. Reconnecting always
means building a new Session.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Optional

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, InvalidHandshake, InvalidURI
from websockets.sync.client import connect

import config

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------  errors
class TransportError(Exception):
    """Base class for failures of the duplex transport."""


class ConnectFailure(TransportError):
    """The handshake with the server failed."""


class TransportAborted(TransportError):
    """A live session ended without a clean close."""


# ---------------------------------------------------------------------------  frames / state
class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE_RECEIVED = "close_received"
    CLOSED = "closed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({SessionState.CLOSE_RECEIVED, SessionState.CLOSED, SessionState.ABORTED})

FRAME_TEXT = "text"
FRAME_BINARY = "binary"
FRAME_CLOSE = "close"


class Frame:

    __slots__ = ("kind", "payload")

    def __init__(self, kind: str, payload: bytes = b""):
        self.kind = kind
        self.payload = bytes(payload)

    @classmethod
    def close(cls) -> "Frame":
        return cls(FRAME_CLOSE)

    @property
    def is_close(self) -> bool:
        return self.kind == FRAME_CLOSE

    def text(self) -> str:
        # a chunk may split a multi-byte character
        return self.payload.decode("utf-8", errors="replace")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Frame {self.kind.upper()} len={len(self.payload)}>"


# ---------------------------------------------------------------------------  session
class Session:
    """One WebSocket connection with an explicit lifecycle.

    ``receive`` is called from the inbound thread and ``send`` from the
    outbound thread. Sends are serialized with ``_send_lock``; state
    transitions go through ``_state_lock``.
    """

    def __init__(self, url: str, *, connector: Callable = connect,
                 receive_buffer_size: int = config.RECEIVE_BUFFER_SIZE,
                 open_timeout: float = config.CONNECT_TIMEOUT,
                 close_timeout: float = config.CLOSE_TIMEOUT,
                 max_size: int = config.MAX_MESSAGE_SIZE):
        self.url = url
        self._connector = connector
        self._buffer_size = receive_buffer_size
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._max_size = max_size

        self._ws = None
        self._state = SessionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._close_requested = False

        # remainder of a message longer than one receive buffer
        self._pending = b""
        self._pending_kind = FRAME_TEXT

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is SessionState.OPEN

    def _set_state(self, new: SessionState):
        if self._state is not new:
            log.debug("session %s: %s -> %s", self.url, self._state.value, new.value)
            self._state = new

    def _abort(self, exc: Exception):
        with self._state_lock:
            if self._state is not SessionState.CLOSED:
                self._set_state(SessionState.ABORTED)
        log.warning("session aborted: %s", exc)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def open(self):
        with self._state_lock:
            if self._state is not SessionState.DISCONNECTED:
                raise RuntimeError("a session can only be opened once")
            self._set_state(SessionState.CONNECTING)

        log.info("connecting to %s", self.url)
        try:
            ws = self._connector(self.url,
                                 open_timeout=self._open_timeout,
                                 close_timeout=self._close_timeout,
                                 max_size=self._max_size)
        except (OSError, InvalidHandshake, InvalidURI) as exc:
            with self._state_lock:
                self._set_state(SessionState.CLOSED)
            log.warning("connect to %s failed: %s", self.url, exc)
            raise ConnectFailure(str(exc) or exc.__class__.__name__) from exc
        except Exception:
            with self._state_lock:
                self._set_state(SessionState.CLOSED)
            raise

        with self._state_lock:
            self._ws = ws
            if not self._close_requested:
                self._set_state(SessionState.OPEN)
                log.info("connected to %s", self.url)
                return
        # close() was called while the handshake was still running
        ws.close()
        with self._state_lock:
            self._set_state(SessionState.CLOSED)
        raise ConnectFailure("session closed while connecting")

    def send(self, text: str):
        if self._state is not SessionState.OPEN:
            raise TransportError(f"cannot send on a {self._state.value} session")
        with self._send_lock:
            try:
                self._ws.send(text)
            except ConnectionClosedOK as exc:
                with self._state_lock:
                    if self._state is SessionState.OPEN:
                        self._set_state(SessionState.CLOSE_RECEIVED)
                raise TransportError("connection closed by peer") from exc
            except ConnectionClosedError as exc:
                self._abort(exc)
                raise TransportAborted(str(exc)) from exc
        log.debug("TX %r", text)

    def receive(self) -> Frame:
        """Return the next frame, at most one receive buffer long."""
        if self._pending:
            return self._take_pending()
        if self._ws is None:
            raise TransportError(f"cannot receive on a {self._state.value} session")
        if self._state in TERMINAL_STATES:
            return Frame.close()

        try:
            message = self._ws.recv()
        except ConnectionClosedOK:
            with self._state_lock:
                if self._state is SessionState.OPEN:
                    self._set_state(SessionState.CLOSE_RECEIVED)
            log.info("close frame received")
            return Frame.close()
        except ConnectionClosedError as exc:
            self._abort(exc)
            raise TransportAborted(str(exc)) from exc

        if isinstance(message, str):
            self._pending_kind = FRAME_TEXT
            self._pending = message.encode("utf-8")
        else:
            self._pending_kind = FRAME_BINARY
            self._pending = bytes(message)
        log.debug("RX %r", message)
        return self._take_pending()

    def close(self, reason: str = "Application exiting") -> bool:
        """Send a normal close frame if the session is Open or CloseReceived.

        Waits at most ``close_timeout`` for the peer. Returns True when a
        close was performed, False when there was nothing to close.
        """
        with self._state_lock:
            if self._state is SessionState.CONNECTING:
                self._close_requested = True
                return False
            if self._state not in (SessionState.OPEN, SessionState.CLOSE_RECEIVED):
                return False
            ws = self._ws

        log.info("closing session: %s", reason)
        try:
            ws.close(code=1000, reason=reason)
        finally:
            with self._state_lock:
                if self._state is not SessionState.ABORTED:
                    self._set_state(SessionState.CLOSED)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _take_pending(self) -> Frame:
        chunk = self._pending[:self._buffer_size]
        self._pending = self._pending[self._buffer_size:]
        return Frame(self._pending_kind, chunk)
