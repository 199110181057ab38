"""
The two halves of the duplex exchange.

Both loops run on their own thread against the same :class:`Session`.
Neither raises: a transport error ends the loop, and a loop returning is the
only thing the controller observes.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from connection import Session, TransportError
from console import LineReader, MenuChoice, Presentation
from context import ClientContext
from frames import USER_LIST_REQUEST, MessageKind, classify

log = logging.getLogger(__name__)


def _is_exit(line: str) -> bool:
    return line.lower() == "exit"


def _is_show_menu(line: str) -> bool:
    return "".join(line.lower().split()) == "showmenu"


# ---------------------------------------------------------------------------  inbound
def receive_loop(session: Session, context: ClientContext, presentation: Presentation):
    """Receive frames until a close frame; classify and render each one."""
    while True:
        try:
            frame = session.receive()
        except TransportError as exc:
            log.error("receive error: %s", exc)
            return

        if frame.is_close:
            log.info("inbound pump finished: close frame")
            return

        message = classify(frame.text(), context.identity)
        log.debug("[%s] %s", message.kind.value, message.text)
        if message.kind is MessageKind.USER_LIST_REPLY:
            presentation.render_user_list(message.users)
        else:
            presentation.render_message(message)


# ---------------------------------------------------------------------------  outbound
def send_loop(session: Session, context: ClientContext, lines: LineReader,
              presentation: Presentation, stop: Optional[threading.Event] = None):
    """Send typed lines until ``exit``, a cleared reconnect intent, or *stop*."""
    stop = stop or threading.Event()

    def should_stop() -> bool:
        return stop.is_set() or not context.reconnect

    while True:
        try:
            line = lines.read_line(should_stop)
        except EOFError:
            log.info("stdin closed, leaving")
            context.stop_reconnecting()
            return

        if not context.reconnect:
            presentation.report_status("Exiting...")
            return
        if stop.is_set():
            return
        if not line:
            continue

        if _is_exit(line):
            log.info("exit requested by user")
            context.stop_reconnecting()
            return

        try:
            if _is_show_menu(line):
                if not _handle_menu(session, context, presentation, should_stop):
                    return
            else:
                session.send(line)
        except TransportError as exc:
            log.error("send error: %s", exc)
            return


def _handle_menu(session: Session, context: ClientContext, presentation: Presentation,
                 should_stop: Callable[[], bool]) -> bool:
    """Run the menu from inside a session. Returns False when the pump should end."""
    choice = presentation.show_menu(should_stop)
    if choice is None:
        # exchange ended while the menu was waiting
        return False
    if choice is MenuChoice.VIEW_USERS:
        session.send(USER_LIST_REQUEST)
        return True
    if choice is MenuChoice.EXIT:
        context.stop_reconnecting()
        return False
    # CONNECT: end this exchange with the intent kept, the controller reconnects
    log.info("reconnect requested from menu")
    return False
