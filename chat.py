"""
Interactive WebSocket chat client.

Usage:
  python chat.py            (or the ``chat-client`` console script)

Pick "Connect" from the menu, type messages and press Enter. ``showmenu``
brings the menu back during a session, ``exit`` or Ctrl+C leaves cleanly.
The server endpoint is taken from ``CHAT_SERVER_URL``.
"""

from __future__ import annotations

import logging
import signal
import sys

import config
from console import ConsolePresentation, LineReader
from context import ClientContext
from controller import ConnectionController

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------  wiring
def build_client(stream=sys.stdin) -> ConnectionController:
    context = ClientContext()
    lines = LineReader(stream)
    presentation = ConsolePresentation(lines, cancelled=context.cancelled)
    return ConnectionController(context, presentation, lines)


def install_signal_handlers(controller: ConnectionController):
    def _on_signal(signum, _frame):
        log.info("received signal %s", signum)
        controller.cancel()

    signal.signal(signal.SIGINT, _on_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _on_signal)


# ---------------------------------------------------------------------------  entry-point
def main() -> int:
    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO),
                        format="%(asctime)s [%(levelname)s] %(message)s",
                        datefmt="%H:%M:%S",
                        filename=config.LOG_FILE)

    controller = build_client()
    install_signal_handlers(controller)
    log.info("client started, server %s", config.SERVER_URL)
    try:
        controller.run()
    except Exception as exc:
        log.exception("unhandled error")
        controller.presentation.report_error(f"An unexpected error occurred: {exc}")
    finally:
        controller.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
