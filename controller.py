"""
Connection lifecycle: connect -> duplex exchange -> disconnect / reconnect.

The controller owns the current :class:`Session`. It starts the inbound and
outbound pumps on their own threads, waits for the first of them to finish,
and then decides whether to prompt for a reconnect, reconnect straight
away, or stop.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional
from urllib.parse import quote

import config
from connection import ConnectFailure, Session, SessionState, TransportError
from console import LineReader, MenuChoice, Presentation
from context import ClientContext
from frames import USER_LIST_REQUEST
from pumps import receive_loop, send_loop

log = logging.getLogger(__name__)


def endpoint_for(identity: str, base_url: str = config.SERVER_URL) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{config.IDENTITY_QUERY_PARAM}={quote(identity, safe='')}"


class ConnectionController:

    # ------------------------------------------------------------------  setup
    def __init__(self, context: ClientContext, presentation: Presentation, lines: LineReader, *,
                 session_factory: Callable[[str], Session] = Session,
                 base_url: str = config.SERVER_URL,
                 progress_interval: float = config.CONNECT_PROGRESS_INTERVAL,
                 join_timeout: float = config.PUMP_JOIN_TIMEOUT,
                 prompt_on_unexpected: bool = config.PROMPT_ON_UNEXPECTED_FAILURE):
        self.context = context
        self.presentation = presentation
        self.lines = lines
        self._session_factory = session_factory
        self._base_url = base_url
        self._progress_interval = progress_interval
        self._join_timeout = join_timeout
        self._prompt_on_unexpected = prompt_on_unexpected

        self.session: Optional[Session] = None
        self._pumps: List[threading.Thread] = []
        self._stop_pumps = threading.Event()
        self._shutdown_done = False

    # ------------------------------------------------------------------  main menu
    def run(self):
        """Main menu until the user connects (and finally leaves) or exits."""
        while not self.context.cancelled.is_set():
            choice = self.presentation.show_menu()
            if choice is MenuChoice.CONNECT:
                if self.ensure_identity():
                    self.run_connection_loop()
                return
            if choice is MenuChoice.VIEW_USERS:
                self.request_user_list()
                continue
            return

    def ensure_identity(self) -> bool:
        """Prompt for the username once per process. False if the user bailed out."""
        while self.context.identity is None:
            name = self.presentation.prompt_username()
            if name is None or self.context.cancelled.is_set():
                self.context.stop_reconnecting()
                return False
            if name.strip():
                self.context.identity = name
                log.info("identity set to %r", name)
            else:
                self.presentation.report_error("Username cannot be empty. Please try again.")
        return True

    def request_user_list(self) -> bool:
        if self.session is None or not self.session.is_open:
            self.presentation.report_error("Please connect first.")
            return False
        try:
            self.session.send(USER_LIST_REQUEST)
        except TransportError as exc:
            log.error("user list request failed: %s", exc)
            self.presentation.report_error("Please connect first.")
            return False
        return True

    # ------------------------------------------------------------------  connection loop
    def run_connection_loop(self):
        while self.context.reconnect and not self.context.cancelled.is_set():
            self.try_connection()

    def try_connection(self):
        """One connection attempt and, if it opens, one duplex exchange."""
        session = self._new_session()
        self.presentation.report_status("Connecting to Server.")
        try:
            self._wait_with_progress(session.open)
        except ConnectFailure as exc:
            log.warning("connect failed: %s", exc)
            self.presentation.report_error("Failed to connect, Please try again.")
            self._prompt_reconnect()
            return
        except Exception as exc:
            log.exception("unexpected error while connecting")
            self.presentation.report_error(f"An unexpected error occurred: {exc}")
            if self._prompt_on_unexpected:
                self._prompt_reconnect()
            return

        if self.context.cancelled.is_set():
            return
        self.presentation.report_status("Connected!")
        self._run_duplex(session)

        if session.state is SessionState.ABORTED:
            self.presentation.report_error("Connection lost.")
            self._prompt_reconnect()

    def _prompt_reconnect(self):
        if self.context.cancelled.is_set():
            return
        self.context.request_reconnect(self.presentation.prompt_reconnect())
        log.info("reconnect intent: %s", self.context.reconnect)

    # ------------------------------------------------------------------  duplex exchange
    def _run_duplex(self, session: Session):
        finished = threading.Event()
        self._stop_pumps = threading.Event()

        def run(target, *args):
            try:
                target(*args)
            except Exception:
                log.exception("pump %s crashed", threading.current_thread().name)
            finally:
                finished.set()

        self._pumps = [
            threading.Thread(target=run, name="inbound-pump", daemon=True,
                             args=(receive_loop, session, self.context, self.presentation)),
            threading.Thread(target=run, name="outbound-pump", daemon=True,
                             args=(send_loop, session, self.context, self.lines,
                                   self.presentation, self._stop_pumps)),
        ]
        for pump in self._pumps:
            pump.start()

        # first pump to return ends the exchange
        while not finished.wait(config.INPUT_POLL_INTERVAL):
            if self.context.cancelled.is_set():
                break
        self._stop_pumps.set()
        log.info("duplex exchange ended (session %s)", session.state.value)
        # the outbound pump must release stdin before any prompt reads it
        outbound = self._pumps[1]
        outbound.join(self._join_timeout)

    def _join_pumps(self):
        for pump in self._pumps:
            pump.join(self._join_timeout)
            if pump.is_alive():
                log.warning("%s did not stop in time", pump.name)
        self._pumps = []

    # ------------------------------------------------------------------  session ownership
    def _new_session(self) -> Session:
        old = self.session
        if old is not None:
            self._stop_pumps.set()
            old.close("Reconnect")
            self._join_pumps()
        self.session = self._session_factory(endpoint_for(self.context.identity, self._base_url))
        return self.session

    def _wait_with_progress(self, work: Callable[[], object], interruptible: bool = True):
        """Run *work* on a helper thread, ticking progress until it completes.

        An interruptible wait also gives up once the context is cancelled;
        *work* then finishes in the background.
        """
        outcome = {}

        def runner():
            try:
                work()
            except BaseException as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=runner, name="progress-worker", daemon=True)
        worker.start()
        while True:
            self.presentation.report_progress()
            worker.join(self._progress_interval)
            if not worker.is_alive():
                break
            if interruptible and self.context.cancelled.is_set():
                return
        if "error" in outcome:
            raise outcome["error"]

    # ------------------------------------------------------------------  termination
    def cancel(self):
        """Termination request (signal handler): stop reconnecting and wake the pumps."""
        log.info("termination requested")
        self.context.cancel()
        self._stop_pumps.set()

    def shutdown(self):
        """Close the current session with a bounded grace period. Safe to call twice."""
        if self._shutdown_done:
            return
        self._shutdown_done = True
        self.context.cancel()
        self._stop_pumps.set()

        session = self.session
        if session is None:
            return
        if session.state in (SessionState.OPEN, SessionState.CLOSE_RECEIVED):
            self.presentation.report_status("Closing Application.")
            try:
                self._wait_with_progress(session.close, interruptible=False)
            except TransportError as exc:
                log.error("close failed: %s", exc)
        elif session.state is SessionState.CLOSED:
            self.presentation.report_status("Closing Application.")
        elif session.state is SessionState.ABORTED:
            self.presentation.report_error("Connection lost.")
        else:
            session.close()
        self._join_pumps()
        log.info("shutdown complete")
