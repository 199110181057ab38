"""
Console side of the client: stdin line source and rich-based rendering.

All input goes through one :class:`LineReader` so that a read can be
abandoned (pump stopped, Ctrl+C) without leaving a thread that later steals
a line meant for another prompt.
"""

from __future__ import annotations

import enum
import logging
import queue
import sys
import threading
from typing import Callable, List, Optional, Protocol, TextIO

from rich.console import Console
from rich.rule import Rule
from rich.text import Text

import config
from frames import InboundMessage, MessageKind

log = logging.getLogger(__name__)

WELCOME_TEXT = "Welcome to ChatApp 1.0"

_EOF = object()


def _never() -> bool:
    return False


# ---------------------------------------------------------------------------  input
class LineReader:
    """Reads lines from *stream* on a daemon thread and queues them."""

    def __init__(self, stream: TextIO = sys.stdin, poll_interval: float = config.INPUT_POLL_INTERVAL):
        self._stream = stream
        self._poll = poll_interval
        self._lines: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    def _ensure_started(self):
        with self._start_lock:
            if self._thread is None:
                self._thread = threading.Thread(target=self._read_loop, name="stdin-reader", daemon=True)
                self._thread.start()

    def _read_loop(self):
        while True:
            try:
                line = self._stream.readline()
            except (OSError, ValueError) as exc:
                log.error("stdin read error: %s", exc)
                line = ""
            if not line:
                self._lines.put(_EOF)
                return
            self._lines.put(line.rstrip("\r\n"))

    def read_line(self, should_stop: Callable[[], bool] = _never) -> Optional[str]:
        """Block until a line arrives.

        Returns None as soon as *should_stop* reports True (checked once per
        poll interval). Raises EOFError once the stream is exhausted.
        """
        self._ensure_started()
        while True:
            if should_stop():
                return None
            try:
                item = self._lines.get(timeout=self._poll)
            except queue.Empty:
                continue
            if item is _EOF:
                self._lines.put(_EOF)  # every later read sees EOF too
                raise EOFError
            return item


# ---------------------------------------------------------------------------  presentation
class MenuChoice(enum.Enum):
    CONNECT = "1"
    VIEW_USERS = "2"
    EXIT = "3"


class Presentation(Protocol):
    """What the controller and pumps need from the user interface."""

    def show_menu(self, should_stop: Optional[Callable[[], bool]] = None) -> Optional[MenuChoice]: ...

    def prompt_username(self) -> Optional[str]: ...

    def prompt_reconnect(self) -> bool: ...

    def report_error(self, text: str): ...

    def report_status(self, text: str): ...

    def report_progress(self): ...

    def render_message(self, message: InboundMessage): ...

    def render_user_list(self, names: List[str]): ...


_MESSAGE_STYLES = {
    MessageKind.SELF_ECHO: "yellow",
    MessageKind.SYSTEM_NOTICE: "magenta",
    MessageKind.PLAIN_BROADCAST: "green4",
    MessageKind.USER_LIST_REPLY: "cyan",
}


class ConsolePresentation:
    """Colored terminal front end.

    Prompts read through *lines*; once *cancelled* is set every pending
    prompt gives up and returns its "leave" answer.
    """

    def __init__(self, lines: LineReader, console: Optional[Console] = None,
                 cancelled: Optional[threading.Event] = None):
        self.lines = lines
        self.console = console or Console(highlight=False)
        self.cancelled = cancelled or threading.Event()

    def _read(self, should_stop: Optional[Callable[[], bool]] = None) -> Optional[str]:
        def stop() -> bool:
            return self.cancelled.is_set() or (should_stop is not None and should_stop())

        try:
            return self.lines.read_line(stop)
        except EOFError:
            return None

    # ------------------------------------------------------------------  prompts
    def show_menu(self, should_stop: Optional[Callable[[], bool]] = None) -> Optional[MenuChoice]:
        """Show the menu and wait for a choice.

        Returns None when *should_stop* fires first (the exchange that
        opened the menu is over); cancellation or end of input mean EXIT.
        """
        self.console.print(Rule(style="cyan"))
        self.console.print(Text(WELCOME_TEXT, style="cyan"), justify="center")
        self.console.print(Rule(style="cyan"))
        self.console.print("Select Option:", style="cyan")
        self.console.print("1. Connect to Chat Server", style="cyan")
        self.console.print("2. View Connected Users", style="cyan")
        self.console.print("3. Exit", style="cyan")
        self.console.print(Rule(style="cyan"))
        while True:
            self.console.print("Press Enter option Number: ", end="")
            choice = self._read(should_stop)
            if choice is None:
                if should_stop is not None and should_stop() and not self.cancelled.is_set():
                    return None
                return MenuChoice.EXIT
            try:
                return MenuChoice(choice.strip())
            except ValueError:
                self.report_error("Invalid choice.")

    def prompt_username(self) -> Optional[str]:
        self.console.print("Input UserName: ", style="cyan", end="")
        return self._read()

    def prompt_reconnect(self) -> bool:
        self.console.print("Would you like to reconnect? (y/n): ", style="yellow", end="")
        answer = self._read()
        return answer is not None and answer.strip().lower() == "y"

    # ------------------------------------------------------------------  output
    def report_error(self, text: str):
        self.console.print(text, style="red", markup=False)

    def report_status(self, text: str):
        self.console.print(text, style="green", markup=False)

    def report_progress(self):
        self.console.print(".", style="cyan", end="")

    def render_message(self, message: InboundMessage):
        self.console.print(Text(message.text, style=_MESSAGE_STYLES[message.kind]))

    def render_user_list(self, names: List[str]):
        self.console.print(Rule(style="cyan"))
        self.console.print(Text("Connected User List:", style="cyan"), justify="center")
        for name in names:
            self.console.print(Text(name, style="cyan"), justify="center")
        self.console.print(Rule(style="cyan"))
