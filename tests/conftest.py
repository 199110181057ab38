import queue
import threading
import time

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from console import MenuChoice
from context import ClientContext


def closed_ok():
    return ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True)


def closed_error():
    return ConnectionClosedError(None, None)


class FakeWebSocket:
    """Stands in for a websockets ClientConnection.

    ``script`` items are returned by ``recv`` in order; exception instances
    are raised instead. Once the script is exhausted ``recv`` blocks until
    ``close`` is called.
    """

    def __init__(self, script=()):
        self._inbox = queue.Queue()
        for item in script:
            self._inbox.put(item)
        self.sent = []
        self.close_calls = []
        self.closed = threading.Event()

    def recv(self):
        while True:
            if self.closed.is_set() and self._inbox.empty():
                raise closed_ok()
            try:
                item = self._inbox.get(timeout=0.01)
            except queue.Empty:
                continue
            if isinstance(item, BaseException):
                raise item
            return item

    def push(self, item):
        self._inbox.put(item)

    def send(self, message):
        if self.closed.is_set():
            raise closed_ok()
        self.sent.append(message)

    def close(self, code=1000, reason=""):
        self.close_calls.append((code, reason))
        self.closed.set()


class FakeConnector:
    """Returns (or raises) the given outcomes, one per connect call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if callable(outcome):
            outcome = outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeLines:
    """Scripted replacement for LineReader.

    A ``threading.Event`` in the script holds further lines back until it is
    set. With the script exhausted, reads block until ``should_stop``.
    """

    def __init__(self, *items, eof=False):
        self.items = list(items)
        self.eof = eof

    def read_line(self, should_stop=lambda: False):
        while True:
            if should_stop():
                return None
            if self.items:
                head = self.items[0]
                if isinstance(head, threading.Event):
                    if head.is_set():
                        self.items.pop(0)
                        continue
                else:
                    return self.items.pop(0)
            elif self.eof:
                raise EOFError
            time.sleep(0.005)


class FakePresentation:

    def __init__(self, menu=(), usernames=(), reconnect_answers=()):
        self.menu = list(menu)
        self.usernames = list(usernames)
        self.reconnect_answers = list(reconnect_answers)
        self.menu_shown = 0
        self.reconnect_prompts = 0
        self.errors = []
        self.statuses = []
        self.progress_ticks = 0
        self.messages = []
        self.user_lists = []

    def show_menu(self, should_stop=None):
        self.menu_shown += 1
        return self.menu.pop(0) if self.menu else MenuChoice.EXIT

    def prompt_username(self):
        return self.usernames.pop(0) if self.usernames else None

    def prompt_reconnect(self):
        self.reconnect_prompts += 1
        return self.reconnect_answers.pop(0) if self.reconnect_answers else False

    def report_error(self, text):
        self.errors.append(text)

    def report_status(self, text):
        self.statuses.append(text)

    def report_progress(self):
        self.progress_ticks += 1

    def render_message(self, message):
        self.messages.append(message)

    def render_user_list(self, names):
        self.user_lists.append(list(names))


@pytest.fixture
def context():
    return ClientContext(identity="alice")


@pytest.fixture
def presentation():
    return FakePresentation()
