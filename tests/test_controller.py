import io
import threading
import time
from functools import partial

import pytest
from rich.console import Console

from conftest import FakeConnector, FakeLines, FakePresentation, FakeWebSocket, closed_error, closed_ok
from connection import Session, SessionState
from console import ConsolePresentation, MenuChoice
from context import ClientContext
from controller import ConnectionController, endpoint_for

BASE_URL = "ws://chat.test/ws"


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "condition not reached in time"
        time.sleep(0.005)


def make_controller(context, presentation, lines, connector, **kwargs):
    kwargs.setdefault("prompt_on_unexpected", True)
    return ConnectionController(
        context, presentation, lines,
        session_factory=partial(Session, connector=connector),
        base_url=BASE_URL,
        progress_interval=0.01,
        join_timeout=1.0,
        **kwargs,
    )


def test_endpoint_carries_quoted_identity():
    assert endpoint_for("alice", "ws://localhost:6000/ws") == "ws://localhost:6000/ws?name=alice"
    assert endpoint_for("a b&c", "ws://h/ws") == "ws://h/ws?name=a%20b%26c"
    assert endpoint_for("bob", "ws://h/ws?room=1") == "ws://h/ws?room=1&name=bob"


def test_connect_failure_then_decline(context):
    presentation = FakePresentation(reconnect_answers=[False])
    connector = FakeConnector(ConnectionRefusedError("refused"))
    controller = make_controller(context, presentation, FakeLines(), connector)

    controller.run_connection_loop()

    assert "Failed to connect, Please try again." in presentation.errors
    assert presentation.reconnect_prompts == 1
    assert not context.reconnect
    assert len(connector.calls) == 1


def test_connect_failure_then_retry_reuses_identity(context):
    presentation = FakePresentation(reconnect_answers=[True])
    connector = FakeConnector(ConnectionRefusedError("refused"), FakeWebSocket())
    controller = make_controller(context, presentation, FakeLines("exit"), connector)

    controller.run_connection_loop()

    urls = [url for url, _ in connector.calls]
    assert urls == [BASE_URL + "?name=alice"] * 2
    assert "Connected!" in presentation.statuses
    controller.shutdown()


def test_exit_command_ends_loop_without_prompt(context, presentation):
    ws = FakeWebSocket()
    controller = make_controller(context, presentation, FakeLines("hello", "exit"), FakeConnector(ws))

    controller.run_connection_loop()

    assert not context.reconnect
    assert presentation.reconnect_prompts == 0
    assert ws.sent == ["hello"]
    assert controller.session.state is SessionState.OPEN

    controller.shutdown()
    assert controller.session.state is SessionState.CLOSED
    assert ws.close_calls == [(1000, "Application exiting")]
    assert "Closing Application." in presentation.statuses


def test_lost_connection_prompts_reconnect(context):
    presentation = FakePresentation(reconnect_answers=[False])
    ws = FakeWebSocket(["(bob)hi", closed_error()])
    controller = make_controller(context, presentation, FakeLines(), FakeConnector(ws))

    controller.run_connection_loop()

    assert "Connection lost." in presentation.errors
    assert presentation.reconnect_prompts == 1
    assert controller.session.state is SessionState.ABORTED
    assert not context.reconnect


def test_peer_close_reconnects_without_prompt(context, presentation):
    second_ready = threading.Event()
    first = FakeWebSocket([closed_ok()])
    second = FakeWebSocket()

    def second_connect():
        second_ready.set()
        return second

    lines = FakeLines(second_ready, "exit")
    controller = make_controller(context, presentation, lines, FakeConnector(first, second_connect))

    controller.run_connection_loop()

    assert presentation.reconnect_prompts == 0
    assert first.close_calls == [(1000, "Reconnect")]
    assert controller.session.state is SessionState.OPEN
    controller.shutdown()


def test_menu_connect_replaces_session(context):
    presentation = FakePresentation(menu=[MenuChoice.CONNECT])
    first, second = FakeWebSocket(), FakeWebSocket()
    controller = make_controller(context, presentation, FakeLines("showmenu", "exit"),
                                 FakeConnector(first, second))

    controller.run_connection_loop()

    assert first.close_calls == [(1000, "Reconnect")]
    assert not second.closed.is_set()
    controller.shutdown()
    assert second.closed.is_set()


@pytest.mark.parametrize("prompt_on_unexpected, prompts", [(True, 1), (False, 1)])
def test_unexpected_connect_error(context, prompt_on_unexpected, prompts):
    presentation = FakePresentation(reconnect_answers=[False])

    def stop_then_refuse():
        context.stop_reconnecting()
        return ConnectionRefusedError("refused")

    outcomes = [ValueError("boom")]
    if not prompt_on_unexpected:
        outcomes.append(stop_then_refuse)
    controller = make_controller(context, presentation, FakeLines(), FakeConnector(*outcomes),
                                 prompt_on_unexpected=prompt_on_unexpected)

    controller.run_connection_loop()

    assert "An unexpected error occurred: boom" in presentation.errors
    assert presentation.reconnect_prompts == prompts


def test_cancel_during_exchange_stops_loop(context, presentation):
    ws = FakeWebSocket()
    controller = make_controller(context, presentation, FakeLines(), FakeConnector(ws))
    loop = threading.Thread(target=controller.run_connection_loop)
    loop.start()
    while controller.session is None or not controller.session.is_open:
        time.sleep(0.01)

    controller.cancel()
    loop.join(2.0)
    assert not loop.is_alive()

    controller.shutdown()
    assert ws.closed.is_set()
    assert presentation.reconnect_prompts == 0


def test_shutdown_without_session_is_silent(context, presentation):
    controller = make_controller(context, presentation, FakeLines(), FakeConnector())
    controller.shutdown()
    controller.shutdown()
    assert presentation.errors == []
    assert presentation.statuses == []


# ---------------------------------------------------------------------------  main menu
def test_view_users_requires_connection(context):
    presentation = FakePresentation(menu=[MenuChoice.VIEW_USERS, MenuChoice.EXIT])
    controller = make_controller(context, presentation, FakeLines(), FakeConnector())

    controller.run()

    assert presentation.errors == ["Please connect first."]
    assert presentation.menu_shown == 2
    assert controller.session is None


def test_connect_prompts_for_username_once():
    context = ClientContext()
    presentation = FakePresentation(menu=[MenuChoice.CONNECT], usernames=["", "alice"],
                                    reconnect_answers=[True, False])
    connector = FakeConnector(ConnectionRefusedError("refused"), ConnectionRefusedError("refused"))
    controller = make_controller(context, presentation, FakeLines(), connector)

    controller.run()

    assert context.identity == "alice"
    assert presentation.errors.count("Username cannot be empty. Please try again.") == 1
    assert presentation.reconnect_prompts == 2
    assert len(connector.calls) == 2


def test_request_user_list_while_connected(context, presentation, mocker):
    controller = make_controller(context, presentation, FakeLines(), FakeConnector())
    controller.session = mocker.Mock(spec=Session)
    controller.session.is_open = True

    assert controller.request_user_list() is True
    controller.session.send.assert_called_once_with("getConnectedUsers")


def test_menu_left_open_on_lost_connection_does_not_steal_input(context):
    output = io.StringIO()
    lines = FakeLines("showmenu")
    presentation = ConsolePresentation(lines, console=Console(file=output, color_system=None),
                                       cancelled=context.cancelled)
    first, second = FakeWebSocket(), FakeWebSocket()
    controller = make_controller(context, presentation, lines, FakeConnector(first, second))
    loop = threading.Thread(target=controller.run_connection_loop)
    loop.start()

    wait_for(lambda: "Press Enter option Number" in output.getvalue())
    first.push(closed_error())
    wait_for(lambda: "Would you like to reconnect?" in output.getvalue())
    lines.items.extend(["y", "hello", "exit"])
    loop.join(5.0)

    assert not loop.is_alive()
    assert second.sent == ["hello"]
    assert "Invalid choice." not in output.getvalue()
    controller.shutdown()
