import threading
from datetime import datetime

import pytest

from linechat.client import ChatClient
from linechat.config import ServerRuntimeConfig
from linechat.service import ChatService

FIXED_NOW = datetime(2024, 5, 17, 12, 34)


@pytest.fixture
def service():
    svc = ChatService(
        ServerRuntimeConfig(host="127.0.0.1", port=0), clock=lambda: FIXED_NOW
    )
    svc.start()
    yield svc
    svc.stop()


@pytest.fixture
def connect(service):
    clients: list[ChatClient] = []
    host, port = service.address

    def _connect() -> ChatClient:
        c = ChatClient(host, port, timeout=5)
        c.connect()
        clients.append(c)
        return c

    yield _connect
    for c in clients:
        c.close()


def test_chat_scenario(service, connect) -> None:
    a = connect()
    assert a.login("alice")
    assert a.read_line() == "Активные пользователи: alice"

    b = connect()
    assert not b.login("alice")
    assert b.login("bob")
    assert b.read_line() == "Активные пользователи: alice, bob"
    assert a.read_line() == "bob вошел в чат"

    a.send("private|bob|hi")
    assert b.read_line() == "alice (12:34): hi"

    # Nothing reached alice in between: the next line she sees is the notice.
    a.send("private|carol|hi")
    assert a.read_line() == "Пользователь carol не найден."

    b.send("  hello there  ")
    assert a.read_line() == "bob (12:34):   hello there  "

    b.close()
    assert a.read_line() == "bob покинул чат"
    assert service.registry.lookup_by_username("bob") is None

    c = connect()
    assert c.login("bob")
    assert c.read_line() == "Активные пользователи: alice, bob"
    assert a.read_line() == "bob вошел в чат"


def test_client_arrow_syntax_reaches_each_target(connect) -> None:
    a = connect()
    assert a.login("alice")
    a.read_line()

    b = connect()
    assert b.login("bob")
    b.read_line()
    assert a.read_line() == "bob вошел в чат"

    a.send("->bob, dave : see you")

    assert b.read_line() == "alice (12:34): see you"
    assert a.read_line() == "Пользователь dave не найден."


def test_unauthenticated_client_gets_no_broadcasts(connect) -> None:
    lurker = connect()

    a = connect()
    assert a.login("alice")
    a.read_line()
    a.send("anyone?")
    a.send("private|nobody|sync")
    assert a.read_line() == "Пользователь nobody не найден."

    # The lurker's first line is the reply to its own handshake.
    lurker.connection.send_line("alice")
    assert lurker.read_line() == "Имя занято"
    # Nothing is queued behind it: the next lines answer the next attempt.
    assert lurker.login("lurker")
    assert lurker.read_line() == "Активные пользователи: alice, lurker"


def test_stop_disconnects_everyone(service, connect) -> None:
    a = connect()
    assert a.login("alice")
    a.read_line()

    service.stop()

    assert a.read_line() is None
    assert service.registry.get_stats() == {"total": 0, "active": 0}
    assert service.stats_manager.get("joins") == 1


def test_user_list_directly_follows_acceptance_under_traffic(connect) -> None:
    a = connect()
    assert a.login("alice")
    a.read_line()

    stop = threading.Event()

    def chatter() -> None:
        while not stop.is_set():
            a.send("tick")

    t = threading.Thread(target=chatter, name="chatter", daemon=True)
    t.start()
    try:
        for i in range(50):
            c = connect()
            assert c.login(f"b{i}")
            assert c.read_line().startswith("Активные пользователи: ")
            c.close()
    finally:
        stop.set()
        t.join(timeout=5)


def test_wait_returns_once_stopped(service) -> None:
    assert not service.wait(0.01)

    timer = threading.Timer(0.05, service.stop)
    timer.start()
    try:
        assert service.wait(5)
    finally:
        timer.join()
