import socket

import pytest

from sunkv.acceptor import Acceptor
from sunkv.event_loop import EventLoop


@pytest.fixture
def loop():
    event_loop = EventLoop()
    yield event_loop
    event_loop.close()


def _run_until(loop, predicate, timeout_ms=2000):
    stop_id = loop.run_after(timeout_ms, loop.quit)

    def check():
        if predicate():
            loop.quit()

    check_id = loop.run_every(10, check)
    try:
        loop.loop()
    finally:
        loop.cancel_timer(stop_id)
        loop.cancel_timer(check_id)


def test_accepted_connection_reaches_callback(loop):
    accepted = []
    acceptor = Acceptor(loop, "127.0.0.1", 0)
    try:
        acceptor.new_connection_callback = lambda sock, local, peer: accepted.append(
            (sock, local, peer)
        )
        acceptor.listen()
        client = socket.create_connection(("127.0.0.1", acceptor.bound_port), timeout=5)
        try:
            _run_until(loop, lambda: bool(accepted))
            assert len(accepted) == 1
            sock, local, peer = accepted[0]
            assert local == "127.0.0.1:0"
            assert peer == f"127.0.0.1:{client.getsockname()[1]}"
            assert sock.getblocking() is False
            sock.close()
        finally:
            client.close()
    finally:
        acceptor.close()


def test_connection_closed_without_callback(loop):
    acceptor = Acceptor(loop, "127.0.0.1", 0)
    try:
        acceptor.listen()
        client = socket.create_connection(("127.0.0.1", acceptor.bound_port), timeout=5)
        try:
            _run_until(loop, lambda: False, timeout_ms=200)
            assert client.recv(16) == b""
        finally:
            client.close()
    finally:
        acceptor.close()


def test_listening_flag_follows_listen_and_stop(loop):
    acceptor = Acceptor(loop, "127.0.0.1", 0)
    try:
        assert acceptor.listening is False
        acceptor.listen()
        assert acceptor.listening is True
        acceptor.stop()
        assert acceptor.listening is False
        acceptor.stop()
        assert acceptor.listening is False
    finally:
        acceptor.close()


def test_configured_and_bound_ports(loop):
    acceptor = Acceptor(loop, "127.0.0.1", 0)
    try:
        assert acceptor.listen_port == 0
        assert acceptor.listen_address == "127.0.0.1"
        assert acceptor.bound_port > 0
    finally:
        acceptor.close()


def test_invalid_address_is_rejected(loop):
    with pytest.raises(ValueError):
        Acceptor(loop, "not-an-address", 0)