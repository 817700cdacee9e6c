import socket

import pytest

from sunkv.sockets import Socket

LOCALHOST = "127.0.0.1"


@pytest.fixture
def listener():
    raw = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    raw.setblocking(False)
    sock = Socket(raw)
    sock.set_reuse_addr(True)
    sock.bind_address(LOCALHOST, 0)
    sock.listen()
    yield sock
    sock.close()


def _connect(port):
    client = Socket(socket.socket(socket.AF_INET, socket.SOCK_STREAM))
    client.sock.settimeout(2)
    client.connect(LOCALHOST, port)
    return client


def test_bound_address_and_port(listener):
    assert listener.local_address() == LOCALHOST
    assert listener.local_port() > 0


def test_accept_without_pending_connection_returns_none(listener):
    assert listener.accept() is None


def test_accept_reports_peer(listener):
    client = _connect(listener.local_port())
    accepted = listener.accept()
    assert accepted is not None
    conn, (peer_host, peer_port) = accepted
    try:
        assert peer_host == LOCALHOST
        assert peer_port == client.local_port()
        assert conn.getblocking() is False
        assert client.peer_address() == LOCALHOST
        assert client.peer_port() == listener.local_port()
        assert client.socket_error() == 0
    finally:
        conn.close()
        client.close()


def test_shutdown_signals_end_of_stream(listener):
    client = _connect(listener.local_port())
    conn, _ = listener.accept()
    server_side = Socket(conn)
    server_side.shutdown()
    assert client.sock.recv(16) == b""
    server_side.close()
    client.close()


def test_unconnected_socket_has_no_peer():
    with Socket(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        assert sock.peer_address() == ""
        assert sock.peer_port() == sock.local_port()


def test_invalid_addresses_rejected():
    with Socket(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        with pytest.raises(ValueError):
            sock.bind_address("not-an-ip", 0)
        with pytest.raises(ValueError):
            sock.connect("999.1.1.1", 1)


def test_bind_any_address():
    with Socket(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        sock.bind_address("", 0)
        assert sock.local_address() == "0.0.0.0"


def test_socket_options_take_effect():
    with Socket(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        sock.set_tcp_no_delay(True)
        assert sock.sock.getsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY)
        sock.set_keep_alive(True)
        assert sock.sock.getsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE)
        sock.set_keep_alive(False)
        assert not sock.sock.getsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE)


def test_buffer_sizes():
    with Socket(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        before = sock.sock.getsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF)
        sock.set_send_buffer_size(0)
        assert sock.sock.getsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF) == before
        sock.set_send_buffer_size(65536)
        assert sock.sock.getsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF) >= 65536
        sock.set_recv_buffer_size(65536)
        assert sock.sock.getsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF) >= 65536


def test_wraps_raw_descriptor():
    raw = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    fd = raw.detach()
    sock = Socket(fd)
    assert sock.fd == fd
    sock.close()
    assert sock.sock.fileno() == -1