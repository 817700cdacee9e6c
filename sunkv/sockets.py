"""Thin owner of a TCP socket with the options a server needs."""

from __future__ import annotations

import socket
from typing import Optional, Tuple, Union

from .logger import get_logger

Peer = Tuple[str, int]


def _is_ipv4(addr: str) -> bool:
    try:
        socket.inet_pton(socket.AF_INET, addr)
    except OSError:
        return False
    return True


class Socket:
    """Owns a socket and closes it when done."""

    def __init__(self, sock: Union[socket.socket, int]) -> None:
        if isinstance(sock, int):
            sock = socket.socket(fileno=sock)
        self.sock = sock

    def __enter__(self) -> "Socket":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def fd(self) -> int:
        return self.sock.fileno()

    def bind_address(self, addr: str, port: int) -> None:
        """Bind to an IPv4 address; empty or ``0.0.0.0`` means any address."""
        if not addr or addr == "0.0.0.0":
            host = "0.0.0.0"
        elif _is_ipv4(addr):
            host = addr
        else:
            get_logger().error("invalid address: %s", addr)
            raise ValueError(f"invalid IPv4 address: {addr!r}")
        self.sock.bind((host, port))

    def listen(self) -> None:
        self.sock.listen(socket.SOMAXCONN)

    def accept(self) -> Optional[Tuple[socket.socket, Peer]]:
        """Accept one connection as a non-blocking socket; ``None`` if none is pending."""
        try:
            conn, peer = self.sock.accept()
        except BlockingIOError:
            return None
        except OSError as exc:
            get_logger().error("accept failed: %s", exc)
            raise
        conn.setblocking(False)
        return conn, (peer[0], peer[1])

    def connect(self, addr: str, port: int) -> None:
        if not _is_ipv4(addr):
            get_logger().error("invalid address: %s", addr)
            raise ValueError(f"invalid IPv4 address: {addr!r}")
        self.sock.connect((addr, port))

    def shutdown(self) -> None:
        """Close the write half; failures are logged."""
        try:
            self.sock.shutdown(socket.SHUT_WR)
        except OSError as exc:
            get_logger().error("shutdown of write half failed: %s", exc)

    def set_reuse_addr(self, on: bool) -> None:
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, int(bool(on)))

    def set_reuse_port(self, on: bool) -> None:
        if hasattr(socket, "SO_REUSEPORT"):
            self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, int(bool(on)))

    def set_keep_alive(self, on: bool) -> None:
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, int(bool(on)))

    def set_tcp_no_delay(self, on: bool) -> None:
        self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, int(bool(on)))

    def set_send_buffer_size(self, size: int) -> None:
        """Set SO_SNDBUF; non-positive sizes are ignored."""
        self._set_buffer(socket.SO_SNDBUF, size, "SO_SNDBUF")

    def set_recv_buffer_size(self, size: int) -> None:
        """Set SO_RCVBUF; non-positive sizes are ignored."""
        self._set_buffer(socket.SO_RCVBUF, size, "SO_RCVBUF")

    def set_keepalive_idle_seconds(self, seconds: int) -> None:
        """Set TCP_KEEPIDLE where the platform has it; non-positive values are ignored."""
        if seconds <= 0 or not hasattr(socket, "TCP_KEEPIDLE"):
            return
        try:
            self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds)
        except OSError as exc:
            get_logger().warning("setting TCP_KEEPIDLE failed: %s", exc)

    def local_address(self) -> str:
        try:
            return self.sock.getsockname()[0]
        except OSError as exc:
            get_logger().error("getting local address failed: %s", exc)
            return ""

    def local_port(self) -> int:
        try:
            return self.sock.getsockname()[1]
        except OSError as exc:
            get_logger().error("getting local port failed: %s", exc)
            return 0

    def peer_address(self) -> str:
        try:
            return self.sock.getpeername()[0]
        except OSError as exc:
            get_logger().error("getting peer address failed: %s", exc)
            return ""

    def peer_port(self) -> int:
        try:
            return self.sock.getpeername()[1]
        except OSError as exc:
            get_logger().error("getting peer port failed: %s", exc)
            return 0

    def socket_error(self) -> int:
        """The pending SO_ERROR value, or the errno of the query itself."""
        try:
            return self.sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            return exc.errno or 0

    def close(self) -> None:
        self.sock.close()

    def _set_buffer(self, option: int, size: int, label: str) -> None:
        if size <= 0:
            return
        try:
            self.sock.setsockopt(socket.SOL_SOCKET, option, size)
        except OSError as exc:
            get_logger().warning("setting %s failed: %s", label, exc)