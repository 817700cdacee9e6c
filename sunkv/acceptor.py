"""Listening socket that hands accepted connections to a callback."""

from __future__ import annotations

import errno
import os
import socket
from typing import Any, Callable, Optional

from .channel import Channel
from .logger import get_logger
from .sockets import Socket

NewConnectionCallback = Callable[[socket.socket, str, str], None]


def _open_idle_fd() -> int:
    """A spare descriptor kept open so a connection can be shed when descriptors run out."""
    return os.open(os.devnull, os.O_RDONLY | getattr(os, "O_CLOEXEC", 0))


class Acceptor:
    """Accepts TCP connections on one address for an event loop.

    ``new_connection_callback(sock, local, peer)`` receives each accepted
    non-blocking socket with ``"host:port"`` strings for both ends; without a
    callback, accepted connections are closed at once.
    """

    def __init__(self, loop: Any, listen_addr: str, listen_port: int, reuseport: bool = True) -> None:
        self._loop = loop
        self._listen_addr = listen_addr
        self._listen_port = listen_port
        self._listening = False
        self._closed = False
        self.new_connection_callback: Optional[NewConnectionCallback] = None

        raw = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        raw.setblocking(False)
        self._socket = Socket(raw)
        try:
            self._socket.set_reuse_addr(True)
            self._socket.set_reuse_port(reuseport)
            self._socket.bind_address(listen_addr, listen_port)
        except BaseException:
            self._socket.close()
            raise

        self._idle_fd = _open_idle_fd()
        self._channel = Channel(loop, self._socket.fd)
        self._channel.set_read_callback(self._handle_read)

    def __enter__(self) -> "Acceptor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def listen_address(self) -> str:
        return self._listen_addr

    @property
    def listen_port(self) -> int:
        """The port as configured (0 means the kernel picked one)."""
        return self._listen_port

    @property
    def bound_port(self) -> int:
        """The port the socket is actually bound to."""
        return self._socket.local_port()

    def listen(self) -> None:
        """Start listening and watching for incoming connections."""
        self._loop.assert_in_loop_thread()
        self._listening = True
        self._socket.listen()
        self._channel.enable_reading()
        get_logger().info(
            "Acceptor listening on %s:%d - fd %d",
            self._listen_addr,
            self._listen_port,
            self._socket.fd,
        )

    def stop(self) -> None:
        """Stop watching for connections and shut the listening socket down."""
        if not self._listening:
            return
        get_logger().info("Acceptor %s:%d stopping", self._listen_addr, self._listen_port)
        self._listening = False
        self._channel.disable_all()
        self._channel.remove()
        self._socket.shutdown()
        get_logger().info("Acceptor %s:%d stopped", self._listen_addr, self._listen_port)

    def close(self) -> None:
        """Leave the loop and release the listening socket and the spare descriptor."""
        if self._closed:
            return
        self._closed = True
        self._listening = False
        if self._channel.added_to_loop:
            self._channel.disable_all()
            self._channel.remove()
        self._socket.close()
        if self._idle_fd >= 0:
            os.close(self._idle_fd)
            self._idle_fd = -1

    def _handle_read(self) -> None:
        self._loop.assert_in_loop_thread()
        local = f"{self._listen_addr}:{self._listen_port}"
        while True:
            try:
                accepted = self._socket.accept()
            except OSError as exc:
                if exc.errno == errno.EMFILE:
                    self._shed_one_connection()
                    get_logger().error("Acceptor out of descriptors, shed one connection")
                else:
                    get_logger().error("Acceptor failed to accept: %s", exc)
                return
            if accepted is None:
                return
            conn, (peer_host, peer_port) = accepted
            peer = f"{peer_host}:{peer_port}"
            get_logger().debug("new connection from %s", peer)
            if self.new_connection_callback is not None:
                self.new_connection_callback(conn, local, peer)
            else:
                conn.close()

    def _shed_one_connection(self) -> None:
        if self._idle_fd >= 0:
            os.close(self._idle_fd)
            self._idle_fd = -1
        try:
            conn, _ = self._socket.sock.accept()
        except OSError:
            pass
        else:
            conn.close()
        try:
            self._idle_fd = _open_idle_fd()
        except OSError as exc:
            get_logger().error("Acceptor could not reopen spare descriptor: %s", exc)