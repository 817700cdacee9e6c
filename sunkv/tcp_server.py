"""TCP server: accepts connections and spreads them over event loop threads."""

from __future__ import annotations

import socket
import threading
from typing import Any, Dict, List, Optional

from .acceptor import Acceptor
from .event_loop_thread import ThreadInitCallback
from .event_loop_thread_pool import EventLoopThreadPool
from .logger import get_logger
from .tcp_connection import (
    ConnectionCallback,
    MessageCallback,
    SocketTuningOptions,
    TcpConnection,
    WriteCompleteCallback,
)


class TcpServer:
    """Owns an acceptor, a loop thread pool and the table of live connections.

    Callbacks are plain attributes set before ``start``:
    ``connection_callback(conn)``, ``message_callback(conn, buffer, n)``,
    ``write_complete_callback(conn)`` and ``thread_init_callback(loop)``.
    """

    def __init__(self, loop: Any, name: str, listen_addr: str, listen_port: int) -> None:
        self._loop = loop
        self._name = name
        self._listen_addr = listen_addr
        self._listen_port = listen_port
        self._acceptor = Acceptor(loop, listen_addr, listen_port)
        self._acceptor.new_connection_callback = self._new_connection
        self._thread_pool = EventLoopThreadPool(loop, name)
        self._started = False
        self._started_lock = threading.Lock()
        self._next_conn_id = 1
        self._connections: Dict[str, TcpConnection] = {}
        self._max_connections = 0
        self._closed = False

        self.connection_callback: Optional[ConnectionCallback] = None
        self.message_callback: Optional[MessageCallback] = None
        self.write_complete_callback: Optional[WriteCompleteCallback] = None
        self.thread_init_callback: Optional[ThreadInitCallback] = None
        self.connection_tuning = SocketTuningOptions()

    def __enter__(self) -> "TcpServer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def name(self) -> str:
        return self._name

    @property
    def listen_address(self) -> str:
        return self._listen_addr

    @property
    def listen_port(self) -> int:
        return self._listen_port

    @property
    def bound_port(self) -> int:
        """The port the listening socket is actually bound to."""
        return self._acceptor.bound_port

    @property
    def thread_pool(self) -> EventLoopThreadPool:
        return self._thread_pool

    @property
    def max_connections(self) -> int:
        return self._max_connections

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def set_thread_num(self, num_threads: int) -> None:
        """Number of I/O loop threads; 0 keeps every connection on the base loop."""
        if num_threads < 0:
            raise ValueError("number of threads must not be negative")
        self._thread_pool.num_threads = num_threads

    def set_max_connections(self, max_connections: int) -> None:
        """Cap on concurrent connections; 0 (or a negative value) means no cap."""
        self._max_connections = max(0, max_connections)

    def start(self) -> None:
        """Start the loop threads and begin listening; later calls do nothing."""
        with self._started_lock:
            if self._started:
                return
            self._started = True
        self._thread_pool.thread_init_callback = self.thread_init_callback
        self._thread_pool.start()
        self._loop.run_in_loop(self._acceptor.listen)
        get_logger().info(
            "TcpServer %s started, listening on %s:%d",
            self._name,
            self._listen_addr,
            self._listen_port,
        )

    def stop(self) -> None:
        """Stop accepting, force every connection closed and stop the loop threads."""
        with self._started_lock:
            if not self._started:
                return
            self._started = False
        get_logger().info("TcpServer %s stopping", self._name)
        self._acceptor.stop()
        keepalive: List[TcpConnection] = list(self._connections.values())
        self._connections.clear()
        for conn in keepalive:
            conn.force_close()
        self._thread_pool.stop()
        get_logger().info("TcpServer %s stopped", self._name)

    def close(self) -> None:
        """Destroy remaining connections and release the listening socket."""
        if self._closed:
            return
        self._closed = True
        if self._loop is not None and not self._loop.destructing:
            def cleanup() -> None:
                connections = list(self._connections.values())
                self._connections.clear()
                for conn in connections:
                    conn.loop.run_in_loop(conn.connect_destroyed)

            self._loop.run_in_loop(cleanup)
        self._acceptor.close()
        self._thread_pool.stop()

    def _new_connection(self, sock: socket.socket, local: str, peer: str) -> None:
        self._loop.assert_in_loop_thread()
        if self._max_connections > 0 and len(self._connections) >= self._max_connections:
            sock.close()
            get_logger().warning(
                "TcpServer %s refused connection: max_connections=%d reached",
                self._name,
                self._max_connections,
            )
            return

        conn_name = f"{self._name}#{self._next_conn_id}"
        self._next_conn_id += 1
        get_logger().debug(
            "TcpServer %s new connection %s from %s -> %s", self._name, conn_name, peer, local
        )

        io_loop = self._thread_pool.get_next_loop()
        conn = TcpConnection(io_loop, conn_name, sock, local, peer)
        conn.tuning = self.connection_tuning
        self._connections[conn_name] = conn
        conn.connection_callback = self.connection_callback
        conn.message_callback = self.message_callback
        conn.write_complete_callback = self.write_complete_callback
        conn.close_callback = self._remove_connection
        io_loop.run_in_loop(conn.connect_established)

    def _remove_connection(self, conn: TcpConnection) -> None:
        self._loop.run_in_loop(lambda: self._remove_connection_in_loop(conn))

    def _remove_connection_in_loop(self, conn: TcpConnection) -> None:
        self._loop.assert_in_loop_thread()
        if self._connections.pop(conn.name, None) is None:
            get_logger().debug(
                "TcpServer %s connection %s already gone from the table", self._name, conn.name
            )
        conn.loop.queue_in_loop(conn.connect_destroyed)