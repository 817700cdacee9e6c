"""One established TCP connection bound to an event loop."""

from __future__ import annotations

import enum
import socket
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .buffer import Buffer
from .channel import Channel
from .logger import get_logger
from .sockets import Socket

HIGH_WATER_MARK_BYTES = 8 * 1024 * 1024
READ_CHUNK = 65536

ConnectionCallback = Callable[["TcpConnection"], None]
MessageCallback = Callable[["TcpConnection", Buffer, int], None]
CloseCallback = Callable[["TcpConnection"], None]
WriteCompleteCallback = Callable[["TcpConnection"], None]

SendData = Union[bytes, bytearray, memoryview, str, Buffer]


@dataclass
class SocketTuningOptions:
    """Socket options applied once a connection is established; 0 leaves an option alone."""

    send_buffer_size: int = 0
    recv_buffer_size: int = 0
    tcp_keepalive_idle_seconds: int = 0


class TcpConnectionState(enum.Enum):
    CONNECTING = enum.auto()
    CONNECTED = enum.auto()
    DISCONNECTING = enum.auto()
    DISCONNECTED = enum.auto()


class TcpConnection:
    """Buffers input and output for one socket and reports events through callbacks."""

    def __init__(
        self,
        loop: Any,
        name: str,
        sock: Union[socket.socket, int, Socket],
        local_address: str,
        peer_address: str,
    ) -> None:
        self._loop = loop
        self._name = name
        self._state = TcpConnectionState.CONNECTING
        self._reading = True
        self._socket = sock if isinstance(sock, Socket) else Socket(sock)
        self._channel = Channel(loop, self._socket.fd)
        self._local_address = local_address
        self._peer_address = peer_address
        self.input_buffer = Buffer()
        self.output_buffer = Buffer()
        self._write_coalescing = False

        self.connection_callback: Optional[ConnectionCallback] = None
        self.message_callback: Optional[MessageCallback] = None
        self.write_complete_callback: Optional[WriteCompleteCallback] = None
        self.close_callback: Optional[CloseCallback] = None
        self.tuning = SocketTuningOptions()

        self._channel.set_read_callback(self._handle_read)
        self._channel.set_write_callback(self._handle_write)
        self._channel.set_close_callback(self._handle_close)
        self._channel.set_error_callback(self._handle_error)
        get_logger().debug("TcpConnection created %s - %s", local_address, peer_address)

    def __repr__(self) -> str:
        return f"TcpConnection({self._name!r}, state={self._state.name})"

    @property
    def loop(self) -> Any:
        return self._loop

    @property
    def name(self) -> str:
        return self._name

    @property
    def local_address(self) -> str:
        return self._local_address

    @property
    def peer_address(self) -> str:
        return self._peer_address

    @property
    def state(self) -> TcpConnectionState:
        return self._state

    @property
    def socket(self) -> Socket:
        return self._socket

    def connected(self) -> bool:
        return self._state is TcpConnectionState.CONNECTED

    def disconnected(self) -> bool:
        return self._state is TcpConnectionState.DISCONNECTED

    def is_reading(self) -> bool:
        return self._reading

    def connect_established(self) -> None:
        """Start reading, apply tuning and report the new connection."""
        self._loop.assert_in_loop_thread()
        self._state = TcpConnectionState.CONNECTED
        self._channel.tie(self)
        self._channel.enable_reading()

        tuning = self.tuning
        if tuning.send_buffer_size > 0:
            self._socket.set_send_buffer_size(tuning.send_buffer_size)
        if tuning.recv_buffer_size > 0:
            self._socket.set_recv_buffer_size(tuning.recv_buffer_size)
        if tuning.tcp_keepalive_idle_seconds > 0:
            self._socket.set_keep_alive(True)
            self._socket.set_keepalive_idle_seconds(tuning.tcp_keepalive_idle_seconds)

        if self.connection_callback:
            self.connection_callback(self)

    def connect_destroyed(self) -> None:
        """Leave the loop, report the closed connection and release the socket."""
        self._loop.assert_in_loop_thread()
        if self._state is TcpConnectionState.CONNECTED:
            self._state = TcpConnectionState.DISCONNECTED
        self._channel.disable_all()
        self._channel.remove()
        if self.connection_callback:
            self.connection_callback(self)
        self._socket.close()

    def send(self, data: SendData) -> None:
        """Send bytes, text or the readable content of a ``Buffer``; ignored unless connected."""
        if self._state is not TcpConnectionState.CONNECTED:
            return
        if isinstance(data, Buffer):
            if data.readable_bytes() == 0:
                return
            payload = bytes(data.retrieve_all_as_bytes())
        elif isinstance(data, str):
            payload = data.encode("utf-8")
        else:
            payload = bytes(data)
        if self._loop.is_in_loop_thread():
            self._send_in_loop(payload)
        else:
            self._loop.run_in_loop(lambda: self._send_in_loop(payload))

    def begin_write_coalescing(self) -> None:
        """Collect outgoing data in the output buffer until ``end_write_coalescing``."""
        def begin() -> None:
            self._write_coalescing = True

        self._loop.run_in_loop(begin)

    def end_write_coalescing(self) -> None:
        """Stop collecting and let the loop flush what was gathered."""
        def flush() -> None:
            self._write_coalescing = False
            if self._state is not TcpConnectionState.CONNECTED:
                return
            if self.output_buffer.readable_bytes() > 0 and not self._channel.is_writing():
                self._channel.enable_writing()

        self._loop.run_in_loop(flush)

    def shutdown(self) -> None:
        """Close the write half once pending output is written."""
        if self._state is TcpConnectionState.CONNECTED:
            self._state = TcpConnectionState.DISCONNECTING
            self._loop.run_in_loop(self._shutdown_in_loop)

    def force_close(self) -> None:
        """Close the connection without waiting for pending output."""
        if self._state in (TcpConnectionState.CONNECTED, TcpConnectionState.DISCONNECTING):
            self._state = TcpConnectionState.DISCONNECTING
            self._loop.queue_in_loop(self._force_close_in_loop)

    def set_tcp_no_delay(self, on: bool) -> None:
        self._socket.set_tcp_no_delay(on)

    def set_keep_alive(self, on: bool) -> None:
        self._socket.set_keep_alive(on)

    def start_read(self) -> None:
        self._loop.run_in_loop(self.start_read_in_loop)

    def start_read_in_loop(self) -> None:
        self._loop.assert_in_loop_thread()
        if not self._reading or not self._channel.is_reading():
            self._channel.enable_reading()
            self._reading = True

    def stop_read(self) -> None:
        self._loop.run_in_loop(self.stop_read_in_loop)

    def stop_read_in_loop(self) -> None:
        self._loop.assert_in_loop_thread()
        if self._reading or self._channel.is_reading():
            self._channel.disable_reading()
            self._reading = False

    def _queue_write_complete(self) -> None:
        callback = self.write_complete_callback
        if callback:
            self._loop.queue_in_loop(lambda: callback(self))

    def _buffer_rest(self, data: bytes) -> None:
        if data:
            self.output_buffer.append(data)
        if not self._channel.is_writing():
            self._channel.enable_writing()
        self._enforce_backpressure()

    def _send_in_loop(self, data: bytes) -> None:
        self._loop.assert_in_loop_thread()
        if self._state is TcpConnectionState.DISCONNECTED:
            get_logger().warning("TcpConnection %s disconnected, dropping write", self._name)
            return

        if self._write_coalescing:
            if data:
                self._buffer_rest(data)
            return

        sock = self._socket.sock
        pending = self.output_buffer.readable_bytes()

        if pending > 0 and data:
            queued = bytes(self.output_buffer.peek())
            try:
                sent = sock.sendmsg([queued, data])
            except BlockingIOError:
                self._buffer_rest(data)
                return
            except (BrokenPipeError, ConnectionResetError) as exc:
                get_logger().error("TcpConnection %s write failed: %s", self._name, exc)
                return
            except OSError as exc:
                get_logger().error("TcpConnection %s write failed: %s", self._name, exc)
                self._buffer_rest(data)
                return
            if sent == 0:
                self._buffer_rest(data)
                return
            if sent <= pending:
                self.output_buffer.retrieve(sent)
                self.output_buffer.append(data)
            else:
                self.output_buffer.retrieve(pending)
                sent_new = sent - pending
                if sent_new < len(data):
                    self.output_buffer.append(data[sent_new:])
            if self.output_buffer.readable_bytes() == 0:
                self._channel.disable_writing()
                self._queue_write_complete()
                if self._state is TcpConnectionState.DISCONNECTING:
                    self._shutdown_in_loop()
            elif not self._channel.is_writing():
                self._channel.enable_writing()
            self._enforce_backpressure()
            return

        written = 0
        if not self._channel.is_writing() and pending == 0:
            try:
                written = sock.send(data) if data else 0
            except BlockingIOError:
                written = 0
            except (BrokenPipeError, ConnectionResetError) as exc:
                get_logger().error("TcpConnection %s write failed: %s", self._name, exc)
                return
            except OSError as exc:
                get_logger().error("TcpConnection %s write failed: %s", self._name, exc)
                written = 0
            else:
                if written == len(data):
                    self._queue_write_complete()

        if written < len(data):
            self._buffer_rest(data[written:])

    def _enforce_backpressure(self) -> bool:
        pending = self.output_buffer.readable_bytes()
        if pending <= HIGH_WATER_MARK_BYTES:
            return True
        get_logger().warning(
            "TcpConnection %s output above high water mark (%d bytes), closing",
            self._name,
            pending,
        )
        self._force_close_in_loop()
        return False

    def _shutdown_in_loop(self) -> None:
        self._loop.assert_in_loop_thread()
        if not self._channel.is_writing():
            self._socket.shutdown()

    def _force_close_in_loop(self) -> None:
        self._loop.assert_in_loop_thread()
        if self._state in (TcpConnectionState.CONNECTED, TcpConnectionState.DISCONNECTING):
            self._handle_close()

    def _handle_read(self) -> None:
        self._loop.assert_in_loop_thread()
        try:
            chunk = self._socket.sock.recv(READ_CHUNK)
        except BlockingIOError:
            return
        except OSError as exc:
            get_logger().error("TcpConnection %s read failed: %s", self._name, exc)
            self._handle_error()
            return
        if chunk:
            self.input_buffer.append(chunk)
            if self.message_callback:
                self.message_callback(self, self.input_buffer, len(chunk))
        else:
            self._handle_close()

    def _handle_write(self) -> None:
        self._loop.assert_in_loop_thread()
        if not self._channel.is_writing():
            get_logger().debug("TcpConnection %s no longer writing", self._name)
            return
        try:
            sent = self._socket.sock.send(bytes(self.output_buffer.peek()))
        except BlockingIOError:
            return
        except OSError as exc:
            get_logger().error("TcpConnection %s write failed: %s", self._name, exc)
            return
        if sent <= 0:
            return
        self.output_buffer.retrieve(sent)
        if self.output_buffer.readable_bytes() == 0:
            self._channel.disable_writing()
            self._queue_write_complete()
            if self._state is TcpConnectionState.DISCONNECTING:
                self._shutdown_in_loop()

    def _handle_close(self) -> None:
        self._loop.assert_in_loop_thread()
        get_logger().debug("TcpConnection %s closing in state %s", self._name, self._state.name)
        self._state = TcpConnectionState.DISCONNECTED
        self._channel.disable_all()
        if self.close_callback:
            self.close_callback(self)

    def _handle_error(self) -> None:
        err = self._socket.socket_error()
        get_logger().error("TcpConnection %s SO_ERROR = %d", self._name, err)