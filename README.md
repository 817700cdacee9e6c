# sunkv

`sunkv` is the protocol and networking core of a Redis-compatible key-value server. It has two parts.

- **RESP protocol.** `sunkv.resp_types` holds the value types: `SimpleString`, `RespError`, `Integer`, `BulkString` and `Array`, plus the `make_*` helpers. `sunkv.serializer` holds the `serialize*` functions. `sunkv.parser` holds `RespParser`, an incremental parser that copes with split and pipelined input.
- **Reactor networking.** The base pieces are:
  - `sunkv.buffer.Buffer`, a byte buffer.
  - `sunkv.channel.Channel`.
  - `sunkv.poller.Poller`, which uses epoll where it is available and poll otherwise.
  - `sunkv.timer.Timer` and `sunkv.timer_queue.TimerQueue`.

  Built on top of them are:
  - `sunkv.event_loop.EventLoop`.
  - `sunkv.event_loop_thread.EventLoopThread`.
  - `sunkv.event_loop_thread_pool.EventLoopThreadPool`.
  - `sunkv.sockets.Socket`.
  - `sunkv.tcp_connection.TcpConnection`.
  - `sunkv.acceptor.Acceptor`.
  - `sunkv.tcp_server.TcpServer`.

  All of it logs through `sunkv.logger`.

The package needs a POSIX system, because it uses eventfd or pipes, `os.readv` and epoll or poll. Its only dependency is the standard library.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## RESP values and serialization

```python
from sunkv.resp_types import make_array, make_bulk_string, make_integer, make_simple_string
from sunkv.serializer import serialize, serialize_bulk_string

cmd = make_array([make_simple_string("GET"), make_bulk_string("key"), make_integer(1)])
assert cmd.encode() == b"*3\r\n+GET\r\n$3\r\nkey\r\n:1\r\n"
assert serialize(cmd) == cmd.encode()
assert serialize_bulk_string(b"Hello") == b"$5\r\nHello\r\n"
assert cmd.to_string() == "[GET, key, 1]"
```

Use `make_null_bulk_string()` and `make_null_array()` for the null values. They encode as `$-1\r\n` and `*-1\r\n`.

## Parsing

`RespParser.parse` returns the first complete value it finds in the input. It returns the value wrapped in a `ParseResult`, which has these fields:

- `success`: false when the input is malformed. `error` then gives the reason, for example `"Invalid bulk string size"` or `"RESP nesting too deep"`. Arrays may nest at most 128 levels deep.
- `complete`: true once a whole value has been parsed. `value` then holds that value.
- `processed_bytes`: the number of bytes consumed since the last `reset()`. Advance your position in the input by this amount.

```python
from sunkv.parser import RespParser

parser = RespParser()
data = b"+OK\r\n:42\r\n"
result = parser.parse(data)
assert result.success and result.complete
assert result.value.to_string() == "OK"

parser.reset()
result = parser.parse(data[result.processed_bytes:])
assert result.value.is_integer()
```

## Event loop and TCP server

An `EventLoop` must be run in the thread that created it. Timer delays are given in milliseconds, and `run_at` takes a `time.monotonic()` time point.

`TcpServer` takes its callbacks as plain attributes, set before `start()`:

- `connection_callback(conn)`
- `message_callback(conn, buffer, n)`
- `write_complete_callback(conn)`
- `thread_init_callback(loop)`

`set_thread_num(n)` spreads connections over `n` loop threads. With the default of 0, every connection stays on the base loop. `set_max_connections(n)` caps the number of concurrent connections, and 0 means no cap. Pass port 0 to let the kernel choose a port; `bound_port` then tells you which one it chose.

```python
from sunkv.event_loop import EventLoop
from sunkv.tcp_server import TcpServer

loop = EventLoop()
server = TcpServer(loop, "Echo", "127.0.0.1", 0)

def on_message(conn, buf, n):
    conn.send(b"Echo: " + buf.retrieve_all_as_bytes())

server.message_callback = on_message
server.set_thread_num(2)
server.start()
print("listening on port", server.bound_port)
loop.run_after(10_000, loop.quit)
loop.loop()
server.stop()
server.close()
loop.close()
```

`TcpConnection.send` does nothing unless the connection is connected. It accepts bytes, str or a `Buffer`. A connection whose pending output grows past 8 MiB is closed by force.

## Logging

All components log through one shared logger:

```python
from sunkv.logger import Logger, get_logger

Logger.instance().set_level_from_name("debug")
Logger.instance().set_console_enabled(True)
get_logger().info("ready")
```

By default, log output goes to stdout. `set_file(path)` adds a rotating log file. `set_file_strategy` chooses how that file is named, and takes `"fixed"`, `"per_run"` or `"daily"`.

## What this package does not do

This package provides the wire protocol and the TCP plumbing, but not a database. It has:

- no key-value storage or persistence;
- no command handling, such as GET or SET;
- no configuration loading;
- no client;
- no command-line program.

A server built on it must supply its own command dispatch in `message_callback`, using `RespParser` and the serializer.

## Running the tests

```
pytest
```