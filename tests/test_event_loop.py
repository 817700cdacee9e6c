import os
import socket
import threading
import time

import pytest

from sunkv.channel import Channel
from sunkv.event_loop import EventLoop


def test_socket_basics_scenario():
    count = [0]
    state = {}
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setblocking(False)

    def inc():
        count[0] += 1

    def close_socket():
        inc()
        sock.close()
        state["closed"] = sock.fileno()

    loop = EventLoop()
    loop.run_in_loop(inc)
    assert count[0] == 1
    loop.run_after(200, close_socket)
    for _ in range(10):
        loop.queue_in_loop(inc)
    assert loop.has_pending_tasks()
    assert loop.is_in_loop_thread()
    loop.run_after(400, loop.quit)
    loop.loop()
    assert not loop.has_pending_tasks()
    loop.close()
    assert count[0] >= 10
    assert state["closed"] == -1


def test_queue_from_other_thread_wakes_blocked_poll():
    loop = EventLoop()
    seen = {}

    def task():
        seen["ident"] = threading.get_ident()
        loop.quit()

    def producer():
        time.sleep(0.1)
        loop.queue_in_loop(task)

    threading.Thread(target=producer).start()
    start = time.monotonic()
    loop.loop()
    elapsed = time.monotonic() - start
    assert not loop.has_pending_tasks()
    assert loop.is_in_loop_thread()
    loop.close()
    assert seen["ident"] == threading.get_ident()
    assert elapsed < 0.8


def test_quit_from_other_thread_is_prompt():
    loop = EventLoop()

    def stopper():
        time.sleep(0.05)
        loop.quit()

    threading.Thread(target=stopper).start()
    start = time.monotonic()
    loop.loop()
    elapsed = time.monotonic() - start
    assert not loop.has_pending_tasks()
    loop.close()
    assert elapsed < 0.8


def test_reentrant_queue_order():
    loop = EventLoop()
    order = []

    def task_b():
        order.append("B")
        loop.quit()

    def task_a():
        order.append("A")
        loop.queue_in_loop(task_b)

    loop.queue_in_loop(task_a)
    loop.queue_in_loop(lambda: order.append("C"))
    loop.loop()
    loop.close()
    assert order == ["A", "C", "B"]


def test_tasks_queued_while_quitting_still_run():
    loop = EventLoop()
    ran = []

    def stop_and_queue():
        loop.quit()
        loop.queue_in_loop(lambda: ran.append(1))

    loop.queue_in_loop(stop_and_queue)
    assert loop.has_pending_tasks()
    loop.loop()
    assert not loop.has_pending_tasks()
    loop.close()
    assert ran == [1]


def test_has_pending_tasks():
    loop = EventLoop()
    assert not loop.has_pending_tasks()
    loop.queue_in_loop(lambda: None)
    assert loop.has_pending_tasks()
    loop.close()


def test_run_every_and_cancel():
    loop = EventLoop()
    ticks = [0]
    snapshot = {}

    timer_id = loop.run_every(20, lambda: ticks.__setitem__(0, ticks[0] + 1))

    def cancel():
        snapshot["cancelled"] = loop.cancel_timer(timer_id)
        snapshot["count"] = ticks[0]

    loop.run_after(150, cancel)
    loop.run_after(300, loop.quit)
    loop.loop()
    loop.close()
    assert snapshot["cancelled"] is True
    assert snapshot["count"] >= 2
    assert ticks[0] == snapshot["count"]


def test_cancelled_timer_never_fires():
    loop = EventLoop()
    fired = []
    timer_id = loop.run_after(50, lambda: fired.append(1))
    assert loop.cancel_timer(timer_id) is True
    assert loop.cancel_timer(timer_id) is False
    loop.run_after(150, loop.quit)
    loop.loop()
    loop.close()
    assert fired == []


def test_run_at_fires_not_before_deadline():
    loop = EventLoop()
    fired = {}
    start = time.monotonic()

    def on_time():
        fired["at"] = time.monotonic()
        loop.quit()

    loop.run_at(start + 0.05, on_time)
    loop.loop()
    loop.close()
    assert fired["at"] - start >= 0.045


def test_assert_in_loop_thread_from_foreign_thread_raises():
    loop = EventLoop()
    errors = []

    def check():
        try:
            loop.assert_in_loop_thread()
        except RuntimeError as exc:
            errors.append(exc)

    def probe():
        worker = threading.Thread(target=check)
        worker.start()
        worker.join(5)
        loop.quit()

    loop.queue_in_loop(probe)
    loop.loop()
    loop.close()
    assert len(errors) == 1


def test_nested_loop_raises():
    loop = EventLoop()
    errors = []

    def nested():
        try:
            loop.loop()
        except RuntimeError as exc:
            errors.append(exc)
        loop.quit()

    loop.queue_in_loop(nested)
    loop.loop()
    assert not loop.has_pending_tasks()
    assert loop.is_in_loop_thread()
    loop.close()
    assert len(errors) == 1
    assert isinstance(errors[0], RuntimeError)


def test_loop_from_other_thread_raises():
    loop = EventLoop()
    errors = []
    foreign = {}

    def run():
        foreign["in_loop"] = loop.is_in_loop_thread()
        try:
            loop.loop()
        except RuntimeError as exc:
            errors.append(exc)

    worker = threading.Thread(target=run)
    worker.start()
    worker.join(5)
    assert loop.is_in_loop_thread()
    loop.close()
    assert foreign["in_loop"] is False
    assert len(errors) == 1


def test_channel_read_dispatch_and_removal():
    loop = EventLoop()
    read_fd, write_fd = os.pipe()
    received = []
    channel = Channel(loop, read_fd)

    def on_read():
        received.append(os.read(read_fd, 16))
        loop.quit()

    channel.set_read_callback(on_read)
    channel.enable_reading()
    assert loop.has_channel(channel)
    loop.run_after(20, lambda: os.write(write_fd, b"x"))
    loop.loop()
    channel.disable_all()
    channel.remove()
    assert not loop.has_channel(channel)
    assert received == [b"x"]
    loop.close()
    os.close(read_fd)
    os.close(write_fd)


def test_channel_of_other_loop_rejected():
    loop = EventLoop()
    other = EventLoop()
    read_fd, write_fd = os.pipe()
    channel = Channel(other, read_fd)
    with pytest.raises(ValueError):
        loop.update_channel(channel)
    loop.close()
    other.close()
    os.close(read_fd)
    os.close(write_fd)


def test_close_marks_destructing():
    loop = EventLoop()
    assert not loop.destructing
    loop.close()
    assert loop.destructing