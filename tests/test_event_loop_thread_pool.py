import threading

import pytest

from sunkv.event_loop import EventLoop
from sunkv.event_loop_thread_pool import EventLoopThreadPool


@pytest.fixture
def base_loop():
    loop = EventLoop()
    yield loop
    loop.close()


def test_no_threads_uses_base_loop(base_loop):
    seen = []
    pool = EventLoopThreadPool(base_loop, "solo")
    pool.thread_init_callback = seen.append
    pool.start()
    assert seen == [base_loop]
    assert pool.get_next_loop() is base_loop
    assert pool.get_all_loops() == [base_loop]
    pool.stop()


def test_round_robin_over_threads(base_loop):
    pool = EventLoopThreadPool(base_loop, "rr")
    pool.num_threads = 3
    pool.start()
    try:
        loops = pool.get_all_loops()
        assert len(loops) == pool.num_threads
        assert len({id(loop) for loop in loops}) == len(loops)
        assert all(loop is not base_loop for loop in loops)
        picked = [pool.get_next_loop() for _ in range(2 * len(loops))]
        assert picked == loops + loops
    finally:
        pool.stop()


def test_init_callback_runs_once_per_thread(base_loop):
    seen = []
    lock = threading.Lock()

    def record(loop):
        with lock:
            seen.append(loop)

    pool = EventLoopThreadPool(base_loop, "init")
    pool.num_threads = 2
    pool.thread_init_callback = record
    pool.start()
    try:
        assert sorted(map(id, seen)) == sorted(map(id, pool.get_all_loops()))
    finally:
        pool.stop()


def test_get_loop_out_of_range_gives_base(base_loop):
    pool = EventLoopThreadPool(base_loop, "idx")
    pool.num_threads = 2
    pool.start()
    try:
        loops = pool.get_all_loops()
        assert pool.get_loop(1) is loops[1]
        assert pool.get_loop(5) is base_loop
        assert pool.get_loop(-1) is base_loop
    finally:
        pool.stop()


def test_start_twice_raises(base_loop):
    pool = EventLoopThreadPool(base_loop, "twice")
    pool.start()
    with pytest.raises(RuntimeError):
        pool.start()
    pool.stop()


def test_use_before_start_raises(base_loop):
    pool = EventLoopThreadPool(base_loop, "cold")
    with pytest.raises(RuntimeError):
        pool.get_next_loop()


def test_stop_resets_started(base_loop):
    pool = EventLoopThreadPool(base_loop, "stopper")
    pool.num_threads = 1
    pool.start()
    assert pool.started
    pool.stop()
    assert not pool.started
    with pytest.raises(RuntimeError):
        pool.get_all_loops()


def test_default_name(base_loop):
    pool = EventLoopThreadPool(base_loop)
    assert pool.name.startswith("EventLoopThreadPool")
    assert pool.name != EventLoopThreadPool(base_loop).name