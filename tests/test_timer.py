import pytest

from sunkv.timer import Timer


def test_run_invokes_callback():
    hits = []
    timer = Timer(lambda: hits.append("fired"), 5.0)
    timer.run()
    timer.run()
    assert hits == ["fired", "fired"]


def test_repeat_follows_interval():
    assert Timer(lambda: None, 1.0).repeat is False
    assert Timer(lambda: None, 1.0, 0).repeat is False
    assert Timer(lambda: None, 1.0, 100).repeat is True


def test_restart_repeating_moves_expiration():
    timer = Timer(lambda: None, 1.0, 250)
    timer.restart(10.0)
    assert timer.expiration == pytest.approx(10.25)
    assert not timer.expired(10.0)
    assert timer.expired(timer.expiration)


def test_restart_one_shot_resets_to_zero():
    timer = Timer(lambda: None, 3.0)
    timer.restart(10.0)
    assert timer.expiration == 0.0


def test_expired_boundary():
    timer = Timer(lambda: None, 2.0)
    assert timer.expired(2.0)
    assert timer.expired(2.5)
    assert not timer.expired(1.999)


def test_sequence_strictly_increases():
    first = Timer(lambda: None, 1.0)
    second = Timer(lambda: None, 1.0)
    third = Timer(lambda: None, 1.0)
    assert first.sequence < second.sequence < third.sequence


def test_interval_is_kept():
    timer = Timer(lambda: None, 1.0, 40)
    assert timer.interval_ms == 40