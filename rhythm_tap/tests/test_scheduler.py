import threading
import time

import pytest

from rhythm_tap.scheduler import ThreadScheduler
from rhythm_tap.timing_engine import SessionCallbacks, TimingEngine
from conftest import RecordingCue

@pytest.fixture
def threaded():
    s = ThreadScheduler()
    yield s
    s.close(timeout=1.0)

def test_callbacks_fire_in_due_order(threaded):
    fired = []
    done = threading.Event()
    threaded.call_later(30, lambda: fired.append("b"))
    threaded.call_later(5, lambda: fired.append("a"))
    threaded.call_later(60, done.set)
    assert done.wait(2.0)
    assert fired == ["a", "b"]

def test_cancelled_handle_never_fires(threaded):
    fired = []
    done = threading.Event()
    h = threaded.call_later(20, lambda: fired.append("x"))
    threaded.call_later(50, done.set)
    threaded.cancel(h)
    assert done.wait(2.0)
    assert fired == []
    assert threaded.pending_count() == 0

def test_clock_is_monotonic_ms(threaded):
    a = threaded.now_ms()
    time.sleep(0.02)
    assert threaded.now_ms() - a >= 15

def test_closed_scheduler_rejects_work():
    s = ThreadScheduler()
    s.close(timeout=1.0)
    with pytest.raises(RuntimeError):
        s.call_later(1, lambda: None)

def test_failing_callback_does_not_kill_worker(threaded, capsys):
    done = threading.Event()
    threaded.call_later(1, lambda: 1 / 0)
    threaded.call_later(20, done.set)
    assert done.wait(2.0)
    assert "[WARN]" in capsys.readouterr().out

def test_engine_runs_on_real_clock(threaded, quarter_exercise):
    # 480 bpm keeps the whole session around half a second
    from rhythm_tap.generator import retime
    fast = retime(quarter_exercise, 480)
    done = threading.Event()
    result = {}

    def on_complete(info):
        result["taps"] = info.loop_taps_ms
        done.set()

    def on_loop_start(n):
        engine.register_tap()

    engine = TimingEngine(RecordingCue(), threaded)
    engine.start(fast, callbacks=SessionCallbacks(on_loop_start=on_loop_start, on_complete=on_complete))
    assert done.wait(3.0)
    assert len(result["taps"]) == 1
    assert len(result["taps"][0]) == 1
    assert abs(result["taps"][0][0]) <= 5
