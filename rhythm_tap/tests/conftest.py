import heapq
import itertools
import random

import pytest

from rhythm_tap.levels import LevelConfig
from rhythm_tap.rt_types import TempoRange
from rhythm_tap.generator import generate_exercise

class FakeScheduler:
    """Manual clock: callbacks fire only inside advance(), in due order."""

    def __init__(self, start_ms=1000.0):
        self.now = start_ms
        self._heap = []
        self._pending = {}
        self._ids = itertools.count(1)

    def now_ms(self):
        return self.now

    def call_later(self, delay_ms, fn):
        handle = next(self._ids)
        self._pending[handle] = fn
        heapq.heappush(self._heap, (self.now + max(0.0, delay_ms), handle))
        return handle

    def cancel(self, handle):
        self._pending.pop(handle, None)

    def pending_count(self):
        return len(self._pending)

    def advance(self, ms):
        target = self.now + ms
        while self._heap and self._heap[0][0] <= target:
            due, handle = heapq.heappop(self._heap)
            fn = self._pending.pop(handle, None)
            if fn is None:
                continue
            self.now = due
            fn()
        self.now = target

class RecordingCue:
    def __init__(self, fail_prime=False):
        self.fail_prime = fail_prime
        self.primed = 0
        self.ticks = []

    def prime(self):
        self.primed += 1
        if self.fail_prime:
            raise OSError("no audio device")

    def tick(self, accent):
        self.ticks.append(accent)

@pytest.fixture
def scheduler():
    return FakeScheduler()

@pytest.fixture
def cue():
    return RecordingCue()

@pytest.fixture
def simple_level():
    return LevelConfig(
        id=1,
        allowed_time_signatures=("4/4",),
        allowed_durations=("q",),
        allow_syncopation=False,
        measures_per_exercise=1,
        tempo_range=TempoRange(120, 120),
    )

@pytest.fixture
def quarter_exercise(simple_level):
    """One bar of four quarters at 120 bpm: onsets 0/500/1000/1500, 2000 ms long."""
    return generate_exercise(simple_level, rng=random.Random(0))
