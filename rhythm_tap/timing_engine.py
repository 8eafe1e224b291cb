import math
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .config import (
    DEFAULT_LOOPS, BOUNDARY_SHIFT_LEAD_MS, BOUNDARY_SHIFT_MIN_MS, BOUNDARY_SHIFT_MAX_MS,
)
from .errors import InvalidInput
from .midi_time import beat_ms as beat_length_ms, round_ms
from .rt_types import (
    AudioCue, BeatInfo, CancelInfo, CompletionInfo, Exercise, Scheduler, SilentCue, TapInfo,
)

IDLE = "idle"
COUNT_IN = "count-in"
PERFORMING = "performing"
COMPLETE = "complete"
CANCELLED = "cancelled"

def _noop(*_args):
    pass

@dataclass
class SessionCallbacks:
    on_state_change: Callable[[str], None] = _noop
    on_beat: Callable[[BeatInfo], None] = _noop
    on_loop_start: Callable[[int], None] = _noop
    on_tap: Callable[[TapInfo], None] = _noop
    on_complete: Callable[[CompletionInfo], None] = _noop
    on_cancel: Callable[[CancelInfo], None] = _noop

def boundary_shift_window_ms(first_onset_ms: float) -> float:
    return max(BOUNDARY_SHIFT_MIN_MS, min(BOUNDARY_SHIFT_MAX_MS, first_onset_ms + BOUNDARY_SHIFT_LEAD_MS))

class _TapSession:
    def __init__(self, exercise: Exercise, loops: int, latency_ms: float,
                 callbacks: SessionCallbacks, cue: AudioCue):
        self.loops = loops
        self.single_loop_ms = exercise.total_duration_ms
        self.latency_ms = latency_ms
        first = exercise.expected_onsets_ms[0] if exercise.expected_onsets_ms else 0
        self.shift_window_ms = boundary_shift_window_ms(max(0, first))
        self.loop_taps_ms: list[list[int]] = [[] for _ in range(loops)]
        self.performance_start: Optional[float] = None
        self.performance_end: Optional[float] = None
        self.total_tap_count = 0
        self.callbacks = callbacks
        self.cue = cue
        self.tick_failed = False

    def snapshot(self) -> list[list[int]]:
        return [list(taps) for taps in self.loop_taps_ms]

class TimingEngine:
    """One practice session at a time: count-in, N loops of the exercise, done.

    Every scheduled callback carries the session it was created for and does
    nothing once that session is no longer current. Taps can come from any
    thread; state is guarded by a re-entrant lock so callbacks may call back
    into the engine (e.g. cancel from on_beat).
    """

    def __init__(self, audio: AudioCue, scheduler: Scheduler):
        self.audio = audio
        self.scheduler = scheduler
        self.state = IDLE
        self.session: Optional[_TapSession] = None
        self.timers: set = set()
        self.lock = threading.RLock()

    def is_tap_window_open(self) -> bool:
        return self.state == PERFORMING

    def accepts_input(self) -> bool:
        # the tap key belongs to the session from count-in on
        return self.state in (COUNT_IN, PERFORMING)

    def _clear_timers(self):
        for handle in self.timers:
            self.scheduler.cancel(handle)
        self.timers.clear()

    def stop(self):
        with self.lock:
            self._clear_timers()
            self.state = IDLE
            self.session = None

    def cancel(self, reason: str = "user") -> bool:
        with self.lock:
            s = self.session
            if s is None or self.state not in (COUNT_IN, PERFORMING):
                return False
            snapshot = s.snapshot()
            phase = self.state
            self._clear_timers()
            self.state = CANCELLED
            s.callbacks.on_state_change(CANCELLED)
            self.stop()
            s.callbacks.on_cancel(CancelInfo(loop_taps_ms=snapshot, phase=phase, reason=reason))
            return True

    def _schedule(self, session: _TapSession, delay_ms: float, fn: Callable[[], None]):
        box = []

        def fire():
            with self.lock:
                if box:
                    self.timers.discard(box[0])
                if self.session is not session:
                    return
                fn()

        with self.lock:
            if self.session is not session:
                return
            handle = self.scheduler.call_later(max(0.0, delay_ms), fire)
            box.append(handle)
            self.timers.add(handle)

    def _prime(self) -> AudioCue:
        try:
            self.audio.prime()
            return self.audio
        except Exception as e:
            print(f"[WARN] Audio output unavailable ({e}); running without click.")
            return SilentCue()

    def _tick(self, s: _TapSession, accent: bool):
        try:
            s.cue.tick(accent)
        except Exception as e:
            if not s.tick_failed:
                print(f"[WARN] Metronome tick failed: {e}")
            s.tick_failed = True

    def start(self, exercise: Exercise, loops: int = DEFAULT_LOOPS,
              latency_compensation_ms: float = 0, callbacks: Optional[SessionCallbacks] = None):
        if not isinstance(loops, int) or loops < 1:
            raise InvalidInput(f"loops must be >= 1, got {loops!r}")
        if exercise.total_duration_ms <= 0:
            raise InvalidInput("exercise has no duration")
        cb = callbacks or SessionCallbacks()

        self.stop()
        cue = self._prime()

        beats_per_measure = exercise.time_signature.num
        beat_ms = beat_length_ms(exercise.tempo_bpm, exercise.time_signature)
        count_in_ms = beats_per_measure * beat_ms
        single_loop_ms = exercise.total_duration_ms
        performance_ms = single_loop_ms * loops
        total_ms = count_in_ms + performance_ms

        with self.lock:
            s = _TapSession(exercise, loops, max(0, latency_compensation_ms), cb, cue)
            self.session = s
            self.state = COUNT_IN
            cb.on_state_change(COUNT_IN)

            total_beats = math.ceil(total_ms / beat_ms)
            for beat_index in range(total_beats + 1):
                self._schedule(s, beat_index * beat_ms, self._beat_fn(s, beat_index, beat_ms, count_in_ms, beats_per_measure))

            def begin_performance():
                s.performance_start = self.scheduler.now_ms()
                s.performance_end = s.performance_start + performance_ms
                self.state = PERFORMING
                cb.on_state_change(PERFORMING)
                cb.on_loop_start(1)
                for loop in range(2, loops + 1):
                    self._schedule(s, single_loop_ms * (loop - 1), self._loop_fn(loop))
                self._schedule(s, performance_ms, finish)

            def finish():
                self.state = COMPLETE
                cb.on_state_change(COMPLETE)
                cb.on_complete(CompletionInfo(loop_taps_ms=s.snapshot()))
                self.stop()

            self._schedule(s, count_in_ms, begin_performance)

    def _beat_fn(self, s: _TapSession, beat_index: int, beat_ms: float, count_in_ms: float, per_measure: int):
        def fire():
            phase = COUNT_IN if beat_index * beat_ms < count_in_ms else PERFORMING
            beat_in_measure = beat_index % per_measure + 1
            self._tick(s, beat_in_measure == 1)
            s.callbacks.on_beat(BeatInfo(phase, beat_in_measure, beat_index + 1, s.loops))
        return fire

    def _loop_fn(self, loop: int):
        def fire():
            if self.state == PERFORMING:
                self.session.callbacks.on_loop_start(loop)
        return fire

    def register_tap(self, now: Optional[float] = None) -> bool:
        """Record a tap at clock time ``now`` (defaults to the scheduler clock).
        Returns False and records nothing outside the performance window."""
        # stamp before taking the lock; a beat callback may be holding it
        if now is None:
            now = self.scheduler.now_ms()
        with self.lock:
            s = self.session
            if s is None or self.state != PERFORMING or s.performance_start is None:
                return False
            if now < s.performance_start or now > s.performance_end:
                return False

            elapsed = now - s.performance_start
            loop_index = min(s.loops - 1, int(elapsed // s.single_loop_ms))
            within = elapsed - loop_index * s.single_loop_ms
            compensated = round_ms(within - s.latency_ms)
            # latency can pull a tap meant for the next loop's first note back over the boundary
            if loop_index < s.loops - 1 and compensated >= s.single_loop_ms - s.shift_window_ms:
                loop_index += 1
                compensated -= s.single_loop_ms

            s.loop_taps_ms[loop_index].append(compensated)
            s.total_tap_count += 1
            s.callbacks.on_tap(TapInfo(
                loop=loop_index + 1,
                loop_index=loop_index,
                within_loop_ms=compensated,
                tap_index_in_loop=len(s.loop_taps_ms[loop_index]),
                total_tap_count=s.total_tap_count,
            ))
            return True
