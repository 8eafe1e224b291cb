from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from .config import DURATION_TICKS

@dataclass(frozen=True)
class TimeSignature:
    num: int
    den: int

    def __str__(self) -> str:
        return f"{self.num}/{self.den}"

@dataclass(frozen=True)
class TempoRange:
    min: int
    max: int

@dataclass(frozen=True)
class Token:
    duration_code: str      # base code, no rest suffix
    beat_start_ticks: int   # from exercise start
    is_rest: bool = False
    tie_to_next: bool = False

    @property
    def ticks(self) -> int:
        return DURATION_TICKS[self.duration_code]

    @property
    def end_ticks(self) -> int:
        return self.beat_start_ticks + self.ticks

    @property
    def full_code(self) -> str:
        return self.duration_code + ("r" if self.is_rest else "")

@dataclass(frozen=True)
class Exercise:
    level: int
    time_signature: TimeSignature
    tempo_bpm: float
    notes: tuple[Token, ...]
    expected_onsets_ms: tuple[int, ...]
    measure_ticks: int
    measures_per_exercise: int
    total_duration_ms: int

@dataclass(frozen=True)
class Alignment:
    matched_tap_indices: list[int]   # per expected onset, -1 = missed
    extra_tap_indices: list[int]     # ascending

@dataclass
class GradeResult:
    tap_offsets_ms: list[Optional[int]]
    per_note_score: list[int]
    overall_accuracy: int
    timing_label: str
    missed_count: int
    extra_tap_count: int
    matched_tap_indices: list[int]
    extra_tap_indices: list[int]
    per_note_class: list[str]

@dataclass
class ChallengeResult:
    loop_results: list[GradeResult]
    average_score: int

@dataclass(frozen=True)
class TapEvent:
    tap_ms: float
    offset_ms: int
    is_extra: bool

@dataclass(frozen=True)
class AnalysisRow:
    label: str
    tap_events: tuple[TapEvent, ...]
    missed_expected_indices: tuple[int, ...]

# --- engine notifications ---

@dataclass(frozen=True)
class BeatInfo:
    phase: str              # "count-in" | "performing"
    beat_in_measure: int    # 1-based
    beat_number: int        # 1-based, across the whole session
    loops: int

@dataclass(frozen=True)
class TapInfo:
    loop: int               # 1-based
    loop_index: int
    within_loop_ms: int
    tap_index_in_loop: int  # count of taps in this loop, this one included
    total_tap_count: int

@dataclass(frozen=True)
class CompletionInfo:
    loop_taps_ms: list[list[int]]

@dataclass(frozen=True)
class CancelInfo:
    loop_taps_ms: list[list[int]]
    phase: str
    reason: str

class AudioCue(Protocol):
    def prime(self) -> None: ...
    def tick(self, accent: bool) -> None: ...

class SilentCue:
    """Stand-in when no audio output could be opened."""
    def prime(self) -> None:
        pass

    def tick(self, accent: bool) -> None:
        pass

class Scheduler(Protocol):
    def now_ms(self) -> float: ...
    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> Any: ...
    def cancel(self, handle: Any) -> None: ...
