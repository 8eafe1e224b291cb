import math
from bisect import bisect_left
from typing import Optional, Sequence

from .config import (
    MISS_COST, EXTRA_COST, MISSED_NOTE_PENALTY, EXTRA_TAP_PENALTY,
    GOOD_MS, WARN_MS, GOOD_SCORE, WARN_SCORE, BAD_SCORE, MISS_SCORE, BIAS_MS,
)
from .midi_time import round_ms
from .rt_types import Alignment, AnalysisRow, ChallengeResult, GradeResult, TapEvent

_MATCH, _MISS, _EXTRA = "match", "miss", "extra"

def score_offset(offset_ms: Optional[float]) -> int:
    if offset_ms is None or math.isnan(offset_ms): return MISS_SCORE
    a = abs(offset_ms)
    if a <= GOOD_MS: return GOOD_SCORE
    if a <= WARN_MS: return WARN_SCORE
    return BAD_SCORE

def classify_timing(offset_ms: Optional[float]) -> str:
    if offset_ms is None or math.isnan(offset_ms): return "miss"
    a = abs(offset_ms)
    if a <= GOOD_MS: return "good"
    if a <= WARN_MS: return "warn"
    return "bad"

def align_taps(expected: Sequence[float], taps: Sequence[float]) -> Alignment:
    """Minimum-cost alignment of taps onto expected onsets.

    dp[i][j] is the cheapest way to account for the first i onsets and the
    first j taps: match costs the absolute ms delta, leaving an onset
    unmatched costs MISS_COST, leaving a tap unmatched costs EXTRA_COST.
    Cells are relaxed forward in row-major order (match, miss, extra) and
    only a strictly cheaper path replaces a recorded one, so ties resolve
    the same way on every run.
    """
    n, m = len(expected), len(taps)
    inf = math.inf
    dp = [[inf] * (m + 1) for _ in range(n + 1)]
    op: list[list[Optional[str]]] = [[None] * (m + 1) for _ in range(n + 1)]
    dp[0][0] = 0.0

    for i in range(n + 1):
        row = dp[i]
        for j in range(m + 1):
            cur = row[j]
            if cur == inf:
                continue
            if i < n and j < m:
                c = cur + abs(taps[j] - expected[i])
                if c < dp[i + 1][j + 1]:
                    dp[i + 1][j + 1] = c
                    op[i + 1][j + 1] = _MATCH
            if i < n:
                c = cur + MISS_COST
                if c < dp[i + 1][j]:
                    dp[i + 1][j] = c
                    op[i + 1][j] = _MISS
            if j < m:
                c = cur + EXTRA_COST
                if c < row[j + 1]:
                    row[j + 1] = c
                    op[i][j + 1] = _EXTRA

    matched = [-1] * n
    extras: list[int] = []
    i, j = n, m
    while i > 0 or j > 0:
        step = op[i][j]
        if step == _MATCH:
            i, j = i - 1, j - 1
            matched[i] = j
        elif step == _MISS:
            i -= 1
        elif step == _EXTRA:
            j -= 1
            extras.append(j)
        else:
            break
    extras.reverse()
    return Alignment(matched, extras)

def grade_attempt(expected: Sequence[float], taps: Sequence[float]) -> GradeResult:
    al = align_taps(expected, taps)

    offsets: list[Optional[int]] = []
    for idx, e in enumerate(expected):
        ti = al.matched_tap_indices[idx]
        offsets.append(None if ti == -1 else round_ms(taps[ti] - e))

    scores = [score_offset(o) for o in offsets]
    missed = sum(1 for ti in al.matched_tap_indices if ti == -1)
    extra = len(al.extra_tap_indices)
    raw_mean = sum(scores) / max(len(scores), 1)
    # penalties sit on top of the mean so many good notes can't hide misses
    accuracy = round_ms(raw_mean - missed * MISSED_NOTE_PENALTY - extra * EXTRA_TAP_PENALTY)
    accuracy = max(0, min(100, accuracy))

    hit = [o for o in offsets if o is not None]
    mean_offset = sum(hit) / len(hit) if hit else 0.0
    label = "on-time"
    if mean_offset > BIAS_MS:
        label = "late"
    elif mean_offset < -BIAS_MS:
        label = "early"

    return GradeResult(
        tap_offsets_ms=offsets,
        per_note_score=scores,
        overall_accuracy=accuracy,
        timing_label=label,
        missed_count=missed,
        extra_tap_count=extra,
        matched_tap_indices=list(al.matched_tap_indices),
        extra_tap_indices=list(al.extra_tap_indices),
        per_note_class=[classify_timing(o) for o in offsets],
    )

def grade_challenge(expected: Sequence[float], loop_taps: Sequence[Sequence[float]]) -> ChallengeResult:
    results = [grade_attempt(expected, taps) for taps in loop_taps]
    mean = sum(r.overall_accuracy for r in results) / max(len(results), 1)
    return ChallengeResult(loop_results=results, average_score=round_ms(mean))

def find_nearest_expected_offset(expected: Sequence[float], tap_ms: float) -> tuple[int, int]:
    """(expected_index, offset_ms) of the closest onset; (-1, 0) if there are none.
    Equal gaps go to the earlier onset."""
    if not expected:
        return -1, 0
    k = bisect_left(expected, tap_ms)
    left = max(0, k - 1)
    right = min(len(expected) - 1, k)
    idx = right if abs(tap_ms - expected[right]) < abs(tap_ms - expected[left]) else left
    return idx, round_ms(tap_ms - expected[idx])

def build_analysis_row(label: str, expected: Sequence[float], taps: Sequence[float],
                       result: GradeResult) -> AnalysisRow:
    by_tap = {ti: ei for ei, ti in enumerate(result.matched_tap_indices) if ti >= 0}
    events = []
    for ti, tap in enumerate(taps):
        ei = by_tap.get(ti)
        if ei is not None:
            events.append(TapEvent(tap, round_ms(tap - expected[ei]), False))
        else:
            _, off = find_nearest_expected_offset(expected, tap)
            events.append(TapEvent(tap, off, True))
    missed = tuple(ei for ei, ti in enumerate(result.matched_tap_indices) if ti == -1)
    return AnalysisRow(label=label, tap_events=tuple(events), missed_expected_indices=missed)

def timing_word(offset_ms: Optional[int]) -> str:
    if offset_ms is None: return "Miss"
    if offset_ms < 0: return "Early"
    if offset_ms > 0: return "Late"
    return "On time"

def format_summary(expected: Sequence[float], taps: Sequence[float], result: GradeResult,
                   title: str = "Attempt") -> str:
    lines = [
        f"{title} score: {result.overall_accuracy}%   bias: {result.timing_label}"
        f"   missed: {result.missed_count}   extra: {result.extra_tap_count}",
    ]
    for idx, e in enumerate(expected):
        ti = result.matched_tap_indices[idx]
        off = result.tap_offsets_ms[idx]
        actual = "-" if ti == -1 else f"{taps[ti]:.0f}"
        delta = "Miss" if off is None else f"{off:+d}"
        lines.append(f"  {idx + 1:3d}  expected={e:7.0f}  tap={actual:>7s}  Δt={delta:>6s}  {timing_word(off)}")
    return "\n".join(lines)
