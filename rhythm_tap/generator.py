import random
from dataclasses import replace
from typing import Mapping, Optional

from .config import (
    PPQ, DURATION_TICKS, MAX_GENERATION_ATTEMPTS, MAX_MEASURE_STEPS,
    REST_AFTER_REST_WEIGHT, OFF_GRID_LONG_WEIGHT,
    COMPOUND_EIGHTH_WEIGHT, COMPOUND_SIXTEENTH_WEIGHT,
    ADVANCED_LEVEL, ADVANCED_SIXTEENTH_WEIGHT,
)
from .errors import GenerationExhausted, InvalidInput
from .levels import LevelConfig
from .midi_time import (
    beat_ticks, measure_ticks, ms_per_tick, parse_duration_code,
    parse_time_signature, round_ms,
)
from .rt_types import Exercise, TimeSignature, Token

OVERRIDE_KEYS = ("time_signature", "tempo_bpm", "measures_per_exercise")

class MeasureFailed(Exception):
    """One measure attempt could not be filled; the whole attempt is retried."""

def weighted_choice(candidates: list[tuple[str, bool, int, float]], rng: random.Random):
    total = sum(c[3] for c in candidates)
    roll = rng.random() * total
    for c in candidates:
        roll -= c[3]
        if roll <= 0:
            return c
    return candidates[-1]

def build_candidates(level: LevelConfig, ts: TimeSignature, remaining: int,
                     cursor: int, prev: Optional[Token]) -> list[tuple[str, bool, int, float]]:
    """(base, is_rest, ticks, weight) for every allowed duration that still fits."""
    grid = beat_ticks(ts)
    compound = ts.num == 6 and ts.den == 8
    out = []
    for code in level.allowed_durations:
        base, ticks, is_rest = parse_duration_code(code)
        if ticks > remaining:
            continue
        w = level.weight_for(code, base)
        if is_rest and prev is not None and prev.is_rest:
            w *= REST_AFTER_REST_WEIGHT
        # long values should mostly start on the beat
        if ticks >= PPQ and cursor % grid != 0:
            w *= OFF_GRID_LONG_WEIGHT
        if compound:
            if base == "8": w *= COMPOUND_EIGHTH_WEIGHT
            if base == "16": w *= COMPOUND_SIXTEENTH_WEIGHT
        if level.id >= ADVANCED_LEVEL and base == "16":
            w *= ADVANCED_SIXTEENTH_WEIGHT
        if w > 0:
            out.append((base, is_rest, ticks, w))
    return out

def crosses_beat_boundary(start_in_measure: int, ticks: int) -> bool:
    # quarter-note grid, whatever the meter
    starts_off = start_in_measure % PPQ != 0
    lands_on = (start_in_measure + ticks) % PPQ == 0
    return starts_off and lands_on

def apply_syncopation(tokens: list[Token], measure_start: int, rate: float, rng: random.Random) -> None:
    for i in range(len(tokens) - 1):
        cur, nxt = tokens[i], tokens[i + 1]
        if cur.is_rest or nxt.is_rest:
            continue
        if cur.duration_code == "16" or nxt.duration_code == "16":
            continue
        if not crosses_beat_boundary(cur.beat_start_ticks - measure_start, cur.ticks):
            continue
        if rng.random() <= rate:
            tokens[i] = replace(cur, tie_to_next=True)

def generate_measure(level: LevelConfig, ts: TimeSignature, measure_start: int,
                     length: int, rng: random.Random) -> list[Token]:
    remaining = length
    cursor = 0
    steps = 0
    tokens: list[Token] = []

    while remaining > 0 and steps < MAX_MEASURE_STEPS:
        steps += 1
        prev = tokens[-1] if tokens else None
        candidates = build_candidates(level, ts, remaining, cursor, prev)
        if not candidates:
            raise MeasureFailed("no allowed duration fits the rest of the measure")
        base, is_rest, ticks, _ = weighted_choice(candidates, rng)
        tokens.append(Token(base, measure_start + cursor, is_rest))
        cursor += ticks
        remaining -= ticks

    if remaining != 0:
        raise MeasureFailed(f"measure ended with {remaining} ticks left")
    if level.allow_syncopation:
        apply_syncopation(tokens, measure_start, level.syncopation_rate, rng)
    if all(t.is_rest for t in tokens):
        raise MeasureFailed("silent measure")
    return tokens

def build_expected_onsets_ms(tokens, tempo_bpm: float) -> tuple[int, ...]:
    per_tick = ms_per_tick(tempo_bpm)
    onsets = []
    prev = None
    for t in tokens:
        if not t.is_rest and not (prev is not None and prev.tie_to_next):
            onsets.append(round_ms(t.beat_start_ticks * per_tick))
        prev = t
    return tuple(onsets)

def exercise_duration_ms(tokens, tempo_bpm: float) -> int:
    if not tokens:
        return 0
    return round_ms(tokens[-1].end_ticks * ms_per_tick(tempo_bpm))

def validate_exercise(ex: Exercise, level: LevelConfig) -> tuple[bool, str]:
    allowed = set(level.allowed_durations)
    for m in range(ex.measures_per_exercise):
        start = m * ex.measure_ticks
        end = start + ex.measure_ticks
        notes = [t for t in ex.notes if start <= t.beat_start_ticks < end]
        total = sum(DURATION_TICKS[t.duration_code] for t in notes)
        if total != ex.measure_ticks:
            return False, f"Measure {m + 1} sums to {total} ticks instead of {ex.measure_ticks}"
        if all(t.is_rest for t in notes):
            return False, f"Measure {m + 1} contains only rests"
        for i, t in enumerate(notes):
            if t.full_code not in allowed:
                return False, f"Duration {t.full_code} is not allowed for level {level.id}"
            if t.tie_to_next:
                nxt = notes[i + 1] if i + 1 < len(notes) else None
                if nxt is None or t.is_rest or nxt.is_rest:
                    return False, f"Tie in measure {m + 1} points to an invalid token"
    if not ex.expected_onsets_ms:
        return False, "Exercise has no playable onsets"
    return True, ""

def _check_tempo(tempo_bpm) -> float:
    if not isinstance(tempo_bpm, (int, float)) or isinstance(tempo_bpm, bool) or not tempo_bpm > 0:
        raise InvalidInput(f"Tempo must be a positive number, got {tempo_bpm!r}")
    return tempo_bpm

def _resolve_overrides(overrides: Optional[Mapping]) -> dict:
    overrides = dict(overrides or {})
    unknown = set(overrides) - set(OVERRIDE_KEYS)
    if unknown:
        raise InvalidInput(f"Unknown overrides: {sorted(unknown)}")
    if overrides.get("time_signature") is not None:
        overrides["time_signature"] = parse_time_signature(overrides["time_signature"])
    if overrides.get("tempo_bpm") is not None:
        _check_tempo(overrides["tempo_bpm"])
    m = overrides.get("measures_per_exercise")
    if m is not None and (not isinstance(m, int) or m < 1):
        raise InvalidInput(f"measures_per_exercise must be >= 1, got {m!r}")
    return overrides

def generate_exercise(level: LevelConfig, overrides: Optional[Mapping] = None,
                      rng: Optional[random.Random] = None) -> Exercise:
    """Build a random exercise for ``level``.

    ``overrides`` may pin time_signature ("4/4" or TimeSignature), tempo_bpm
    and measures_per_exercise. Every call draws fresh randomness; pass a
    seeded ``random.Random`` for reproducible output.
    """
    rng = rng or random.Random()
    ov = _resolve_overrides(overrides)
    measures = ov.get("measures_per_exercise") or level.measures_per_exercise
    signatures = level.time_signatures

    for _ in range(MAX_GENERATION_ATTEMPTS):
        ts = ov.get("time_signature") or signatures[rng.randrange(len(signatures))]
        tempo = ov.get("tempo_bpm")
        if tempo is None:
            tempo = rng.randint(int(level.tempo_range.min), int(level.tempo_range.max))
        length = measure_ticks(ts)

        notes: list[Token] = []
        try:
            for m in range(measures):
                notes.extend(generate_measure(level, ts, m * length, length, rng))
        except MeasureFailed:
            continue

        ex = Exercise(
            level=level.id,
            time_signature=ts,
            tempo_bpm=tempo,
            notes=tuple(notes),
            expected_onsets_ms=build_expected_onsets_ms(notes, tempo),
            measure_ticks=length,
            measures_per_exercise=measures,
            total_duration_ms=exercise_duration_ms(notes, tempo),
        )
        ok, _reason = validate_exercise(ex, level)
        if ok:
            return ex

    raise GenerationExhausted(
        f"No valid exercise for level {level.id} after {MAX_GENERATION_ATTEMPTS} attempts"
    )

def retime(ex: Exercise, tempo_bpm: float) -> Exercise:
    """Same rhythm at a new tempo; derived timings are recomputed."""
    _check_tempo(tempo_bpm)
    return replace(
        ex,
        tempo_bpm=tempo_bpm,
        expected_onsets_ms=build_expected_onsets_ms(ex.notes, tempo_bpm),
        total_duration_ms=exercise_duration_ms(ex.notes, tempo_bpm),
    )

def describe(ex: Exercise) -> str:
    """One-line text rendering, e.g. ``4/4 @ 92 bpm | q 8 8~ q qr``."""
    bars = []
    for m in range(ex.measures_per_exercise):
        start = m * ex.measure_ticks
        cells = [t.full_code + ("~" if t.tie_to_next else "")
                 for t in ex.notes if start <= t.beat_start_ticks < start + ex.measure_ticks]
        bars.append(" ".join(cells))
    return f"{ex.time_signature} @ {ex.tempo_bpm:g} bpm | " + " | ".join(bars)
