#!/usr/bin/env python3
import argparse, random, signal, sys, threading

from .config import (
    CHALLENGE_LOOPS, EXTRA_LEAD_COMPENSATION_MS, MAX_TEMPO_BPM, MIN_TEMPO_BPM, SOUND_MODES,
)
from .errors import RhythmTapError
from .generator import describe, generate_exercise
from .judge import build_analysis_row, format_summary, grade_attempt, grade_challenge
from .levels import get_level_config, list_level_ids
from .midi_io import KeyboardTapInput, MidiClick, MidiTapInput, list_ports
from .rt_types import SilentCue
from .scheduler import ThreadScheduler
from .timing_engine import SessionCallbacks, TimingEngine

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Rhythm tap practice: count-in, play along, get graded.")
    ap.add_argument("level", type=int, choices=list_level_ids(), help="Difficulty level")
    ap.add_argument("--loops", type=int, default=1, help=f"Loops per session (challenge mode uses {CHALLENGE_LOOPS})")
    ap.add_argument("--tempo", type=float, help=f"Pin the tempo (bpm, clamped to {MIN_TEMPO_BPM}-{MAX_TEMPO_BPM})")
    ap.add_argument("--meter", help="Pin the time signature, e.g. '3/4'")
    ap.add_argument("--measures", type=int, help="Pin the number of measures")
    ap.add_argument("--input", help="MIDI input name to tap on. If neither --input nor --keys, prints ports and exits.")
    ap.add_argument("--keys", action="store_true", help="Tap with the Enter key")
    ap.add_argument("--output", help="MIDI output name for the click instead of the speaker")
    ap.add_argument("--no-click", action="store_true", help="Disable metronome / count-in click")
    ap.add_argument("--sound", choices=SOUND_MODES, default="click", help="Click sound (default click)")
    ap.add_argument("--latency", type=int, help="Latency compensation in ms (default: estimated output latency + lead)")
    ap.add_argument("--seed", type=int, help="Seed for reproducible exercises")
    return ap

def clamp_tempo(bpm: float) -> float:
    return max(MIN_TEMPO_BPM, min(MAX_TEMPO_BPM, bpm))

def _make_cue(args):
    if args.no_click:
        return SilentCue()
    if args.output:
        return MidiClick(args.output)
    from .audio import Metronome
    return Metronome(args.sound)

def main(argv=None):
    args = build_parser().parse_args(argv)

    if not args.input and not args.keys:
        ins, outs = list_ports()
        print("Available MIDI inputs:")
        for name in ins: print("  -", name)
        print("\nAvailable MIDI outputs:")
        for name in outs: print("  -", name)
        print("\nRe-run with --input 'Your Pad Port' or --keys.")
        return 0

    tempo = None if args.tempo is None else clamp_tempo(args.tempo)
    overrides = {"time_signature": args.meter, "tempo_bpm": tempo, "measures_per_exercise": args.measures}
    try:
        exercise = generate_exercise(
            get_level_config(args.level),
            {k: v for k, v in overrides.items() if v is not None},
            random.Random(args.seed),
        )
    except RhythmTapError as e:
        print(f"Could not build an exercise: {e}")
        return 1
    print(describe(exercise))

    cue = _make_cue(args)
    scheduler = ThreadScheduler()
    engine = TimingEngine(cue, scheduler)
    done = threading.Event()
    outcome = {}

    def on_complete(info):
        outcome["taps"] = info.loop_taps_ms
        done.set()

    def on_cancel(info):
        outcome["taps"] = info.loop_taps_ms
        outcome["cancelled"] = info.reason
        done.set()

    callbacks = SessionCallbacks(
        on_state_change=lambda state: print(f"-- {state}"),
        on_beat=lambda b: print(f"{'*' if b.beat_in_measure == 1 else '.'}", end="", flush=True),
        on_loop_start=lambda n: print(f"\n[loop {n}/{args.loops}]"),
        on_complete=on_complete,
        on_cancel=on_cancel,
    )

    signal.signal(signal.SIGINT, lambda signum, frame: engine.cancel("interrupted"))

    latency = args.latency
    if latency is None:
        estimate = getattr(cue, "estimated_latency_ms", None)
        latency = (estimate() if estimate else 0) + EXTRA_LEAD_COMPENSATION_MS
    print(f"Preparing audio and count-in... latency compensation {latency} ms")

    if args.keys:
        tap_input = KeyboardTapInput(sys.stdin, engine.register_tap)
    else:
        tap_input = MidiTapInput(args.input, engine.register_tap)
        try:
            tap_input.open()
        except Exception as e:
            print(f"[WARN] Could not open MIDI in '{args.input}': {e}")
            scheduler.close(timeout=1.0)
            return 1
    reader = threading.Thread(target=tap_input.run, kwargs={"until": done.is_set}, daemon=True)

    try:
        engine.start(exercise, loops=args.loops, latency_compensation_ms=latency, callbacks=callbacks)
        reader.start()
        while not done.wait(0.1):
            pass
    finally:
        engine.stop()
        if isinstance(tap_input, MidiTapInput):
            tap_input.stop()
            if reader.ident is None:
                tap_input.close()
        scheduler.close(timeout=1.0)
        if isinstance(cue, MidiClick):
            cue.close()

    loop_taps = outcome.get("taps", [])
    if "cancelled" in outcome:
        print(f"\nSession cancelled ({outcome['cancelled']}); {sum(map(len, loop_taps))} taps recorded.")
        return 1

    print("\n----- Results -----")
    expected = exercise.expected_onsets_ms
    if len(loop_taps) == 1:
        result = grade_attempt(expected, loop_taps[0])
        print(format_summary(expected, loop_taps[0], result))
        rows = [build_analysis_row("Attempt", expected, loop_taps[0], result)]
    else:
        challenge = grade_challenge(expected, loop_taps)
        print(f"{len(loop_taps)}-loop average: {challenge.average_score}%")
        for i, (taps, result) in enumerate(zip(loop_taps, challenge.loop_results), start=1):
            print(format_summary(expected, taps, result, title=f"Loop {i}"))
        rows = [build_analysis_row(f"Loop {i}", expected, taps, r)
                for i, (taps, r) in enumerate(zip(loop_taps, challenge.loop_results), start=1)]
    for row in rows:
        extras = sum(1 for ev in row.tap_events if ev.is_extra)
        print(f"{row.label:>8s}: {len(row.tap_events)} taps, {extras} extra, missed notes {list(row.missed_expected_indices)}")
    return 0

if __name__ == "__main__":
    sys.exit(main())
