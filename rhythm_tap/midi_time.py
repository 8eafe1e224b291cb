import math
from .config import PPQ, DURATION_TICKS, REST_SUFFIX
from .errors import InvalidInput
from .rt_types import TimeSignature

def round_ms(value: float) -> int:
    # half-up, so 0.5 ms boundaries land the same way on every platform
    return int(math.floor(value + 0.5))

def parse_duration_code(code: str) -> tuple[str, int, bool]:
    """'8r' -> ('8', 240, True). Unknown codes raise InvalidInput."""
    if not isinstance(code, str):
        raise InvalidInput(f"Unsupported duration code: {code!r}")
    is_rest = code.endswith(REST_SUFFIX)
    base = code[:-1] if is_rest else code
    ticks = DURATION_TICKS.get(base)
    if not ticks:
        raise InvalidInput(f"Unsupported duration code: {code!r}")
    return base, ticks, is_rest

def parse_time_signature(signature) -> TimeSignature:
    if isinstance(signature, TimeSignature):
        num, den = signature.num, signature.den
    else:
        parts = str(signature).split("/")
        if len(parts) != 2:
            raise InvalidInput(f"Invalid time signature: {signature!r}")
        try:
            num, den = int(parts[0]), int(parts[1])
        except ValueError:
            raise InvalidInput(f"Invalid time signature: {signature!r}") from None
    if num <= 0 or den not in (1, 2, 4, 8, 16):
        raise InvalidInput(f"Invalid time signature: {signature!r}")
    return TimeSignature(num, den)

def measure_ticks(ts: TimeSignature) -> int:
    return PPQ * 4 * ts.num // ts.den

def beat_ticks(ts: TimeSignature) -> int:
    return PPQ * 4 // ts.den

def ms_per_tick(tempo_bpm: float) -> float:
    return (60_000.0 / tempo_bpm) / PPQ

def beat_ms(tempo_bpm: float, ts: TimeSignature) -> float:
    # tempo counts quarter notes; a beat is one denominator unit
    return (60_000.0 / tempo_bpm) * (4 / ts.den)
