# Level configs: validated once at construction, then treated as read-only.

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .config import LEVELS, DEFAULT_SYNCOPATION_RATE
from .errors import InvalidInput
from .midi_time import parse_duration_code, parse_time_signature
from .rt_types import TempoRange, TimeSignature

@dataclass(frozen=True)
class LevelConfig:
    id: int
    allowed_time_signatures: tuple[str, ...]
    allowed_durations: tuple[str, ...]
    allow_syncopation: bool
    measures_per_exercise: int
    tempo_range: TempoRange
    duration_weights: Mapping[str, float] = field(default_factory=dict)
    syncopation_rate: float = DEFAULT_SYNCOPATION_RATE

    def __post_init__(self):
        if not isinstance(self.id, int) or self.id < 1:
            raise InvalidInput(f"Level id must be a positive int, got {self.id!r}")
        if not self.allowed_time_signatures:
            raise InvalidInput(f"Level {self.id}: no allowed time signatures")
        if not self.allowed_durations:
            raise InvalidInput(f"Level {self.id}: no allowed durations")
        for sig in self.allowed_time_signatures:
            parse_time_signature(sig)
        for code in self.allowed_durations:
            parse_duration_code(code)
        if not any(not parse_duration_code(c)[2] for c in self.allowed_durations):
            raise InvalidInput(f"Level {self.id}: every allowed duration is a rest")
        if not isinstance(self.measures_per_exercise, int) or self.measures_per_exercise < 1:
            raise InvalidInput(f"Level {self.id}: measures_per_exercise must be >= 1")
        lo, hi = self.tempo_range.min, self.tempo_range.max
        if lo <= 0 or hi < lo:
            raise InvalidInput(f"Level {self.id}: bad tempo range {lo}..{hi}")
        if not 0.0 <= self.syncopation_rate <= 1.0:
            raise InvalidInput(f"Level {self.id}: syncopation_rate must be within 0..1")
        for code, weight in self.duration_weights.items():
            if not isinstance(weight, (int, float)) or not math.isfinite(weight) or weight < 0:
                raise InvalidInput(f"Level {self.id}: bad weight for {code!r}: {weight!r}")

        object.__setattr__(self, "allowed_time_signatures", tuple(self.allowed_time_signatures))
        object.__setattr__(self, "allowed_durations", tuple(self.allowed_durations))
        object.__setattr__(self, "duration_weights", MappingProxyType(dict(self.duration_weights)))

    @property
    def time_signatures(self) -> list[TimeSignature]:
        return [parse_time_signature(s) for s in self.allowed_time_signatures]

    def weight_for(self, code: str, base: str) -> float:
        w = self.duration_weights.get(code)
        if w is None:
            w = self.duration_weights.get(base)
        return 1.0 if w is None else float(w)

    @classmethod
    def from_dict(cls, raw: Mapping) -> "LevelConfig":
        """Accepts the camelCase level tables as well as snake_case keys."""
        def pick(*names, default=None):
            for n in names:
                if n in raw:
                    return raw[n]
            return default

        tempo = pick("tempoRange", "tempo_range")
        if isinstance(tempo, Mapping):
            tempo = TempoRange(tempo.get("min"), tempo.get("max"))
        elif isinstance(tempo, (tuple, list)) and len(tempo) == 2:
            tempo = TempoRange(*tempo)
        if not isinstance(tempo, TempoRange) or not all(isinstance(v, (int, float)) for v in (tempo.min, tempo.max)):
            raise InvalidInput(f"Level {raw.get('id')!r}: missing or malformed tempo range")

        rate = pick("syncopationRate", "syncopation_rate")
        return cls(
            id=pick("id"),
            allowed_time_signatures=tuple(pick("allowedTimeSignatures", "allowed_time_signatures", default=())),
            allowed_durations=tuple(pick("allowedDurations", "allowed_durations", default=())),
            allow_syncopation=bool(pick("allowSyncopation", "allow_syncopation", default=False)),
            measures_per_exercise=pick("measuresPerExercise", "measures_per_exercise", default=1),
            tempo_range=tempo,
            duration_weights=dict(pick("durationWeights", "duration_weights", default={})),
            syncopation_rate=DEFAULT_SYNCOPATION_RATE if rate is None else float(rate),
        )

BUILTIN_LEVELS: dict[int, LevelConfig] = {k: LevelConfig.from_dict(v) for k, v in LEVELS.items()}

def get_level_config(level_id: int) -> LevelConfig:
    level = BUILTIN_LEVELS.get(level_id)
    if level is None:
        raise InvalidInput(f"Unknown level: {level_id!r}")
    return level

def list_level_ids() -> list[int]:
    return sorted(BUILTIN_LEVELS)
