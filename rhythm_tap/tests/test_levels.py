import pytest

from rhythm_tap.config import LEVELS
from rhythm_tap.errors import InvalidInput
from rhythm_tap.levels import BUILTIN_LEVELS, LevelConfig, get_level_config, list_level_ids
from rhythm_tap.midi_time import beat_ms, measure_ticks, parse_duration_code, parse_time_signature
from rhythm_tap.rt_types import TempoRange, TimeSignature

def _level(**kw):
    base = dict(
        id=2, allowed_time_signatures=("4/4",), allowed_durations=("q", "8r"),
        allow_syncopation=False, measures_per_exercise=2, tempo_range=TempoRange(60, 90),
    )
    base.update(kw)
    return LevelConfig(**base)

def test_builtin_levels_load():
    assert list_level_ids() == [1, 2, 3, 4, 5]
    lvl = get_level_config(4)
    assert lvl.allow_syncopation
    assert lvl.syncopation_rate == pytest.approx(0.22)
    assert lvl.tempo_range == TempoRange(80, 118)
    assert get_level_config(1).syncopation_rate == pytest.approx(0.2)
    assert TimeSignature(7, 8) in lvl.time_signatures

def test_unknown_level():
    with pytest.raises(InvalidInput):
        get_level_config(9)

def test_from_dict_accepts_snake_case():
    raw = dict(LEVELS[3])
    snake = {
        "id": 3,
        "allowed_time_signatures": raw["allowedTimeSignatures"],
        "allowed_durations": raw["allowedDurations"],
        "allow_syncopation": False,
        "measures_per_exercise": 2,
        "tempo_range": (72, 104),
        "duration_weights": raw["durationWeights"],
    }
    assert LevelConfig.from_dict(snake) == BUILTIN_LEVELS[3]

def test_weights_fall_back_to_base_code_then_one():
    lvl = _level(duration_weights={"8": 3})
    assert lvl.weight_for("8r", "8") == 3
    assert lvl.weight_for("q", "q") == 1.0

def test_config_is_read_only():
    lvl = _level(duration_weights={"q": 2})
    with pytest.raises(TypeError):
        lvl.duration_weights["q"] = 5
    with pytest.raises(Exception):
        lvl.id = 3

@pytest.mark.parametrize("kw", [
    {"allowed_durations": ("q", "32")},
    {"allowed_durations": ()},
    {"allowed_durations": ("qr", "8r")},
    {"allowed_time_signatures": ("4-4",)},
    {"allowed_time_signatures": ("4/3",)},
    {"allowed_time_signatures": ()},
    {"measures_per_exercise": 0},
    {"tempo_range": TempoRange(90, 60)},
    {"tempo_range": TempoRange(0, 60)},
    {"syncopation_rate": 1.5},
    {"duration_weights": {"q": -1}},
    {"id": 0},
])
def test_malformed_configs_are_rejected(kw):
    with pytest.raises(InvalidInput):
        _level(**kw)

def test_from_dict_needs_a_tempo_range():
    with pytest.raises(InvalidInput):
        LevelConfig.from_dict({"id": 1, "allowedTimeSignatures": ["4/4"], "allowedDurations": ["q"]})

def test_duration_and_meter_parsing():
    assert parse_duration_code("8r") == ("8", 240, True)
    assert parse_duration_code("w") == ("w", 1920, False)
    with pytest.raises(InvalidInput):
        parse_duration_code("x")
    ts = parse_time_signature("7/8")
    assert ts == TimeSignature(7, 8)
    assert measure_ticks(ts) == 1680
    assert measure_ticks(parse_time_signature("6/8")) == 1440
    assert beat_ms(120, ts) == pytest.approx(250.0)
    assert beat_ms(120, TimeSignature(4, 4)) == pytest.approx(500.0)
