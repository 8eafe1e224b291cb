from .errors import GenerationExhausted, InvalidInput, RhythmTapError
from .generator import generate_exercise, retime
from .judge import align_taps, build_analysis_row, grade_attempt, grade_challenge
from .levels import LevelConfig, get_level_config, list_level_ids
from .timing_engine import SessionCallbacks, TimingEngine
