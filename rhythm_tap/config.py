SR = 44100
MASTER_GAIN = 0.8

# Tick resolution (ticks per quarter note)
PPQ = 480
DURATION_TICKS = {
    "w": PPQ * 4,
    "h": PPQ * 2,
    "q": PPQ,
    "8": PPQ // 2,
    "16": PPQ // 4,
}
REST_SUFFIX = "r"

# Generator limits
MAX_GENERATION_ATTEMPTS = 240
MAX_MEASURE_STEPS = 256
DEFAULT_SYNCOPATION_RATE = 0.2

# Generator weight multipliers
REST_AFTER_REST_WEIGHT = 0.35
OFF_GRID_LONG_WEIGHT = 0.45
COMPOUND_EIGHTH_WEIGHT = 1.45
COMPOUND_SIXTEENTH_WEIGHT = 0.8
ADVANCED_LEVEL = 5
ADVANCED_SIXTEENTH_WEIGHT = 1.4

# Alignment costs (ms-equivalent)
MISS_COST = 160
EXTRA_COST = 120

# Grading windows (ms) and scores
GOOD_MS = 50
WARN_MS = 100
GOOD_SCORE = 100
WARN_SCORE = 70
BAD_SCORE = 30
MISS_SCORE = 0
MISSED_NOTE_PENALTY = 8
EXTRA_TAP_PENALTY = 5
# Mean matched offset beyond this is reported as early/late
BIAS_MS = 20

# Timing engine
DEFAULT_LOOPS = 1
CHALLENGE_LOOPS = 4
BOUNDARY_SHIFT_LEAD_MS = 110
BOUNDARY_SHIFT_MIN_MS = 140
BOUNDARY_SHIFT_MAX_MS = 260

# Tempo range accepted from the command line (bpm)
MIN_TEMPO_BPM = 40
MAX_TEMPO_BPM = 220

# Metronome click
CLICK_MS = 18
CLICK_HZ = {
    "click": {True: 1760, False: 1320},
    "tick": {True: 1960, False: 1480},
}
CLICK_GAIN = {True: 0.18, False: 0.12}
SOUND_MODES = ("click", "tick")

# Latency (ms)
OUTPUT_LATENCY_MS = 20
MAX_LATENCY_MS = 250
EXTRA_LEAD_COMPENSATION_MS = 30

# MIDI guide click (GM percussion channel)
GUIDE_CHANNEL = 9
GUIDE_NOTE = {True: 76, False: 77}  # hi / low wood block
GUIDE_VELOCITY = {True: 110, False: 80}

# Built-in levels
LEVELS = {
    1: {
        "id": 1,
        "allowedTimeSignatures": ["2/4", "4/4"],
        "allowedDurations": ["q", "h", "w", "qr"],
        "allowSyncopation": False,
        "measuresPerExercise": 2,
        "tempoRange": {"min": 60, "max": 84},
        "durationWeights": {"w": 1, "h": 2.5, "q": 5, "qr": 1.1},
    },
    2: {
        "id": 2,
        "allowedTimeSignatures": ["2/4", "3/4", "4/4"],
        "allowedDurations": ["q", "h", "8", "qr", "8r"],
        "allowSyncopation": False,
        "measuresPerExercise": 2,
        "tempoRange": {"min": 66, "max": 92},
        "durationWeights": {"h": 1.5, "q": 4.5, "8": 3, "qr": 0.9, "8r": 0.75},
    },
    3: {
        "id": 3,
        "allowedTimeSignatures": ["3/4", "4/4", "6/8"],
        "allowedDurations": ["q", "h", "8", "qr", "8r"],
        "allowSyncopation": False,
        "measuresPerExercise": 2,
        "tempoRange": {"min": 72, "max": 104},
        "durationWeights": {"h": 1.25, "q": 3.5, "8": 4.5, "qr": 0.8, "8r": 0.6},
    },
    4: {
        "id": 4,
        "allowedTimeSignatures": ["4/4", "6/8", "7/8"],
        "allowedDurations": ["q", "8", "16", "qr", "8r"],
        "allowSyncopation": True,
        "measuresPerExercise": 2,
        "tempoRange": {"min": 80, "max": 118},
        "durationWeights": {"q": 2.2, "8": 4.6, "16": 2.3, "qr": 0.6, "8r": 0.45},
        "syncopationRate": 0.22,
    },
    5: {
        "id": 5,
        "allowedTimeSignatures": ["4/4", "5/4", "7/8"],
        "allowedDurations": ["q", "8", "16", "qr", "8r"],
        "allowSyncopation": True,
        "measuresPerExercise": 2,
        "tempoRange": {"min": 88, "max": 126},
        "durationWeights": {"q": 1.9, "8": 4.1, "16": 3.2, "qr": 0.45, "8r": 0.32},
        "syncopationRate": 0.34,
    },
}
