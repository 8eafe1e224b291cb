class RhythmTapError(Exception):
    pass

class InvalidInput(RhythmTapError, ValueError):
    """Malformed level config, duration code, time signature or override."""

class GenerationExhausted(RhythmTapError, RuntimeError):
    """No valid exercise was found within the attempt budget."""
