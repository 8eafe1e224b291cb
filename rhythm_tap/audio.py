import numpy as np
import simpleaudio as sa
from .config import (
    SR, MASTER_GAIN, CLICK_MS, CLICK_HZ, CLICK_GAIN, SOUND_MODES,
    OUTPUT_LATENCY_MS, MAX_LATENCY_MS,
)

def synth_click(freq: float, gain: float, mode: str = "click", duration_ms: float = CLICK_MS) -> np.ndarray:
    """Short burst: square wave for 'click', sine for 'tick', fast exponential decay."""
    n = int(SR * (duration_ms / 1000.0))
    t = np.arange(n) / SR
    wave = np.sin(2 * np.pi * freq * t)
    if mode == "click":
        wave = np.sign(wave)
    attack = max(1, int(SR * 0.0015))
    env = np.concatenate([
        np.linspace(0.0, 1.0, min(attack, n), endpoint=False),
        np.geomspace(1.0, 1e-4, max(0, n - attack)),
    ])[:n]
    return (wave * env * gain).astype(np.float32)

def to_pcm16(mono: np.ndarray) -> np.ndarray:
    stereo = np.stack([mono, mono], axis=1)
    return (np.clip(stereo, -1.0, 1.0) * 32767 * MASTER_GAIN).astype(np.int16)

def play_mono(mono: np.ndarray):
    return sa.play_buffer(to_pcm16(mono), 2, 2, SR)

class Metronome:
    """Click generator for the timing engine (AudioCue)."""

    def __init__(self, sound_mode: str = "click"):
        self.sound_mode = "click"
        self.set_sound_mode(sound_mode)
        self.ready = False
        self._buffers: dict[bool, np.ndarray] = {}

    def set_sound_mode(self, mode: str):
        self.sound_mode = mode if mode in SOUND_MODES else "click"
        self._buffers = {}

    def _build(self):
        self._buffers = {
            accent: synth_click(CLICK_HZ[self.sound_mode][accent], CLICK_GAIN[accent], self.sound_mode)
            for accent in (True, False)
        }

    def prime(self):
        # opening a silent buffer fails fast when there is no output device
        self._build()
        sa.play_buffer(np.zeros((64, 2), dtype=np.int16), 2, 2, SR).wait_done()
        self.ready = True

    def tick(self, accent: bool = False):
        if not self.ready:
            return
        if not self._buffers:
            self._build()
        play_mono(self._buffers[bool(accent)])

    def estimated_latency_ms(self) -> int:
        # simpleaudio doesn't report device latency; use the configured buffer estimate
        return max(0, min(MAX_LATENCY_MS, OUTPUT_LATENCY_MS))
