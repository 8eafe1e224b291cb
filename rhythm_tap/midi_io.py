import threading
import time
from typing import Callable, Optional, TextIO

import mido

from .config import GUIDE_CHANNEL, GUIDE_NOTE, GUIDE_VELOCITY

def list_ports() -> tuple[list[str], list[str]]:
    return mido.get_input_names(), mido.get_output_names()

class MidiTapInput:
    """Turns note-on messages from a MIDI device (pad, e-drum, keyboard) into taps."""

    def __init__(self, input_name: str, on_tap: Callable[[], bool]):
        self.input_name = input_name
        self.on_tap = on_tap
        self.taps_sent = 0
        self.port = None
        self._stop = threading.Event()

    def open(self):
        if self.port is None:
            self.port = mido.open_input(self.input_name)
        return self.port

    def stop(self):
        self._stop.set()

    def handle_message(self, msg) -> bool:
        if msg.type != "note_on" or msg.velocity <= 0:
            return False
        accepted = self.on_tap()
        if accepted:
            self.taps_sent += 1
        return accepted

    def run(self, until: Optional[Callable[[], bool]] = None):
        with self.open() as port:
            print(f"Listening to: {self.input_name}  (press Ctrl-C to stop)")
            while not self._stop.is_set() and not (until and until()):
                for msg in port.iter_pending():
                    self.handle_message(msg)
                time.sleep(0.001)
        self.port = None

    def close(self):
        if self.port is not None:
            self.port.close()
            self.port = None

class KeyboardTapInput:
    """One tap per line read (press Enter). For machines without a MIDI device."""

    def __init__(self, stream: TextIO, on_tap: Callable[[], bool]):
        self.stream = stream
        self.on_tap = on_tap
        self.taps_sent = 0

    def run(self, until: Optional[Callable[[], bool]] = None):
        for _line in self.stream:
            if self.on_tap():
                self.taps_sent += 1
            if until and until():
                break

class MidiClick:
    """AudioCue that plays the metronome on a MIDI output (GM wood blocks)."""

    def __init__(self, output_name: str):
        self.output_name = output_name
        self.port = None

    def prime(self):
        if self.port is None:
            self.port = mido.open_output(self.output_name)
            print(f"Sending click to: {self.output_name}")

    def tick(self, accent: bool = False):
        if self.port is None:
            return
        note = GUIDE_NOTE[bool(accent)]
        self.port.send(mido.Message("note_on", channel=GUIDE_CHANNEL, note=note, velocity=GUIDE_VELOCITY[bool(accent)]))
        self.port.send(mido.Message("note_off", channel=GUIDE_CHANNEL, note=note, velocity=0))

    def close(self):
        if self.port is not None:
            try:
                self.port.close()
            except Exception as e:
                print(f"[WARN] Could not close MIDI out '{self.output_name}': {e}")
            self.port = None
