import heapq
import itertools
import threading
import time
from typing import Callable

class ThreadScheduler:
    """Monotonic ms clock plus one-shot delayed callbacks.

    All callbacks run on one daemon worker thread, in due order. A handle
    returned by call_later can be cancelled until the callback starts.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._heap: list[tuple[float, int]] = []
        self._pending: dict[int, Callable[[], None]] = {}
        self._ids = itertools.count(1)
        self._closed = False
        self._thread = threading.Thread(target=self._worker, name="rhythm-tap-scheduler", daemon=True)
        self._thread.start()

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> int:
        handle = next(self._ids)
        due = self.now_ms() + max(0.0, delay_ms)
        with self._cond:
            if self._closed:
                raise RuntimeError("scheduler is closed")
            self._pending[handle] = fn
            heapq.heappush(self._heap, (due, handle))
            self._cond.notify()
        return handle

    def cancel(self, handle: int) -> None:
        with self._cond:
            self._pending.pop(handle, None)

    def pending_count(self) -> int:
        with self._cond:
            return len(self._pending)

    def close(self, timeout=None):
        with self._cond:
            self._closed = True
            self._pending.clear()
            self._heap.clear()
            self._cond.notify()
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def _next_due(self):
        # called with the lock held; drops cancelled entries off the top
        while self._heap and self._heap[0][1] not in self._pending:
            heapq.heappop(self._heap)
        return self._heap[0] if self._heap else None

    def _worker(self):
        while True:
            with self._cond:
                fn = None
                while not self._closed:
                    head = self._next_due()
                    if head is None:
                        self._cond.wait()
                        continue
                    delay = (head[0] - self.now_ms()) / 1000.0
                    if delay > 0:
                        # short waits keep close() responsive
                        self._cond.wait(min(0.01, delay))
                        continue
                    heapq.heappop(self._heap)
                    fn = self._pending.pop(head[1])
                    break
                if self._closed:
                    return
            try:
                fn()
            except Exception as e:
                print(f"[WARN] scheduled callback failed: {e!r}")
