# concierge/utils/timing.py
import time


class Stopwatch:
    """Monotonic elapsed-time helper; ms() can be read any number of times."""

    def __init__(self) -> None:
        self._t0 = time.perf_counter()

    def ms(self) -> int:
        return int((time.perf_counter() - self._t0) * 1000)
