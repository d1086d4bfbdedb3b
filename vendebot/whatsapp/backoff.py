from __future__ import annotations

import time
from threading import Lock
from typing import Callable


class SenderBackoff:
    """Frena los envíos de un número emisor después de varias fallas seguidas.

    Hasta ``threshold`` fallas no hay espera; a partir de ahí la espera se
    duplica en cada falla (1s, 2s, 4s...) con tope ``max_delay``. Las fallas
    viejas (más de ``reset_after`` segundos) se olvidan.
    """

    def __init__(
        self,
        *,
        threshold: int = 3,
        max_delay: float = 8.0,
        reset_after: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.max_delay = max_delay
        self.reset_after = reset_after
        self._clock = clock
        self._failures: dict[str, tuple[int, float]] = {}
        self._lock = Lock()

    def delay(self, sender: str) -> float:
        with self._lock:
            count, last_failure = self._failures.get(sender, (0, 0.0))
            if count and self._clock() - last_failure > self.reset_after:
                del self._failures[sender]
                return 0.0
            if count < self.threshold:
                return 0.0
            return min(float(2 ** (count - self.threshold)), self.max_delay)

    def success(self, sender: str) -> None:
        with self._lock:
            self._failures.pop(sender, None)

    def failure(self, sender: str) -> int:
        with self._lock:
            count = self._failures.get(sender, (0, 0.0))[0] + 1
            self._failures[sender] = (count, self._clock())
            return count
