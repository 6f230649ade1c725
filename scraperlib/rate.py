import threading
import time
from typing import Callable, Dict
from urllib.parse import urlparse


class RateLimiter:
    """Per-host politeness delay shared by all fetch threads."""

    def __init__(self, delay_seconds: float, now: Callable[[], float] | None = None, sleep: Callable[[float], None] | None = None):
        self.delay_seconds = delay_seconds
        self._host_next_time: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._now = now or time.monotonic
        self._sleep = sleep or time.sleep

    @property
    def enabled(self) -> bool:
        return self.delay_seconds > 0

    def wait_turn(self, url: str) -> float:
        """Block until ``url``'s host may be contacted again; return the time slept."""
        if not self.enabled:
            return 0.0
        host = urlparse(url).netloc.lower()
        with self._lock:
            now = self._now()
            next_allowed = self._host_next_time.get(host, 0.0)
            sleep_for = max(0.0, next_allowed - now)
            self._host_next_time[host] = max(next_allowed, now) + self.delay_seconds
        if sleep_for > 0:
            self._sleep(sleep_for)
        return sleep_for
