from typing import Callable, Dict, List
import time

from .exceptions import RateLimitError

class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.requests: Dict[str, List[float]] = {}
        self.clock = clock
        self._last_sweep = clock()

    def check_rate_limit(self, key: str, max_requests: int = 60, window: int = 60):
        """Sliding-window limit keyed by caller"""
        now = self.clock()
        if now - self._last_sweep >= window:
            self._sweep(now, window)

        # Clean old requests
        recent = [req_time for req_time in self.requests.get(key, []) if now - req_time < window]
        if len(recent) >= max_requests:
            self.requests[key] = recent
            raise RateLimitError()

        recent.append(now)
        self.requests[key] = recent

    def _sweep(self, now: float, window: int):
        """Drop callers with no request inside the window"""
        idle = [key for key, times in self.requests.items() if not times or now - times[-1] >= window]
        for key in idle:
            del self.requests[key]
        self._last_sweep = now

    def reset(self):
        self.requests.clear()

rate_limiter = RateLimiter()
