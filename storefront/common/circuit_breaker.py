import asyncio
import time
from typing import Optional

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(RuntimeError):
    pass


class CircuitBreaker:
    """
    Async in-memory circuit breaker , one per downstream dependency and per process.

    Usage:
      cb = CircuitBreaker(name="payment_gateway", failure_threshold=5, recovery_timeout=30)
      await cb.before_call()
      try:
          result = await call()
      except Exception:
          await cb.record_failure()
          raise
      await cb.record_success()

    Behavior:
      - CLOSED: normal operation , consecutive failures increment fail_count.
      - OPEN: before_call() raises CircuitOpenError until recovery_timeout has passed.
      - HALF_OPEN: lets `max_half_open_calls` calls through ; enough successes close
        the circuit , any failure opens it again.
    """
    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_success_threshold: int = 1,
        max_half_open_calls: int = 1,
    ):
        self.name = name
        self.failure_threshold = max(1, int(failure_threshold))
        self.recovery_timeout = float(recovery_timeout)
        self.half_open_success_threshold = max(1, int(half_open_success_threshold))
        self.max_half_open_calls = max(1, int(max_half_open_calls))

        self._state = CLOSED
        self._fail_count = 0
        self._opened_at: Optional[float] = None
        self._half_open_success_count = 0
        self._half_open_in_flight = 0

        self._lock = asyncio.Lock()

    @property
    def state(self) -> str:
        return self._state

    def _maybe_transition(self):
        # called under lock before allowing calls
        if self._state == OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = HALF_OPEN
                self._half_open_success_count = 0
                self._half_open_in_flight = 0

    def _open(self):
        self._state = OPEN
        self._opened_at = time.monotonic()
        self._fail_count = 0
        self._half_open_success_count = 0
        self._half_open_in_flight = 0

    async def before_call(self):
        async with self._lock:
            self._maybe_transition()
            if self._state == OPEN:
                raise CircuitOpenError(f"circuit {self.name} is open")
            if self._state == HALF_OPEN:
                if self._half_open_in_flight >= self.max_half_open_calls:
                    raise CircuitOpenError(f"circuit {self.name} is half-open and trial calls are saturated")
                self._half_open_in_flight += 1

    async def record_success(self):
        async with self._lock:
            if self._state == HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)
                self._half_open_success_count += 1
                if self._half_open_success_count >= self.half_open_success_threshold:
                    self.reset()
            else:
                self._fail_count = 0

    async def record_failure(self):
        async with self._lock:
            if self._state == HALF_OPEN:
                # any failure while probing re-opens
                self._open()
            elif self._state == CLOSED:
                self._fail_count += 1
                if self._fail_count >= self.failure_threshold:
                    self._open()

    def reset(self):
        self._state = CLOSED
        self._fail_count = 0
        self._opened_at = None
        self._half_open_success_count = 0
        self._half_open_in_flight = 0

    async def release_trial(self):
        """Hand back a half-open slot taken by before_call when the call never happened."""
        async with self._lock:
            if self._state == HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)
