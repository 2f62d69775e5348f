from __future__ import annotations

from sieve.app.errors import SieveError


class CircuitOpenError(SieveError):
    def __init__(self, key: str, retry_after_s: float) -> None:
        super().__init__(
            f"Circuit open for '{key}'; retry after {retry_after_s:.1f}s"
        )
        self.key = key
        self.retry_after_s = retry_after_s


class RetryExhaustedError(SieveError):
    def __init__(self, key: str, attempts: int) -> None:
        super().__init__(f"Operation '{key}' failed after {attempts} attempts")
        self.key = key
        self.attempts = attempts
