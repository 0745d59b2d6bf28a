"""Client-side countdown used to auto-complete a dive when time runs out.

The countdown is cooperative: whoever drives it calls :meth:`CountdownTimer.tick`
with the elapsed time. The server only stores the remaining seconds the client
reports and never enforces the deadline itself.
"""

from __future__ import annotations

from typing import Callable


class CountdownTimer:
    """Seconds-based countdown that fires ``on_expire`` exactly once."""

    def __init__(
        self,
        seconds: float,
        *,
        on_expire: Callable[[], None] | None = None,
    ) -> None:
        if seconds < 0:
            raise ValueError("Countdown duration must not be negative.")
        self._remaining = float(seconds)
        self._on_expire = on_expire
        self._cancelled = False
        self._fired = False

    @property
    def remaining(self) -> float:
        return self._remaining

    @property
    def remaining_seconds(self) -> int:
        """Whole seconds left, as reported to the server."""

        return int(self._remaining)

    @property
    def expired(self) -> bool:
        return self._remaining <= 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def tick(self, elapsed: float = 1.0) -> float:
        """Advance the countdown by ``elapsed`` seconds and return what is left."""

        if elapsed < 0:
            raise ValueError("Elapsed time must not be negative.")
        if self._cancelled or self._fired:
            return self._remaining

        self._remaining = max(0.0, self._remaining - elapsed)
        if self._remaining <= 0:
            self._fired = True
            if self._on_expire is not None:
                self._on_expire()
        return self._remaining

    def cancel(self) -> None:
        """Stop the countdown without firing the expiry callback."""

        self._cancelled = True


__all__ = ["CountdownTimer"]
