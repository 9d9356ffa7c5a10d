"""Ambient call context.

The hosting environment supplies two values per call: who is calling and
what time/height it is. Every authorization and deadline check is expressed
in terms of these two values plus stored state.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CallContext:
    """The caller account and current time/height for one call."""
    caller: str
    now: int

    def __post_init__(self) -> None:
        if not self.caller or not self.caller.strip():
            raise ValueError("Caller account cannot be empty")
        if self.now < 0:
            raise ValueError(f"Current height must be >= 0, got {self.now}")


class HeightClock:
    """Monotonic height source.

    Used where no explicit height is supplied. ``advance`` moves forward
    only. ``check`` vets an externally supplied height without recording
    it; ``observe`` vets and records it. Callers record a height only once
    the call that carried it has committed, so a rejected call leaves the
    clock where it was.
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("Clock start must be >= 0")
        self._height = start
        self._lock = threading.Lock()

    @property
    def height(self) -> int:
        return self._height

    def advance(self, blocks: int = 1) -> int:
        if blocks < 0:
            raise ValueError("Clock cannot move backwards")
        with self._lock:
            self._height += blocks
            return self._height

    def check(self, height: Optional[int] = None) -> int:
        """Return the height for a call without recording it."""
        with self._lock:
            return self._resolve(height)

    def observe(self, height: Optional[int] = None) -> int:
        """Return the height for a call, recording it if supplied."""
        with self._lock:
            height = self._resolve(height)
            self._height = height
            return height

    def context_for(self, caller: str, height: Optional[int] = None) -> CallContext:
        """Context for a call at ``height``. Nothing is recorded."""
        return CallContext(caller=caller, now=self.check(height))

    def _resolve(self, height: Optional[int]) -> int:
        if height is None:
            return self._height
        if height < self._height:
            raise ValueError(
                f"Height {height} is earlier than last observed "
                f"height {self._height}"
            )
        return height
