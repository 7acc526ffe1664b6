"""
Single-slot replaceable object channel

Hands the most recent value from one producer thread to one consumer thread.

Modes:
- overwrite (sync=False): send() replaces any value the consumer has not
  taken yet. The replaced value is dropped and never delivered.
- sync (sync=True): send() waits until the consumer has taken the previous
  value, so every sent value is delivered in order.

receive() always blocks until a value is available. None is a valid value.
"""

import threading
from typing import Any


class SlotChannel:
    """Mutex-protected single value handoff between two threads."""

    def __init__(self, sync: bool = False) -> None:
        self._sync = sync
        self._condition = threading.Condition(threading.Lock())
        self._value: Any = None
        self._present = False

    @property
    def sync(self) -> bool:
        return self._sync

    def send(self, value: Any) -> None:
        """Store value as the pending item (waits for an empty slot in sync mode)."""
        with self._condition:
            if self._sync:
                while self._present:
                    self._condition.wait()

            self._value = value
            self._present = True
            self._condition.notify_all()

    def receive(self) -> Any:
        """Wait for a value, take it out of the slot and return it."""
        with self._condition:
            while not self._present:
                self._condition.wait()

            value = self._value
            self._value = None
            self._present = False
            self._condition.notify_all()

        return value

    def is_present(self) -> bool:
        """
        Whether a value is waiting.

        Advisory only: the answer may be stale as soon as it is returned.
        """
        with self._condition:
            return self._present
