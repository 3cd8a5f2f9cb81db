# -*- coding: utf-8 -*-
"""
External collaborators of the provenance ledgers

The ledgers never read wall-clock time or move value themselves. They call
two narrow interfaces:

- LedgerClock: the current ledger time, a non-decreasing integer
- ValueTransferSink: accepts (amount, sender, recipient) fee intents

ManualClock and RecordingTransferSink are the in-process implementations
used when the ledgers run standalone and in tests.

Example:
    >>> clock = ManualClock()
    >>> clock.advance(10)
    10
    >>> sink = RecordingTransferSink()
    >>> sink.transfer(500, "ST1FARMER", "ST2AUTH")
    >>> sink.intents[0].amount
    500
"""

from __future__ import annotations

import logging
import threading
from typing import List, Protocol, runtime_checkable

from agritrace.ledger.models import FeeIntent

logger = logging.getLogger(__name__)


@runtime_checkable
class LedgerClock(Protocol):
    """Source of the current ledger time."""

    def now(self) -> int:
        """Return the current ledger time."""
        ...


@runtime_checkable
class ValueTransferSink(Protocol):
    """Consumer of fee intents.

    ``transfer`` either returns normally or raises; a raised exception makes
    the calling ledger operation fail without committing anything.
    """

    def transfer(self, amount: int, sender: str, recipient: str) -> None:
        """Move ``amount`` from ``sender`` to ``recipient``."""
        ...


class ManualClock:
    """LedgerClock driven explicitly by the host.

    Time never moves backwards: ``set`` rejects earlier values.
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError(f"Ledger time cannot be negative: {start}")
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        return self._now

    def advance(self, ticks: int = 1) -> int:
        """Move time forward by ``ticks`` and return the new time."""
        if ticks < 0:
            raise ValueError(f"Cannot advance ledger time by {ticks}")
        with self._lock:
            self._now += ticks
            return self._now

    def set(self, value: int) -> None:
        """Jump to ``value``, which must not be in the past."""
        with self._lock:
            if value < self._now:
                raise ValueError(
                    f"Ledger time is non-decreasing: {value} < {self._now}"
                )
            self._now = value


class RecordingTransferSink:
    """ValueTransferSink that records every intent it accepts.

    Attributes:
        intents: Accepted fee intents in arrival order.
    """

    def __init__(self) -> None:
        self.intents: List[FeeIntent] = []

    def transfer(self, amount: int, sender: str, recipient: str) -> None:
        self.intents.append(
            FeeIntent(amount=amount, sender=sender, recipient=recipient)
        )
        logger.debug(
            "Fee intent recorded: %d %s -> %s", amount, sender, recipient,
        )

    @property
    def total(self) -> int:
        """Sum of all recorded fee amounts."""
        return sum(i.amount for i in self.intents)

    def clear(self) -> None:
        self.intents.clear()


__all__ = [
    "LedgerClock",
    "ValueTransferSink",
    "ManualClock",
    "RecordingTransferSink",
]
