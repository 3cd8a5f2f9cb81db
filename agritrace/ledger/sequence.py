# -*- coding: utf-8 -*-
"""
Sequence Allocator - dense record ids with a capacity ceiling.

Ids start at 0 and grow by one per allocation; an id is never reused. The
number of records created so far is therefore equal to the next id.
"""

from __future__ import annotations

from agritrace.exceptions import CapacityExceeded


class SequenceAllocator:
    """Monotonic id counter for one record type of one ledger."""

    def __init__(self, ledger: str) -> None:
        self.ledger = ledger
        self._next_id = 0

    @property
    def next_id(self) -> int:
        """Id the next ``allocate`` call will return."""
        return self._next_id

    @property
    def count(self) -> int:
        """Number of ids allocated so far."""
        return self._next_id

    def ensure_capacity(self, limit: int) -> None:
        """Raise CapacityExceeded unless one more id fits below ``limit``."""
        if self._next_id >= limit:
            raise CapacityExceeded(
                message=f"Capacity of {limit} records reached",
                ledger=self.ledger,
                limit=limit,
                context={"count": self._next_id},
            )

    def allocate(self) -> int:
        """Return the next id and advance the counter."""
        allocated = self._next_id
        self._next_id += 1
        return allocated


__all__ = ["SequenceAllocator"]
