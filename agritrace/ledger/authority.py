# -*- coding: utf-8 -*-
"""
Authority Gate - single-assignment governing principal of one ledger

Every ledger owns one AuthorityGate. The gate records the governing
authority exactly once, receives every fee the ledger collects, and guards
changes to the ledger's fee and capacity: neither can change until an
authority exists.

Example:
    >>> gate = AuthorityGate("batch_registry", fee=500, capacity=5000)
    >>> gate.set_authority("ST2AUTH")
    >>> gate.set_fee(750)
    >>> gate.fee
    750
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from agritrace.exceptions import AuthorityAlreadySet, AuthorityNotSet, InvalidInput

logger = logging.getLogger(__name__)


class AuthorityGate:
    """Governing authority, fee and capacity of a single ledger.

    Attributes:
        ledger: Name of the owning ledger (used in errors and logs).
        fee: Fee charged by the ledger's creation operation.
        capacity: Maximum number of records the ledger may create.
    """

    def __init__(self, ledger: str, fee: int, capacity: int) -> None:
        self.ledger = ledger
        self.fee = fee
        self.capacity = capacity
        self._authority: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def authority(self) -> Optional[str]:
        """The recorded authority, or None before ``set_authority``."""
        return self._authority

    def set_authority(self, principal: str) -> None:
        """Record the governing authority.

        Raises:
            AuthorityAlreadySet: If an authority is already recorded.
        """
        with self._lock:
            if self._authority is not None:
                logger.warning(
                    "%s: rejected authority change to %s (already %s)",
                    self.ledger, principal, self._authority,
                )
                raise AuthorityAlreadySet(
                    message="Authority is already set",
                    ledger=self.ledger,
                    context={"authority": self._authority},
                )
            self._authority = principal
        logger.info("%s: authority set to %s", self.ledger, principal)

    def require_authority(self) -> str:
        """Return the authority or raise AuthorityNotSet."""
        if self._authority is None:
            raise AuthorityNotSet(
                message="No authority has been set for this ledger",
                ledger=self.ledger,
            )
        return self._authority

    def set_fee(self, fee: int) -> None:
        """Change the ledger fee.

        Raises:
            AuthorityNotSet: Before an authority is recorded.
            InvalidInput: If ``fee`` is negative.
        """
        self.require_authority()
        if fee < 0:
            raise InvalidInput(
                message=f"Fee cannot be negative, got {fee}",
                field="fee",
                ledger=self.ledger,
                context={"value": fee},
            )
        with self._lock:
            previous, self.fee = self.fee, fee
        logger.info("%s: fee changed %d -> %d", self.ledger, previous, fee)

    def set_capacity(self, capacity: int) -> None:
        """Change the ledger capacity.

        Raises:
            AuthorityNotSet: Before an authority is recorded.
            InvalidInput: If ``capacity`` is not positive.
        """
        self.require_authority()
        if capacity <= 0:
            raise InvalidInput(
                message=f"Capacity must be positive, got {capacity}",
                field="capacity",
                ledger=self.ledger,
                context={"value": capacity},
            )
        with self._lock:
            previous, self.capacity = self.capacity, capacity
        logger.info(
            "%s: capacity changed %d -> %d", self.ledger, previous, capacity,
        )


__all__ = ["AuthorityGate"]
