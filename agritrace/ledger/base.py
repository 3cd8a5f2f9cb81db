# -*- coding: utf-8 -*-
"""
Shared plumbing of the three provenance ledgers.

LedgerEngine wires a ledger to its collaborators (configuration, clock,
value-transfer sink) and owns the pieces every ledger needs: an
AuthorityGate, a SequenceAllocator, a HistoryLog and the writer lock that
serializes mutations.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from agritrace.exceptions import FeeTransferFailed, InvalidInput
from agritrace.ledger import metrics
from agritrace.ledger.authority import AuthorityGate
from agritrace.ledger.config import LedgerConfig, get_config
from agritrace.ledger.history import HistoryLog
from agritrace.ledger.interfaces import (
    LedgerClock,
    ManualClock,
    RecordingTransferSink,
    ValueTransferSink,
)
from agritrace.ledger.sequence import SequenceAllocator

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class LedgerEngine:
    """Base class of BatchRegistry, ShipmentLedger and TransferLedger.

    Subclasses set ``name`` and implement ``_initial_fee`` and
    ``_initial_capacity`` from the configuration.

    Attributes:
        config: Active LedgerConfig.
        clock: Source of ledger time.
        sink: Receiver of fee intents.
        gate: Authority, fee and capacity of this ledger.
        history: Append-only history of this ledger.
    """

    name = "ledger"

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        clock: Optional[LedgerClock] = None,
        sink: Optional[ValueTransferSink] = None,
    ) -> None:
        self.config = config or get_config()
        self.clock = clock if clock is not None else ManualClock()
        self.sink = sink if sink is not None else RecordingTransferSink()
        self.gate = AuthorityGate(
            self.name,
            fee=self._initial_fee(self.config),
            capacity=self._initial_capacity(self.config),
        )
        self.history = HistoryLog(self.name)
        self._ids = SequenceAllocator(self.name)
        self._lock = threading.RLock()

    @staticmethod
    def _initial_fee(config: LedgerConfig) -> int:
        raise NotImplementedError

    @staticmethod
    def _initial_capacity(config: LedgerConfig) -> int:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    @property
    def authority(self) -> Optional[str]:
        return self.gate.authority

    @property
    def fee(self) -> int:
        return self.gate.fee

    @property
    def capacity(self) -> int:
        return self.gate.capacity

    def set_authority(self, principal: str) -> bool:
        """Record the governing authority of this ledger (once only)."""
        with self._lock:
            self.gate.set_authority(principal)
        return True

    def set_fee(self, fee: int) -> bool:
        """Change the creation fee of this ledger."""
        with self._lock:
            self.gate.set_fee(fee)
        return True

    def set_capacity(self, capacity: int) -> bool:
        """Change the record capacity of this ledger."""
        with self._lock:
            self.gate.set_capacity(capacity)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return self.clock.now()

    def _build_record(self, model: Type[RecordT], **fields: Any) -> RecordT:
        """Construct a record before anything is charged or allocated.

        Raises:
            InvalidInput: Naming the first field the model rejects.
        """
        try:
            return model(**fields)
        except ValidationError as exc:
            error = exc.errors()[0]
            field = str(error["loc"][0]) if error["loc"] else model.__name__
            raise InvalidInput(
                message=f"{field}: {error['msg']}",
                field=field,
                ledger=self.name,
                context={"record": model.__name__},
            ) from exc

    def _collect_fee(self, caller: str, authority: str) -> None:
        """Hand the creation fee to the sink before anything is committed.

        Raises:
            FeeTransferFailed: If the sink raises.
        """
        fee = self.gate.fee
        try:
            self.sink.transfer(fee, caller, authority)
        except Exception as exc:
            metrics.record_fee_intent(
                self.name, fee, False, self.config.enable_metrics,
            )
            logger.warning(
                "%s: fee transfer of %d from %s failed: %s",
                self.name, fee, caller, exc,
            )
            raise FeeTransferFailed(
                message=f"Fee transfer of {fee} from {caller} failed",
                ledger=self.name,
                context={"amount": fee, "sender": caller,
                         "recipient": authority},
                cause=exc,
            ) from exc
        metrics.record_fee_intent(
            self.name, fee, True, self.config.enable_metrics,
        )

    def _record_count_changed(self) -> None:
        metrics.update_record_count(
            self.name, self._ids.count, self.config.enable_metrics,
        )


__all__ = ["LedgerEngine"]
