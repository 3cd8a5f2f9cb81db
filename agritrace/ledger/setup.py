# -*- coding: utf-8 -*-
"""
Provenance Ledger Service Facade - agritrace

Provides the main service class and the process-wide accessor:
- ProvenanceLedgerService: composes the batch registry, shipment ledger and
  transfer ledger over one clock and one value-transfer sink
- get_ledger_service(): return the shared service, creating it if needed
- reset_ledger_service(): drop the shared service (test teardown)

Mutating operations return an OperationResult instead of raising, so a
host can branch on ``result.ok`` and ``result.error_code``. Queries
delegate straight to the owning ledger.

Example:
    >>> from agritrace.ledger.setup import ProvenanceLedgerService
    >>> service = ProvenanceLedgerService()
    >>> service.bootstrap_authority("ST2AUTH").ok
    True
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import ExitStack
from typing import Any, Callable, List, Optional

from agritrace.exceptions import AuthorityAlreadySet, LedgerException, NotFound
from agritrace.ledger import metrics
from agritrace.ledger.batch_registry import BatchRegistry
from agritrace.ledger.config import LedgerConfig, get_config
from agritrace.ledger.interfaces import (
    LedgerClock,
    ManualClock,
    RecordingTransferSink,
    ValueTransferSink,
)
from agritrace.ledger.models import (
    Batch,
    BatchTrace,
    LedgerStatistics,
    OperationResult,
    Shipment,
    ShipmentStatus,
    Transfer,
    TransferStatus,
)
from agritrace.ledger.shipment_ledger import ShipmentLedger
from agritrace.ledger.transfer_ledger import TransferLedger

logger = logging.getLogger(__name__)


class ProvenanceLedgerService:
    """Facade composing the three provenance ledgers.

    Attributes:
        config: LedgerConfig instance.
        clock: Ledger clock shared by all ledgers.
        sink: Value-transfer sink shared by all ledgers.
        batch_registry: BatchRegistry instance.
        shipment_ledger: ShipmentLedger instance.
        transfer_ledger: TransferLedger instance.
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        clock: Optional[LedgerClock] = None,
        sink: Optional[ValueTransferSink] = None,
    ) -> None:
        """Initialize the service with all three ledgers.

        Args:
            config: LedgerConfig instance. If None, loads from env.
            clock: Ledger clock. Defaults to a ManualClock at time 0.
            sink: Value-transfer sink. Defaults to a RecordingTransferSink.
        """
        self.config = config or get_config()
        self.clock = clock if clock is not None else ManualClock()
        self.sink = sink if sink is not None else RecordingTransferSink()

        logging.getLogger("agritrace").setLevel(
            self.config.log_level.upper()
        )

        self.batch_registry = BatchRegistry(self.config, self.clock, self.sink)
        self.shipment_ledger = ShipmentLedger(self.config, self.clock, self.sink)
        self.transfer_ledger = TransferLedger(self.config, self.clock, self.sink)

        logger.info("ProvenanceLedgerService initialized with all 3 ledgers")

    @property
    def ledgers(self) -> List[Any]:
        return [self.batch_registry, self.shipment_ledger, self.transfer_ledger]

    def _run(
        self,
        ledger: str,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> OperationResult:
        """Invoke a ledger operation and fold its outcome into a result."""
        start_time = time.monotonic()
        try:
            value = func(*args, **kwargs)
        except LedgerException as exc:
            metrics.record_operation(
                ledger, operation, exc.error_code,
                time.monotonic() - start_time, self.config.enable_metrics,
            )
            logger.debug("%s.%s failed: %s", ledger, operation, exc)
            return OperationResult.failure(exc)
        metrics.record_operation(
            ledger, operation, "success", time.monotonic() - start_time,
            self.config.enable_metrics,
        )
        return OperationResult.success(value)

    # =========================================================================
    # Governance
    # =========================================================================

    def bootstrap_authority(self, principal: str) -> OperationResult:
        """Set ``principal`` as the authority of all three ledgers.

        Either all three ledgers take the authority or none does. The writer
        locks of all three ledgers are held, always in ``ledgers`` order,
        from the check until the last assignment.
        """
        def _bootstrap() -> bool:
            with ExitStack() as stack:
                for ledger in self.ledgers:
                    stack.enter_context(ledger._lock)
                for ledger in self.ledgers:
                    if ledger.authority is not None:
                        raise AuthorityAlreadySet(
                            message="Authority is already set",
                            ledger=ledger.name,
                            context={"authority": ledger.authority},
                        )
                for ledger in self.ledgers:
                    ledger.set_authority(principal)
            return True

        return self._run("service", "bootstrap_authority", _bootstrap)

    def set_authority(self, ledger: str, principal: str) -> OperationResult:
        return self._run(
            ledger, "set_authority",
            lambda: self._ledger(ledger).set_authority(principal),
        )

    def set_fee(self, ledger: str, fee: int) -> OperationResult:
        return self._run(
            ledger, "set_fee", lambda: self._ledger(ledger).set_fee(fee),
        )

    def set_capacity(self, ledger: str, capacity: int) -> OperationResult:
        return self._run(
            ledger, "set_capacity",
            lambda: self._ledger(ledger).set_capacity(capacity),
        )

    def _ledger(self, name: str) -> Any:
        for ledger in self.ledgers:
            if ledger.name == name:
                return ledger
        raise NotFound(
            message=f"Unknown ledger {name!r}",
            ledger="service",
            record_type="ledger",
            record_id=name,
        )

    # =========================================================================
    # Batch Registry Delegation
    # =========================================================================

    def register_batch(self, caller: str, **fields: Any) -> OperationResult:
        """Register a batch. Delegates to BatchRegistry.

        Args:
            caller: Registering principal.
            **fields: Keyword arguments of ``BatchRegistry.register_batch``.

        Returns:
            OperationResult carrying the new batch id.
        """
        return self._run(
            BatchRegistry.name, "register_batch",
            self.batch_registry.register_batch, caller, **fields,
        )

    def certify_batch(
        self, caller: str, batch_id: int, cert_hash: str, expiry: int,
    ) -> OperationResult:
        return self._run(
            BatchRegistry.name, "certify_batch",
            self.batch_registry.certify_batch, caller, batch_id, cert_hash, expiry,
        )

    def revoke_certification(self, caller: str, batch_id: int) -> OperationResult:
        return self._run(
            BatchRegistry.name, "revoke_certification",
            self.batch_registry.revoke_certification, caller, batch_id,
        )

    def update_batch(
        self, caller: str, batch_id: int, title: str, description: str,
    ) -> OperationResult:
        return self._run(
            BatchRegistry.name, "update_batch",
            self.batch_registry.update_batch, caller, batch_id, title, description,
        )

    def transfer_ownership(
        self, caller: str, batch_id: int, new_owner: str,
    ) -> OperationResult:
        return self._run(
            BatchRegistry.name, "transfer_ownership",
            self.batch_registry.transfer_ownership, caller, batch_id, new_owner,
        )

    def deactivate_batch(self, caller: str, batch_id: int) -> OperationResult:
        return self._run(
            BatchRegistry.name, "deactivate_batch",
            self.batch_registry.deactivate_batch, caller, batch_id,
        )

    def check_certification(self, batch_id: int) -> OperationResult:
        """Check a batch certification is in force. Delegates to BatchRegistry."""
        return self._run(
            BatchRegistry.name, "check_certification",
            self.batch_registry.check_certification, batch_id,
        )

    def get_batch(self, batch_id: int) -> Optional[Batch]:
        return self.batch_registry.get_batch(batch_id)

    def list_batches(self, **kwargs: Any) -> List[Batch]:
        return self.batch_registry.list_batches(**kwargs)

    # =========================================================================
    # Shipment Ledger Delegation
    # =========================================================================

    def initiate_shipment(
        self,
        caller: str,
        batch_id: int,
        destination: str,
        start_timestamp: int,
        geo_start: str,
    ) -> OperationResult:
        """Open a shipment. Delegates to ShipmentLedger.

        Returns:
            OperationResult carrying the new shipment id.
        """
        return self._run(
            ShipmentLedger.name, "initiate_shipment",
            self.shipment_ledger.initiate_shipment,
            caller, batch_id, destination, start_timestamp, geo_start,
        )

    def add_approver(
        self, caller: str, shipment_id: int, approver: str,
    ) -> OperationResult:
        return self._run(
            ShipmentLedger.name, "add_approver",
            self.shipment_ledger.add_approver, caller, shipment_id, approver,
        )

    def approve_shipment(self, caller: str, shipment_id: int) -> OperationResult:
        """Approve a shipment; ``value`` is True once quorum is reached."""
        return self._run(
            ShipmentLedger.name, "approve_shipment",
            self.shipment_ledger.approve_shipment, caller, shipment_id,
        )

    def update_shipment_status(
        self, caller: str, shipment_id: int, new_status: str, geo_update: str,
    ) -> OperationResult:
        return self._run(
            ShipmentLedger.name, "update_shipment_status",
            self.shipment_ledger.update_shipment_status,
            caller, shipment_id, new_status, geo_update,
        )

    def complete_shipment(self, caller: str, shipment_id: int) -> OperationResult:
        return self._run(
            ShipmentLedger.name, "complete_shipment",
            self.shipment_ledger.complete_shipment, caller, shipment_id,
        )

    def dispute_shipment(
        self, caller: str, shipment_id: int, reason: str,
    ) -> OperationResult:
        return self._run(
            ShipmentLedger.name, "dispute_shipment",
            self.shipment_ledger.dispute_shipment, caller, shipment_id, reason,
        )

    def get_shipment(self, shipment_id: int) -> Optional[Shipment]:
        return self.shipment_ledger.get_shipment(shipment_id)

    def list_shipments(self, **kwargs: Any) -> List[Shipment]:
        return self.shipment_ledger.list_shipments(**kwargs)

    # =========================================================================
    # Transfer Ledger Delegation
    # =========================================================================

    def initiate_transfer(
        self,
        caller: str,
        batch_id: int,
        new_owner: str,
        timestamp: int,
        escrow_amount: int,
    ) -> OperationResult:
        """Propose an ownership transfer. Delegates to TransferLedger.

        Returns:
            OperationResult carrying the new transfer id.
        """
        return self._run(
            TransferLedger.name, "initiate_transfer",
            self.transfer_ledger.initiate_transfer,
            caller, batch_id, new_owner, timestamp, escrow_amount,
        )

    def accept_transfer(self, caller: str, transfer_id: int) -> OperationResult:
        return self._run(
            TransferLedger.name, "accept_transfer",
            self.transfer_ledger.accept_transfer, caller, transfer_id,
        )

    def reject_transfer(
        self, caller: str, transfer_id: int, reason: str,
    ) -> OperationResult:
        return self._run(
            TransferLedger.name, "reject_transfer",
            self.transfer_ledger.reject_transfer, caller, transfer_id, reason,
        )

    def complete_transfer(self, caller: str, transfer_id: int) -> OperationResult:
        return self._run(
            TransferLedger.name, "complete_transfer",
            self.transfer_ledger.complete_transfer, caller, transfer_id,
        )

    def cancel_transfer(self, caller: str, transfer_id: int) -> OperationResult:
        return self._run(
            TransferLedger.name, "cancel_transfer",
            self.transfer_ledger.cancel_transfer, caller, transfer_id,
        )

    def get_transfer(self, transfer_id: int) -> Optional[Transfer]:
        return self.transfer_ledger.get_transfer(transfer_id)

    def list_transfers(self, **kwargs: Any) -> List[Transfer]:
        return self.transfer_ledger.list_transfers(**kwargs)

    # =========================================================================
    # Cross-ledger views
    # =========================================================================

    def trace_batch(self, batch_id: int) -> BatchTrace:
        """Collect what every ledger holds for ``batch_id``.

        Shipments and transfers reference batches by plain id, so they are
        reported even when the registry has no such batch.
        """
        return BatchTrace(
            batch_id=batch_id,
            batch=self.batch_registry.get_batch(batch_id),
            certification=self.batch_registry.get_certification(batch_id),
            owner_history=self.batch_registry.get_owner_history(batch_id),
            shipments=self.shipment_ledger.list_shipments(
                batch_id=batch_id, limit=self.shipment_ledger.shipment_count(),
            ),
            transfers=self.transfer_ledger.transfers_for_batch(batch_id),
        )

    def get_statistics(self) -> LedgerStatistics:
        """Get aggregated statistics across the three ledgers."""
        batches = self.batch_registry.list_batches(
            limit=self.batch_registry.batch_count(),
        )
        shipments = self.shipment_ledger.list_shipments(
            limit=self.shipment_ledger.shipment_count(),
        )
        transfers = self.transfer_ledger.list_transfers(
            limit=self.transfer_ledger.transfer_count(),
        )
        escrows = self.transfer_ledger.open_escrows()
        intents = getattr(self.sink, "intents", [])

        return LedgerStatistics(
            total_batches=len(batches),
            certified_batches=sum(1 for b in batches if b.certified),
            inactive_batches=sum(1 for b in batches if not b.active),
            total_shipments=len(shipments),
            shipments_by_status={
                status.value: sum(1 for s in shipments if s.status == status)
                for status in ShipmentStatus
            },
            total_transfers=len(transfers),
            transfers_by_status={
                status.value: sum(1 for t in transfers if t.status == status)
                for status in TransferStatus
            },
            open_escrows=len(escrows),
            escrow_locked_total=sum(e.amount for e in escrows),
            fee_intents=len(intents),
            fee_total=sum(i.amount for i in intents),
        )


# =============================================================================
# Process-wide accessor
# =============================================================================

_service_instance: Optional[ProvenanceLedgerService] = None
_service_lock = threading.Lock()


def get_ledger_service() -> ProvenanceLedgerService:
    """Return the shared ProvenanceLedgerService, creating it if needed."""
    global _service_instance
    if _service_instance is None:
        with _service_lock:
            if _service_instance is None:
                _service_instance = ProvenanceLedgerService()
    return _service_instance


def reset_ledger_service() -> None:
    """Drop the shared service (primarily for test teardown)."""
    global _service_instance
    with _service_lock:
        _service_instance = None


__all__ = [
    "ProvenanceLedgerService",
    "get_ledger_service",
    "reset_ledger_service",
]
