# -*- coding: utf-8 -*-
"""
Shipment Ledger Engine - agritrace provenance ledgers

Tracks shipments of batches between an origin and a destination principal
and gates their departure behind a multi-party approval quorum.

Status model::

    active --quorum of approvals--> in-transit --complete (destination)--> delivered
    any    --dispute (origin or destination)--> disputed
    any    --update_shipment_status (origin or destination)--> any

Approvals are kept per (shipment, approver). The origin may pre-register
approver slots; a slot counts toward the quorum only once its approver has
actually approved. Anyone may approve an active shipment, taking a fresh
slot if none was registered for them. A shipment has at most
``max_approvers_per_shipment`` slots.

Example:
    >>> ledger = ShipmentLedger()
    >>> ledger.set_authority("ST2AUTH")
    >>> sid = ledger.initiate_shipment("ST1ORIGIN", 1, "ST2DEST", 0, "45.5,-122.6")
    >>> ledger.approve_shipment("ST3X", sid)
    False
    >>> ledger.approve_shipment("ST4Y", sid)
    True
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Tuple

from agritrace.exceptions import (
    CapacityExceeded,
    DuplicateApproval,
    InvalidInput,
    InvalidState,
    NotFound,
    Unauthorized,
)
from agritrace.ledger import metrics
from agritrace.ledger.base import LedgerEngine
from agritrace.ledger.config import LedgerConfig
from agritrace.ledger.history import HistoryEntry
from agritrace.ledger.models import (
    Approval,
    HistoryAction,
    Shipment,
    ShipmentStatus,
    ShipmentUpdate,
)
from agritrace.ledger.validation import (
    check_length,
    check_not_before,
    check_principal,
    check_range,
    check_text,
)

logger = logging.getLogger(__name__)


class ShipmentLedger(LedgerEngine):
    """Ledger of shipments and their approvals.

    Attributes:
        _shipments: In-memory shipment storage keyed by shipment_id.
        _approvals: Approval slots keyed by (shipment_id, approver).
        _idx_shipment_approvers: Approvers per shipment in slot order.
    """

    name = "shipment_ledger"

    def __init__(self, config=None, clock=None, sink=None) -> None:
        super().__init__(config=config, clock=clock, sink=sink)
        self._shipments: Dict[int, Shipment] = {}
        self._approvals: Dict[Tuple[int, str], Approval] = {}
        self._idx_shipment_approvers: Dict[int, List[str]] = {}
        logger.info("ShipmentLedger initialized")

    @staticmethod
    def _initial_fee(config: LedgerConfig) -> int:
        return config.shipment_fee

    @staticmethod
    def _initial_capacity(config: LedgerConfig) -> int:
        return config.max_shipments

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate_shipment(
        self,
        caller: str,
        batch_id: int,
        destination: str,
        start_timestamp: int,
        geo_start: str,
    ) -> int:
        """Open a shipment of ``batch_id`` from ``caller`` to ``destination``.

        Checks run in order: capacity, batch id, origin format, destination
        format, start time not in the past, geo-location length, origin
        differs from destination, authority. The shipment fee is then charged to
        the caller. ``batch_id`` is not looked up in the batch registry.

        Returns:
            The new shipment id.

        Raises:
            CapacityExceeded: If the ledger is full.
            InvalidInput: If a field is malformed.
            AuthorityNotSet: Before an authority is recorded.
            FeeTransferFailed: If the sink rejects the fee.
        """
        start_time = time.monotonic()
        prefix = self.config.principal_prefix

        with self._lock:
            self._ids.ensure_capacity(self.gate.capacity)
            check_range(batch_id, "batch_id", self.name, 0)
            check_principal(caller, prefix, "origin", self.name)
            check_principal(destination, prefix, "destination", self.name)
            now = self._now()
            check_not_before(start_timestamp, now, "start_timestamp", self.name)
            check_length(geo_start, "geo_start", self.name, 1, 100)
            if caller == destination:
                raise InvalidInput(
                    message="Origin and destination must differ",
                    field="destination",
                    ledger=self.name,
                    context={"principal": destination},
                )
            authority = self.gate.require_authority()

            shipment = self._build_record(
                Shipment,
                shipment_id=self._ids.next_id,
                batch_id=batch_id,
                origin=caller,
                destination=destination,
                start_timestamp=start_timestamp,
                geo_start=geo_start,
                created_at=now,
            )

            self._collect_fee(caller, authority)

            shipment_id = self._ids.allocate()
            self._shipments[shipment_id] = shipment
            self._idx_shipment_approvers[shipment_id] = []
            self.history.append(
                shipment_id, HistoryAction.SHIPMENT_INITIATED.value, caller,
                now, {"batch_id": batch_id, "destination": destination},
            )
            self._record_count_changed()

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Initiated shipment %d of batch %d: %s -> %s (%.1f ms)",
            shipment_id, batch_id, caller, destination, elapsed_ms,
        )
        return shipment_id

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def add_approver(self, caller: str, shipment_id: int, approver: str) -> bool:
        """Pre-register an approval slot for ``approver`` (origin only).

        Raises:
            NotFound: Unknown shipment.
            Unauthorized: ``caller`` is not the origin.
            DuplicateApproval: The approver already has a slot.
            CapacityExceeded: All approval slots are taken.
        """
        with self._lock:
            shipment = self._require_shipment(shipment_id)
            if caller != shipment.origin:
                logger.warning(
                    "add_approver on shipment %d by %s rejected (origin %s)",
                    shipment_id, caller, shipment.origin,
                )
                raise Unauthorized(
                    message="Only the origin may add approvers",
                    ledger=self.name,
                    caller=caller,
                    expected=shipment.origin,
                )
            if (shipment_id, approver) in self._approvals:
                raise DuplicateApproval(
                    message=f"{approver} already has an approval slot",
                    ledger=self.name,
                    context={"shipment_id": shipment_id, "approver": approver},
                )
            self._ensure_slot_available(shipment_id)

            now = self._now()
            self._store_approval(shipment_id, approver, given=False, now=now)
            self.history.append(
                shipment_id, HistoryAction.APPROVER_ADDED.value, caller, now,
                {"approver": approver},
            )

        logger.info("Shipment %d: approver %s added", shipment_id, approver)
        return True

    def approve_shipment(self, caller: str, shipment_id: int) -> bool:
        """Give ``caller``'s approval to an active shipment.

        Returns:
            True if this approval brought the given approvals up to the
            quorum and moved the shipment in transit, False otherwise.

        Raises:
            NotFound: Unknown shipment.
            InvalidState: The shipment is not active.
            DuplicateApproval: ``caller`` has already approved.
            CapacityExceeded: ``caller`` has no slot and none is left.
        """
        with self._lock:
            shipment = self._require_shipment(shipment_id)
            if shipment.status != ShipmentStatus.ACTIVE:
                raise InvalidState(
                    message=f"Shipment {shipment_id} is not active",
                    ledger=self.name,
                    current_state=shipment.status.value,
                    required_state=ShipmentStatus.ACTIVE.value,
                )
            now = self._now()
            approval = self._approvals.get((shipment_id, caller))
            if approval is not None and approval.given:
                raise DuplicateApproval(
                    message=f"{caller} has already approved",
                    ledger=self.name,
                    context={"shipment_id": shipment_id, "approver": caller},
                )
            if approval is None:
                self._ensure_slot_available(shipment_id)
                self._store_approval(shipment_id, caller, given=True, now=now)
            else:
                approval.given = True
                approval.recorded_at = now

            given = self._given_count(shipment_id)
            quorum_reached = given >= self.config.approval_quorum
            if quorum_reached:
                shipment.status = ShipmentStatus.IN_TRANSIT
            self.history.append(
                shipment_id, HistoryAction.SHIPMENT_APPROVED.value, caller, now,
                {"approvals_given": given, "quorum_reached": quorum_reached},
            )

        if quorum_reached:
            metrics.record_quorum_reached(self.config.enable_metrics)
            logger.info(
                "Shipment %d reached approval quorum (%d), now in transit",
                shipment_id, given,
            )
        else:
            logger.info(
                "Shipment %d approved by %s (%d/%d)",
                shipment_id, caller, given, self.config.approval_quorum,
            )
        return quorum_reached

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def update_shipment_status(
        self,
        caller: str,
        shipment_id: int,
        new_status: str,
        geo_update: str,
    ) -> bool:
        """Move a shipment to any status (origin or destination only).

        Raises:
            NotFound: Unknown shipment.
            Unauthorized: ``caller`` is neither origin nor destination.
            InvalidInput: Unknown status label or bad geo-location.
        """
        with self._lock:
            shipment = self._require_party(caller, shipment_id, "update")
            try:
                status = ShipmentStatus(new_status)
            except ValueError:
                raise InvalidInput(
                    message=f"Unknown shipment status {new_status!r}",
                    field="new_status",
                    ledger=self.name,
                    context={"value": new_status},
                ) from None
            check_length(geo_update, "geo_update", self.name, 1, 100)

            now = self._now()
            update = self._build_record(
                ShipmentUpdate,
                status=status,
                geo_update=geo_update,
                updated_at=now,
                updater=caller,
            )
            previous = shipment.status
            shipment.status = status
            shipment.last_update = update
            self.history.append(
                shipment_id, HistoryAction.SHIPMENT_STATUS_UPDATED.value,
                caller, now,
                {"from": previous.value, "to": status.value,
                 "geo_update": geo_update},
            )

        logger.info(
            "Shipment %d status %s -> %s by %s",
            shipment_id, previous.value, status.value, caller,
        )
        return True

    def complete_shipment(self, caller: str, shipment_id: int) -> bool:
        """Mark an in-transit shipment delivered (destination only).

        Raises:
            NotFound: Unknown shipment.
            Unauthorized: ``caller`` is not the destination.
            InvalidState: The shipment is not in transit.
        """
        with self._lock:
            shipment = self._require_shipment(shipment_id)
            if caller != shipment.destination:
                logger.warning(
                    "complete of shipment %d by %s rejected (destination %s)",
                    shipment_id, caller, shipment.destination,
                )
                raise Unauthorized(
                    message="Only the destination may complete a shipment",
                    ledger=self.name,
                    caller=caller,
                    expected=shipment.destination,
                )
            if shipment.status != ShipmentStatus.IN_TRANSIT:
                raise InvalidState(
                    message=f"Shipment {shipment_id} is not in transit",
                    ledger=self.name,
                    current_state=shipment.status.value,
                    required_state=ShipmentStatus.IN_TRANSIT.value,
                )

            now = self._now()
            update = self._build_record(
                ShipmentUpdate,
                status=ShipmentStatus.DELIVERED, updated_at=now, updater=caller,
            )
            shipment.status = ShipmentStatus.DELIVERED
            shipment.last_update = update
            self.history.append(
                shipment_id, HistoryAction.SHIPMENT_COMPLETED.value, caller, now,
            )

        logger.info("Shipment %d delivered to %s", shipment_id, caller)
        return True

    def dispute_shipment(self, caller: str, shipment_id: int, reason: str) -> bool:
        """Move a shipment to disputed from any status (origin or destination).

        Raises:
            NotFound: Unknown shipment.
            Unauthorized: ``caller`` is neither origin nor destination.
            InvalidInput: ``reason`` is not a string.
        """
        with self._lock:
            shipment = self._require_party(caller, shipment_id, "dispute")
            check_text(reason, "reason", self.name)
            now = self._now()
            update = self._build_record(
                ShipmentUpdate,
                status=ShipmentStatus.DISPUTED,
                reason=reason,
                updated_at=now,
                updater=caller,
            )
            previous = shipment.status
            shipment.status = ShipmentStatus.DISPUTED
            shipment.last_update = update
            self.history.append(
                shipment_id, HistoryAction.SHIPMENT_DISPUTED.value, caller, now,
                {"from": previous.value, "reason": reason},
            )

        logger.info("Shipment %d disputed by %s: %s", shipment_id, caller, reason)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def shipment_count(self) -> int:
        return self._ids.count

    def shipment_exists(self, shipment_id: int) -> bool:
        return shipment_id in self._shipments

    def get_shipment(self, shipment_id: int) -> Optional[Shipment]:
        """Get a shipment by id, or None if it does not exist."""
        return self._shipments.get(shipment_id)

    def approval_count(self, shipment_id: int) -> int:
        """Number of approval slots of a shipment, given or not."""
        return len(self._idx_shipment_approvers.get(shipment_id, []))

    def get_approvals(self, shipment_id: int) -> List[Approval]:
        """Approval slots of a shipment in the order they were taken."""
        return [
            self._approvals[(shipment_id, approver)]
            for approver in self._idx_shipment_approvers.get(shipment_id, [])
        ]

    def get_history(self, shipment_id: int) -> List[HistoryEntry]:
        """Return every history entry of a shipment, oldest first."""
        return self.history.entries(shipment_id)

    def list_shipments(
        self,
        batch_id: Optional[int] = None,
        status: Optional[str] = None,
        party: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Shipment]:
        """List shipments with optional filtering.

        Args:
            batch_id: Optional batch filter.
            status: Optional status label filter.
            party: Optional principal filter (origin or destination).
            limit: Maximum results.
            offset: Results to skip.

        Returns:
            List of Shipment instances in id order.
        """
        shipments = list(self._shipments.values())

        if batch_id is not None:
            shipments = [s for s in shipments if s.batch_id == batch_id]
        if status is not None:
            shipments = [s for s in shipments if s.status.value == status]
        if party is not None:
            shipments = [
                s for s in shipments
                if s.origin == party or s.destination == party
            ]

        return shipments[offset:offset + limit]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_shipment(self, shipment_id: int) -> Shipment:
        shipment = self._shipments.get(shipment_id)
        if shipment is None:
            raise NotFound(
                message=f"Shipment {shipment_id} not found",
                ledger=self.name,
                record_type="shipment",
                record_id=shipment_id,
            )
        return shipment

    def _require_party(self, caller: str, shipment_id: int, action: str) -> Shipment:
        shipment = self._require_shipment(shipment_id)
        if caller not in (shipment.origin, shipment.destination):
            logger.warning(
                "%s of shipment %d by %s rejected (not a party)",
                action, shipment_id, caller,
            )
            raise Unauthorized(
                message=f"Only origin or destination may {action} a shipment",
                ledger=self.name,
                caller=caller,
                expected="origin or destination",
            )
        return shipment

    def _ensure_slot_available(self, shipment_id: int) -> None:
        limit = self.config.max_approvers_per_shipment
        if self.approval_count(shipment_id) >= limit:
            raise CapacityExceeded(
                message=f"Shipment {shipment_id} has all {limit} approver slots taken",
                ledger=self.name,
                limit=limit,
                context={"shipment_id": shipment_id},
            )

    def _store_approval(
        self, shipment_id: int, approver: str, given: bool, now: int,
    ) -> None:
        self._approvals[(shipment_id, approver)] = self._build_record(
            Approval,
            shipment_id=shipment_id,
            approver=approver,
            given=given,
            recorded_at=now,
        )
        self._idx_shipment_approvers.setdefault(shipment_id, []).append(approver)

    def _given_count(self, shipment_id: int) -> int:
        return sum(1 for a in self.get_approvals(shipment_id) if a.given)


__all__ = ["ShipmentLedger"]
