# -*- coding: utf-8 -*-
"""
Transfer Ledger Engine - agritrace provenance ledgers

Records ownership transfer proposals for batches and holds the proposed
escrow amount while a proposal is open.

State machine::

    pending  --accept (to_owner)-->   accepted --complete (to_owner)--> completed
    pending  --reject (from_owner)--> rejected
    pending  --cancel (from_owner)--> cancelled

A transition attempted by the wrong party raises Unauthorized; one attempted
from the wrong state raises TransferInProgress. The escrow hold is created
together with the transfer and removed exactly once, by reject, complete or
cancel. History is kept under the batch id, so all transfers of a batch
share one trail.

Escrow and fee amounts record intent only; the sink decides what actually
moves.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Tuple

from agritrace.exceptions import (
    InvalidInput,
    NotFound,
    TransferInProgress,
    Unauthorized,
)
from agritrace.ledger import metrics
from agritrace.ledger.base import LedgerEngine
from agritrace.ledger.config import LedgerConfig
from agritrace.ledger.history import HistoryEntry
from agritrace.ledger.models import (
    Escrow,
    HistoryAction,
    Transfer,
    TransferStatus,
    TransferUpdate,
)
from agritrace.ledger.validation import (
    check_not_before,
    check_principal,
    check_range,
    check_text,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

# action -> (party allowed to act, required state, resulting state, history action)
TRANSITIONS: Dict[str, Tuple[str, TransferStatus, TransferStatus, HistoryAction]] = {
    "accept": (
        "to_owner", TransferStatus.PENDING, TransferStatus.ACCEPTED,
        HistoryAction.TRANSFER_ACCEPTED,
    ),
    "reject": (
        "from_owner", TransferStatus.PENDING, TransferStatus.REJECTED,
        HistoryAction.TRANSFER_REJECTED,
    ),
    "cancel": (
        "from_owner", TransferStatus.PENDING, TransferStatus.CANCELLED,
        HistoryAction.TRANSFER_CANCELLED,
    ),
    "complete": (
        "to_owner", TransferStatus.ACCEPTED, TransferStatus.COMPLETED,
        HistoryAction.TRANSFER_COMPLETED,
    ),
}

# Statuses under which an escrow hold exists.
ESCROW_STATUSES = frozenset({TransferStatus.PENDING, TransferStatus.ACCEPTED})


class TransferLedger(LedgerEngine):
    """Ledger of ownership transfer proposals and their escrow holds.

    Attributes:
        _transfers: In-memory transfer storage keyed by transfer_id.
        _escrows: Open escrow holds keyed by transfer_id.
        _idx_batch_transfers: Transfer ids per batch in creation order.
    """

    name = "transfer_ledger"

    def __init__(self, config=None, clock=None, sink=None) -> None:
        super().__init__(config=config, clock=clock, sink=sink)
        self._transfers: Dict[int, Transfer] = {}
        self._escrows: Dict[int, Escrow] = {}
        self._idx_batch_transfers: Dict[int, List[int]] = {}
        logger.info("TransferLedger initialized")

    @staticmethod
    def _initial_fee(config: LedgerConfig) -> int:
        return config.transfer_fee

    @staticmethod
    def _initial_capacity(config: LedgerConfig) -> int:
        return config.max_transfers

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate_transfer(
        self,
        caller: str,
        batch_id: int,
        new_owner: str,
        timestamp: int,
        escrow_amount: int,
    ) -> int:
        """Propose handing ``batch_id`` from ``caller`` to ``new_owner``.

        Checks run in order: capacity, batch id, new-owner format, timestamp
        not in the past, positive escrow, caller differs from the new owner,
        authority. The transfer fee is charged to the caller before the
        transfer and its escrow hold are stored.

        Returns:
            The new transfer id.

        Raises:
            CapacityExceeded: If the ledger is full.
            InvalidInput: If a field is malformed.
            AuthorityNotSet: Before an authority is recorded.
            FeeTransferFailed: If the sink rejects the fee.
        """
        start_time = time.monotonic()

        with self._lock:
            self._ids.ensure_capacity(self.gate.capacity)
            check_range(batch_id, "batch_id", self.name, 0)
            check_principal(
                new_owner, self.config.principal_prefix, "new_owner", self.name,
            )
            now = self._now()
            check_not_before(timestamp, now, "timestamp", self.name)
            check_range(escrow_amount, "escrow_amount", self.name, 0,
                        low_inclusive=False)
            if caller == new_owner:
                raise InvalidInput(
                    message="New owner must differ from the current owner",
                    field="new_owner",
                    ledger=self.name,
                    context={"principal": new_owner},
                )
            authority = self.gate.require_authority()

            transfer = self._build_record(
                Transfer,
                transfer_id=self._ids.next_id,
                batch_id=batch_id,
                from_owner=caller,
                to_owner=new_owner,
                timestamp=timestamp,
                escrow_amount=escrow_amount,
                created_at=now,
            )
            escrow = self._build_record(
                Escrow,
                transfer_id=self._ids.next_id,
                amount=escrow_amount,
                locked_by=caller,
                release_to=new_owner,
            )

            self._collect_fee(caller, authority)

            transfer_id = self._ids.allocate()
            self._transfers[transfer_id] = transfer
            self._escrows[transfer_id] = escrow
            self._idx_batch_transfers.setdefault(batch_id, []).append(transfer_id)
            self.history.append(
                batch_id, HistoryAction.TRANSFER_INITIATED.value, caller, now,
                {"transfer_id": transfer_id, "from": caller, "to": new_owner,
                 "escrow_amount": escrow_amount},
            )
            self._record_count_changed()

        metrics.record_escrow_locked(escrow_amount, self.config.enable_metrics)
        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Initiated transfer %d of batch %d: %s -> %s, escrow=%d (%.1f ms)",
            transfer_id, batch_id, caller, new_owner, escrow_amount, elapsed_ms,
        )
        return transfer_id

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def accept_transfer(self, caller: str, transfer_id: int) -> bool:
        """Accept a pending transfer (proposed new owner only)."""
        return self._transition("accept", caller, transfer_id)

    def reject_transfer(self, caller: str, transfer_id: int, reason: str) -> bool:
        """Reject a pending transfer and release its escrow (proposer only)."""
        return self._transition("reject", caller, transfer_id, reason=reason)

    def complete_transfer(self, caller: str, transfer_id: int) -> bool:
        """Complete an accepted transfer and release its escrow (new owner only)."""
        return self._transition("complete", caller, transfer_id)

    def cancel_transfer(self, caller: str, transfer_id: int) -> bool:
        """Withdraw a pending transfer and release its escrow (proposer only)."""
        return self._transition("cancel", caller, transfer_id)

    def _transition(
        self,
        action: str,
        caller: str,
        transfer_id: int,
        reason: Optional[str] = None,
    ) -> bool:
        """Apply one edge of the transfer state machine.

        Raises:
            NotFound: Unknown transfer.
            Unauthorized: ``caller`` is not the party the action requires.
            TransferInProgress: The transfer is not in the required state.
            InvalidInput: ``reason`` is given but is not a string.
        """
        party, required, target, history_action = TRANSITIONS[action]

        with self._lock:
            transfer = self._require_transfer(transfer_id)
            expected = getattr(transfer, party)
            if caller != expected:
                logger.warning(
                    "%s of transfer %d by %s rejected (%s is %s)",
                    action, transfer_id, caller, party, expected,
                )
                raise Unauthorized(
                    message=f"Only the {party} may {action} transfer {transfer_id}",
                    ledger=self.name,
                    caller=caller,
                    expected=expected,
                )
            if transfer.status != required:
                raise TransferInProgress(
                    message=(
                        f"Transfer {transfer_id} is {transfer.status.value}, "
                        f"{action} requires {required.value}"
                    ),
                    ledger=self.name,
                    current_state=transfer.status.value,
                    required_state=required.value,
                )

            if reason is not None:
                check_text(reason, "reason", self.name)
            now = self._now()
            update = self._build_record(
                TransferUpdate, status=target, updated_at=now, updater=caller,
            )
            transfer.status = target
            transfer.last_update = update
            released = None
            if target not in ESCROW_STATUSES:
                released = self._escrows.pop(transfer_id)

            details = {"transfer_id": transfer_id}
            if reason is not None:
                details["reason"] = reason
            self.history.append(
                transfer.batch_id, history_action.value, caller, now, details,
            )

        if released is not None:
            metrics.record_escrow_released(
                released.amount, target.value, self.config.enable_metrics,
            )
        logger.info(
            "Transfer %d %s by %s (batch %d)",
            transfer_id, target.value, caller, transfer.batch_id,
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def transfer_count(self) -> int:
        return self._ids.count

    def transfer_exists(self, transfer_id: int) -> bool:
        return transfer_id in self._transfers

    def get_transfer(self, transfer_id: int) -> Optional[Transfer]:
        """Get a transfer by id, or None if it does not exist."""
        return self._transfers.get(transfer_id)

    def get_escrow(self, transfer_id: int) -> Optional[Escrow]:
        """Get the open escrow hold of a transfer, or None once released."""
        return self._escrows.get(transfer_id)

    def transfer_status(self, transfer_id: int) -> TransferStatus:
        """Return the status of a transfer.

        Raises:
            NotFound: Unknown transfer.
        """
        return self._require_transfer(transfer_id).status

    def get_history(self, batch_id: int) -> List[HistoryEntry]:
        """Return every transfer history entry of a batch, oldest first."""
        return self.history.entries(batch_id)

    def transfers_for_batch(self, batch_id: int) -> List[Transfer]:
        """Return the transfers of a batch in creation order."""
        return [
            self._transfers[tid]
            for tid in self._idx_batch_transfers.get(batch_id, [])
        ]

    def open_escrows(self) -> List[Escrow]:
        """Return every escrow hold still locked."""
        return list(self._escrows.values())

    def list_transfers(
        self,
        batch_id: Optional[int] = None,
        status: Optional[str] = None,
        party: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Transfer]:
        """List transfers with optional filtering.

        Args:
            batch_id: Optional batch filter.
            status: Optional status label filter.
            party: Optional principal filter (from_owner or to_owner).
            limit: Maximum results.
            offset: Results to skip.

        Returns:
            List of Transfer instances in id order.
        """
        transfers = list(self._transfers.values())

        if batch_id is not None:
            transfers = [t for t in transfers if t.batch_id == batch_id]
        if status is not None:
            transfers = [t for t in transfers if t.status.value == status]
        if party is not None:
            transfers = [
                t for t in transfers
                if t.from_owner == party or t.to_owner == party
            ]

        return transfers[offset:offset + limit]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transfer(self, transfer_id: int) -> Transfer:
        transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise NotFound(
                message=f"Transfer {transfer_id} not found",
                ledger=self.name,
                record_type="transfer",
                record_id=transfer_id,
            )
        return transfer


__all__ = [
    "TRANSITIONS",
    "ESCROW_STATUSES",
    "TransferLedger",
]
