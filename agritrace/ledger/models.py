# -*- coding: utf-8 -*-
"""
Provenance Ledger Data Models

Pydantic v2 data models for the agritrace provenance ledgers. Defines the
enumerations, the records owned by each ledger, their single-slot update
records, and the result wrappers returned by the service facade.

Models:
    - Enumerations: ShipmentStatus, TransferStatus, HistoryAction
    - Batch registry: Batch, Certification, BatchUpdate, OwnershipRecord
    - Shipment ledger: Shipment, ShipmentUpdate, Approval
    - Transfer ledger: Transfer, TransferUpdate, Escrow
    - Shared: FeeIntent
    - Facade: OperationResult, BatchTrace, LedgerStatistics

Ledger time is an integer supplied by the LedgerClock, not a datetime.
Principals are opaque strings.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enumerations
# =============================================================================


class ShipmentStatus(str, Enum):
    """Lifecycle status of a shipment.

    ``active`` shipments await approval quorum; quorum or an explicit party
    update moves them ``in-transit``; the destination completes them to
    ``delivered``; either party may force ``disputed`` at any time.
    """

    ACTIVE = "active"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    DISPUTED = "disputed"


class TransferStatus(str, Enum):
    """Lifecycle status of an ownership transfer proposal."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class HistoryAction(str, Enum):
    """Action recorded by a history entry."""

    # Batch registry
    BATCH_REGISTERED = "batch_registered"
    BATCH_CERTIFIED = "batch_certified"
    CERTIFICATION_REVOKED = "certification_revoked"
    BATCH_UPDATED = "batch_updated"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"
    BATCH_DEACTIVATED = "batch_deactivated"

    # Shipment ledger
    SHIPMENT_INITIATED = "shipment_initiated"
    APPROVER_ADDED = "approver_added"
    SHIPMENT_APPROVED = "shipment_approved"
    SHIPMENT_STATUS_UPDATED = "shipment_status_updated"
    SHIPMENT_COMPLETED = "shipment_completed"
    SHIPMENT_DISPUTED = "shipment_disputed"

    # Transfer ledger
    TRANSFER_INITIATED = "transfer_initiated"
    TRANSFER_ACCEPTED = "transfer_accepted"
    TRANSFER_REJECTED = "transfer_rejected"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_CANCELLED = "transfer_cancelled"


# =============================================================================
# Shared
# =============================================================================


class FeeIntent(BaseModel):
    """A fee transfer requested from the value-transfer sink.

    Attributes:
        amount: Fee amount (integer units).
        sender: Principal paying the fee.
        recipient: Principal receiving the fee (the ledger authority).
    """

    model_config = ConfigDict(from_attributes=True)

    amount: int = Field(..., ge=0, description="Fee amount")
    sender: str = Field(..., description="Principal paying the fee")
    recipient: str = Field(..., description="Principal receiving the fee")


# =============================================================================
# Batch registry
# =============================================================================


class BatchUpdate(BaseModel):
    """Most recent descriptive update applied to a batch."""

    title: str = Field(..., description="Title written by the update")
    description: str = Field(..., description="Description written by the update")
    updated_at: int = Field(..., ge=0, description="Ledger time of the update")
    updater: str = Field(..., description="Principal that applied the update")


class Batch(BaseModel):
    """A registered batch of agricultural produce.

    Attributes:
        batch_id: Dense integer identifier allocated at registration.
        hash: Fixed-length content hash identifying the batch.
        title: Short human-readable title.
        description: Longer description of the batch.
        harvest_date: Harvest timestamp (positive integer).
        batch_size: Number of units in the batch.
        cert_body: Label of the certifying body.
        geo_location: Free-form location string.
        quality_metric: Quality score between 0 and 100.
        owner: Current owning principal.
        certified: Whether a certification is currently attached.
        cert_expiry: Ledger time the certification expires (0 if none).
        created_at: Ledger time of registration.
        active: False once the owner deactivates the batch.
        last_update: Most recent descriptive update, if any.
    """

    model_config = ConfigDict(from_attributes=True)

    batch_id: int = Field(..., ge=0, description="Batch identifier")
    hash: str = Field(..., description="Batch content hash")
    title: str = Field(..., description="Batch title")
    description: str = Field(..., description="Batch description")
    harvest_date: int = Field(..., description="Harvest timestamp")
    batch_size: int = Field(..., description="Units in the batch")
    cert_body: str = Field(..., description="Certifying body label")
    geo_location: str = Field(..., description="Geo-location string")
    quality_metric: int = Field(..., description="Quality metric 0-100")
    owner: str = Field(..., description="Current owner principal")
    certified: bool = Field(default=False, description="Certification flag")
    cert_expiry: int = Field(default=0, ge=0, description="Certification expiry")
    created_at: int = Field(..., ge=0, description="Ledger time of registration")
    active: bool = Field(default=True, description="Active flag")
    last_update: Optional[BatchUpdate] = Field(
        None, description="Most recent descriptive update",
    )


class Certification(BaseModel):
    """Certification attached to a batch."""

    model_config = ConfigDict(from_attributes=True)

    batch_id: int = Field(..., ge=0, description="Certified batch")
    cert_hash: str = Field(..., description="Certificate hash")
    issued_at: int = Field(..., ge=0, description="Ledger time of issue")
    expires_at: int = Field(..., description="Ledger time of expiry")
    issuer: str = Field(..., description="Issuing principal")


class OwnershipRecord(BaseModel):
    """One position in a batch's owner history."""

    index: int = Field(..., ge=0, description="Position in owner history")
    owner: str = Field(..., description="Owner from this position on")
    recorded_at: int = Field(..., ge=0, description="Ledger time recorded")


# =============================================================================
# Shipment ledger
# =============================================================================


class ShipmentUpdate(BaseModel):
    """Most recent status change applied to a shipment."""

    status: ShipmentStatus = Field(..., description="Status written")
    geo_update: Optional[str] = Field(None, description="Reported location")
    reason: Optional[str] = Field(None, description="Dispute reason")
    updated_at: int = Field(..., ge=0, description="Ledger time of the update")
    updater: str = Field(..., description="Principal that applied the update")


class Shipment(BaseModel):
    """A shipment of a batch between two principals.

    Attributes:
        shipment_id: Dense integer identifier.
        batch_id: Batch being shipped (not checked against the registry).
        origin: Principal that initiated the shipment.
        destination: Receiving principal.
        start_timestamp: Planned start time (ledger time).
        geo_start: Starting location string.
        status: Current ShipmentStatus.
        created_at: Ledger time of initiation.
        last_update: Most recent status change by a party, if any.
    """

    model_config = ConfigDict(from_attributes=True)

    shipment_id: int = Field(..., ge=0, description="Shipment identifier")
    batch_id: int = Field(..., description="Referenced batch id")
    origin: str = Field(..., description="Origin principal")
    destination: str = Field(..., description="Destination principal")
    start_timestamp: int = Field(..., description="Planned start time")
    geo_start: str = Field(..., description="Starting location")
    status: ShipmentStatus = Field(
        default=ShipmentStatus.ACTIVE, description="Shipment status",
    )
    created_at: int = Field(..., ge=0, description="Ledger time of initiation")
    last_update: Optional[ShipmentUpdate] = Field(
        None, description="Most recent status change",
    )


class Approval(BaseModel):
    """Approval slot of one approver on one shipment.

    ``given`` is False for a slot pre-registered by the origin and not yet
    used, True once the approver has approved.
    """

    shipment_id: int = Field(..., ge=0, description="Shipment identifier")
    approver: str = Field(..., description="Approver principal")
    given: bool = Field(default=False, description="Approval given")
    recorded_at: int = Field(..., ge=0, description="Ledger time of last change")


# =============================================================================
# Transfer ledger
# =============================================================================


class TransferUpdate(BaseModel):
    """Most recent status change applied to a transfer."""

    status: TransferStatus = Field(..., description="Status written")
    updated_at: int = Field(..., ge=0, description="Ledger time of the update")
    updater: str = Field(..., description="Principal that applied the update")


class Transfer(BaseModel):
    """An ownership transfer proposal for a batch.

    Attributes:
        transfer_id: Dense integer identifier.
        batch_id: Batch changing hands (not checked against the registry).
        from_owner: Proposing principal.
        to_owner: Receiving principal.
        timestamp: Requested transfer time (ledger time).
        escrow_amount: Amount held in escrow while the proposal is open.
        status: Current TransferStatus.
        created_at: Ledger time of initiation.
        last_update: Most recent status change, if any.
    """

    model_config = ConfigDict(from_attributes=True)

    transfer_id: int = Field(..., ge=0, description="Transfer identifier")
    batch_id: int = Field(..., description="Referenced batch id")
    from_owner: str = Field(..., description="Current owner principal")
    to_owner: str = Field(..., description="Proposed owner principal")
    timestamp: int = Field(..., description="Requested transfer time")
    escrow_amount: int = Field(..., gt=0, description="Escrowed amount")
    status: TransferStatus = Field(
        default=TransferStatus.PENDING, description="Transfer status",
    )
    created_at: int = Field(..., ge=0, description="Ledger time of initiation")
    last_update: Optional[TransferUpdate] = Field(
        None, description="Most recent status change",
    )


class Escrow(BaseModel):
    """Escrow hold attached to an open transfer."""

    transfer_id: int = Field(..., ge=0, description="Owning transfer")
    amount: int = Field(..., gt=0, description="Held amount")
    locked_by: str = Field(..., description="Principal that locked the amount")
    release_to: str = Field(..., description="Principal the amount releases to")


# =============================================================================
# Facade models
# =============================================================================


class OperationResult(BaseModel):
    """Categorical outcome of a ledger operation.

    Exactly one of ``value`` (on success) or the error fields (on failure)
    is meaningful.

    Attributes:
        ok: True when the operation succeeded.
        value: Result payload on success.
        error_code: Error code of the raised LedgerException on failure.
        error_type: Exception class name on failure.
        message: Human-readable failure message.
        context: Error context on failure.
    """

    ok: bool = Field(..., description="Success flag")
    value: Any = Field(None, description="Result payload")
    error_code: Optional[str] = Field(None, description="Error code")
    error_type: Optional[str] = Field(None, description="Error class name")
    message: Optional[str] = Field(None, description="Failure message")
    context: Dict[str, Any] = Field(
        default_factory=dict, description="Error context",
    )

    @classmethod
    def success(cls, value: Any = True) -> OperationResult:
        """Build a successful result carrying ``value``."""
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: Any) -> OperationResult:
        """Build a failed result from a LedgerException."""
        return cls(
            ok=False,
            error_code=exc.error_code,
            error_type=type(exc).__name__,
            message=exc.message,
            context=dict(exc.context),
        )


class BatchTrace(BaseModel):
    """Everything the three ledgers know about one batch id."""

    batch_id: int = Field(..., description="Traced batch id")
    batch: Optional[Batch] = Field(None, description="Registry record")
    certification: Optional[Certification] = Field(
        None, description="Current certification",
    )
    owner_history: List[OwnershipRecord] = Field(
        default_factory=list, description="Owners in order",
    )
    shipments: List[Shipment] = Field(
        default_factory=list, description="Shipments of this batch",
    )
    transfers: List[Transfer] = Field(
        default_factory=list, description="Transfers of this batch",
    )


class LedgerStatistics(BaseModel):
    """Aggregated statistics across the three ledgers."""

    model_config = ConfigDict(from_attributes=True)

    total_batches: int = Field(default=0, ge=0, description="Registered batches")
    certified_batches: int = Field(
        default=0, ge=0, description="Batches currently certified",
    )
    inactive_batches: int = Field(
        default=0, ge=0, description="Deactivated batches",
    )
    total_shipments: int = Field(default=0, ge=0, description="Shipments")
    shipments_by_status: Dict[str, int] = Field(
        default_factory=dict, description="Shipment count by status",
    )
    total_transfers: int = Field(default=0, ge=0, description="Transfers")
    transfers_by_status: Dict[str, int] = Field(
        default_factory=dict, description="Transfer count by status",
    )
    open_escrows: int = Field(default=0, ge=0, description="Open escrow holds")
    escrow_locked_total: int = Field(
        default=0, ge=0, description="Sum of open escrow amounts",
    )
    fee_intents: int = Field(
        default=0, ge=0, description="Fee intents recorded by the sink",
    )
    fee_total: int = Field(
        default=0, ge=0, description="Sum of recorded fee intent amounts",
    )


__all__ = [
    "ShipmentStatus",
    "TransferStatus",
    "HistoryAction",
    "FeeIntent",
    "BatchUpdate",
    "Batch",
    "Certification",
    "OwnershipRecord",
    "ShipmentUpdate",
    "Shipment",
    "Approval",
    "TransferUpdate",
    "Transfer",
    "Escrow",
    "OperationResult",
    "BatchTrace",
    "LedgerStatistics",
]
