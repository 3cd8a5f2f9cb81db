# -*- coding: utf-8 -*-
"""
agritrace Provenance Ledgers
============================

This package tracks a physical batch of produce from registration to
delivery across three ledgers, each governed by a single authority:

- Batch registration, certification and ownership history
- Shipment tracking gated by a multi-party approval quorum
- Ownership transfer proposals backed by an escrow hold
- Authority-gated fees and capacity per ledger
- Append-only per-record history with SHA-256 chain hashing
- Prometheus metrics for observability
- Thread-safe configuration with AGRITRACE_LEDGER_ env prefix

Key Components:
    - config: LedgerConfig with AGRITRACE_LEDGER_ env prefix
    - models: Pydantic v2 models for all records
    - interfaces: LedgerClock and ValueTransferSink collaborators
    - authority: AuthorityGate (authority, fee, capacity)
    - sequence: SequenceAllocator (dense record ids)
    - history: HistoryLog (per-record append-only trail)
    - batch_registry: BatchRegistry engine
    - shipment_ledger: ShipmentLedger engine
    - transfer_ledger: TransferLedger engine
    - metrics: Prometheus metrics
    - setup: ProvenanceLedgerService facade

Example:
    >>> from agritrace.ledger import ProvenanceLedgerService
    >>> service = ProvenanceLedgerService()
    >>> service.bootstrap_authority("ST2AUTH").ok
    True
"""

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from agritrace.ledger.config import (
    LedgerConfig,
    get_config,
    set_config,
    reset_config,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from agritrace.ledger.models import (
    # Enumerations
    ShipmentStatus,
    TransferStatus,
    HistoryAction,
    # Records
    FeeIntent,
    Batch,
    BatchUpdate,
    Certification,
    OwnershipRecord,
    Shipment,
    ShipmentUpdate,
    Approval,
    Transfer,
    TransferUpdate,
    Escrow,
    # Facade results
    OperationResult,
    BatchTrace,
    LedgerStatistics,
)

# ---------------------------------------------------------------------------
# Collaborators and building blocks
# ---------------------------------------------------------------------------
from agritrace.ledger.interfaces import (
    LedgerClock,
    ValueTransferSink,
    ManualClock,
    RecordingTransferSink,
)
from agritrace.ledger.authority import AuthorityGate
from agritrace.ledger.sequence import SequenceAllocator
from agritrace.ledger.history import HistoryEntry, HistoryLog

# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------
from agritrace.ledger.batch_registry import BatchRegistry
from agritrace.ledger.shipment_ledger import ShipmentLedger
from agritrace.ledger.transfer_ledger import TransferLedger

# ---------------------------------------------------------------------------
# Service setup facade
# ---------------------------------------------------------------------------
from agritrace.ledger.setup import (
    ProvenanceLedgerService,
    get_ledger_service,
    reset_ledger_service,
)

__all__ = [
    # Configuration
    "LedgerConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Enumerations
    "ShipmentStatus",
    "TransferStatus",
    "HistoryAction",
    # Records
    "FeeIntent",
    "Batch",
    "BatchUpdate",
    "Certification",
    "OwnershipRecord",
    "Shipment",
    "ShipmentUpdate",
    "Approval",
    "Transfer",
    "TransferUpdate",
    "Escrow",
    "OperationResult",
    "BatchTrace",
    "LedgerStatistics",
    # Collaborators and building blocks
    "LedgerClock",
    "ValueTransferSink",
    "ManualClock",
    "RecordingTransferSink",
    "AuthorityGate",
    "SequenceAllocator",
    "HistoryEntry",
    "HistoryLog",
    # Engines
    "BatchRegistry",
    "ShipmentLedger",
    "TransferLedger",
    # Service setup facade
    "ProvenanceLedgerService",
    "get_ledger_service",
    "reset_ledger_service",
]
