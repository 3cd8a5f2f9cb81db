"""
agritrace: Supply-Chain Provenance Ledger
=========================================

Batch registration and certification, shipment tracking with multi-party
approval, and ownership transfer with escrow, each governed by a single
authority and recorded in an append-only history.

The ledgers live in ``agritrace.ledger``; the exception hierarchy in
``agritrace.exceptions``.
"""

__version__ = "0.1.0"

__author__ = "agritrace Team"
__license__ = "MIT"

from agritrace.exceptions import LedgerException
from agritrace.ledger import (
    BatchRegistry,
    LedgerConfig,
    ProvenanceLedgerService,
    ShipmentLedger,
    TransferLedger,
)

__all__ = [
    "__version__",
    "LedgerException",
    "LedgerConfig",
    "BatchRegistry",
    "ShipmentLedger",
    "TransferLedger",
    "ProvenanceLedgerService",
]
