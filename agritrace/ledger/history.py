# -*- coding: utf-8 -*-
"""
History Log - append-only event trail shared by the provenance ledgers

Each ledger owns one HistoryLog. Entries are grouped by a parent id (the
batch id for batch and transfer history, the shipment id for shipments) and
numbered from 0 within their parent, so (parent_id, index) is the entry key.
Entries are never rewritten or removed.

Every entry carries a SHA-256 hash of its payload and a chain hash linking
it to the previous entry of the log, so the whole trail can be replayed and
checked for tampering.

Example:
    >>> from agritrace.ledger.history import HistoryLog
    >>> log = HistoryLog("batch_registry")
    >>> entry = log.append(0, "batch_registered", "ST1FARMER", 0)
    >>> entry.key
    (0, 0)
    >>> log.count(0)
    1
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# HistoryEntry model
# ---------------------------------------------------------------------------


class HistoryEntry(BaseModel):
    """A single entry in a ledger's history."""

    parent_id: int = Field(..., description="Record the entry belongs to")
    index: int = Field(..., ge=0, description="Position within the parent")
    sequence: int = Field(..., ge=0, description="Position within the log")
    action: str = Field(..., description="Action performed")
    actor: str = Field(..., description="Principal that performed the action")
    recorded_at: int = Field(..., ge=0, description="Ledger time")
    details: Dict[str, Any] = Field(
        default_factory=dict, description="Action-specific details",
    )
    data_hash: str = Field(default="", description="SHA-256 of the payload")
    previous_hash: str = Field(default="", description="Previous chain hash")
    chain_hash: str = Field(default="", description="Chain hash of this entry")

    model_config = {"extra": "forbid"}

    @property
    def key(self) -> Tuple[int, int]:
        """Return the (parent_id, index) key of this entry."""
        return (self.parent_id, self.index)


# ---------------------------------------------------------------------------
# HistoryLog
# ---------------------------------------------------------------------------


class HistoryLog:
    """Per-parent ordered append-only log with SHA-256 chain hashing.

    Attributes:
        name: Name of the owning ledger, mixed into the genesis hash.
        _entries: All entries in append order.
        _by_parent: Entry sequence numbers grouped by parent id.
        _last_chain_hash: Chain hash of the most recent entry.
    """

    def __init__(self, name: str) -> None:
        """Initialize an empty HistoryLog.

        Args:
            name: Name of the owning ledger.
        """
        self.name = name
        self._genesis_hash = hashlib.sha256(
            f"agritrace-{name}-genesis".encode()
        ).hexdigest()
        self._entries: List[HistoryEntry] = []
        self._by_parent: Dict[int, List[int]] = {}
        self._last_chain_hash: str = self._genesis_hash

    def append(
        self,
        parent_id: int,
        action: str,
        actor: str,
        recorded_at: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> HistoryEntry:
        """Append an entry under ``parent_id`` at the next free index.

        Args:
            parent_id: Record the entry belongs to.
            action: Action performed (HistoryAction value).
            actor: Principal that performed the action.
            recorded_at: Ledger time of the action.
            details: Optional action-specific details.

        Returns:
            The stored HistoryEntry.
        """
        positions = self._by_parent.setdefault(parent_id, [])
        payload = {
            "parent_id": parent_id,
            "index": len(positions),
            "action": str(action),
            "actor": actor,
            "recorded_at": recorded_at,
            "details": details or {},
        }
        data_hash = self._hash_dict(payload)
        chain_hash = self._hash_dict({
            "data_hash": data_hash,
            "previous_hash": self._last_chain_hash,
        })

        entry = HistoryEntry(
            sequence=len(self._entries),
            data_hash=data_hash,
            previous_hash=self._last_chain_hash,
            chain_hash=chain_hash,
            **payload,
        )
        positions.append(entry.sequence)
        self._entries.append(entry)
        self._last_chain_hash = chain_hash

        logger.debug(
            "History %s: parent=%d index=%d action=%s actor=%s",
            self.name, parent_id, entry.index, entry.action, actor,
        )
        return entry

    def count(self, parent_id: int) -> int:
        """Return the number of entries recorded under ``parent_id``."""
        return len(self._by_parent.get(parent_id, []))

    def entries(self, parent_id: int) -> List[HistoryEntry]:
        """Return the entries of ``parent_id``, oldest first."""
        return [self._entries[i] for i in self._by_parent.get(parent_id, [])]

    def get(self, parent_id: int, index: int) -> Optional[HistoryEntry]:
        """Return the entry at (parent_id, index), or None."""
        positions = self._by_parent.get(parent_id, [])
        if 0 <= index < len(positions):
            return self._entries[positions[index]]
        return None

    def all_entries(self) -> List[HistoryEntry]:
        """Return every entry of the log in append order."""
        return list(self._entries)

    def verify_chain(self) -> bool:
        """Replay the chain and check every hash.

        Returns:
            True if the log is intact, False if any entry was altered.
        """
        previous = self._genesis_hash
        for entry in self._entries:
            payload = {
                "parent_id": entry.parent_id,
                "index": entry.index,
                "action": entry.action,
                "actor": entry.actor,
                "recorded_at": entry.recorded_at,
                "details": entry.details,
            }
            data_hash = self._hash_dict(payload)
            if data_hash != entry.data_hash or entry.previous_hash != previous:
                logger.warning(
                    "History chain of %s broken at sequence %d",
                    self.name, entry.sequence,
                )
                return False
            expected = self._hash_dict({
                "data_hash": data_hash,
                "previous_hash": previous,
            })
            if expected != entry.chain_hash:
                logger.warning(
                    "History chain of %s broken at sequence %d",
                    self.name, entry.sequence,
                )
                return False
            previous = entry.chain_hash
        return True

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _hash_dict(data: Dict[str, Any]) -> str:
        raw = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(raw.encode()).hexdigest()


__all__ = [
    "HistoryEntry",
    "HistoryLog",
]
