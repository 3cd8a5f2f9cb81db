# -*- coding: utf-8 -*-
"""
Batch Registry Engine - agritrace provenance ledgers

Registers batches of agricultural produce, attaches and revokes
certifications, records descriptive updates and tracks the chain of owners
of every batch.

Every successful mutation appends exactly one entry to the registry's
HistoryLog under the batch id. The owner history of a batch is read back
from that log: the registration entry is position 0 and every
``ownership_transferred`` entry adds the next owner.

Example:
    >>> from agritrace.ledger.batch_registry import BatchRegistry
    >>> registry = BatchRegistry()
    >>> registry.set_authority("ST2AUTH")
    >>> batch_id = registry.register_batch(
    ...     "ST1FARMER", "a" * 64, "Organic Kale", "Fresh kale",
    ...     1640995200, 100, "USDA Organic", "California, USA", 95,
    ... )
    >>> registry.get_batch(batch_id).owner
    'ST1FARMER'
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from agritrace.exceptions import (
    AlreadyCertified,
    BatchInactive,
    Expired,
    InvalidExpiry,
    InvalidState,
    NotFound,
    Unauthorized,
)
from agritrace.ledger.base import LedgerEngine
from agritrace.ledger.config import LedgerConfig
from agritrace.ledger.history import HistoryEntry
from agritrace.ledger.models import (
    Batch,
    BatchUpdate,
    Certification,
    HistoryAction,
    OwnershipRecord,
)
from agritrace.ledger.validation import (
    check_exact_length,
    check_int,
    check_length,
    check_range,
    check_text,
)

logger = logging.getLogger(__name__)


class BatchRegistry(LedgerEngine):
    """Registry of batches, their certifications and their owners.

    Attributes:
        _batches: In-memory batch storage keyed by batch_id.
        _certifications: Current certification per certified batch.
    """

    name = "batch_registry"

    def __init__(self, config=None, clock=None, sink=None) -> None:
        super().__init__(config=config, clock=clock, sink=sink)
        self._batches: Dict[int, Batch] = {}
        self._certifications: Dict[int, Certification] = {}
        logger.info("BatchRegistry initialized")

    @staticmethod
    def _initial_fee(config: LedgerConfig) -> int:
        return config.registration_fee

    @staticmethod
    def _initial_capacity(config: LedgerConfig) -> int:
        return config.max_batches

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_batch(
        self,
        caller: str,
        hash: str,
        title: str,
        description: str,
        harvest_date: int,
        batch_size: int,
        cert_body: str,
        geo_location: str,
        quality_metric: int,
    ) -> int:
        """Register a new batch owned by ``caller``.

        Checks run in order and the first failure is raised: capacity,
        hash length, title, description, harvest date, batch size,
        certifying body, geo-location, quality metric, authority. The
        registration fee is then charged to the caller.

        Args:
            caller: Registering principal, the first owner.
            hash: Content hash of the batch (exact hash length).
            title: Title, 1-100 characters.
            description: Description, 1-500 characters.
            harvest_date: Harvest timestamp, positive.
            batch_size: Units in the batch, in (0, max_batch_size].
            cert_body: Certifying body label, 1-50 characters.
            geo_location: Location string, 1-100 characters.
            quality_metric: Quality score in [0, max_quality_metric].

        Returns:
            The new batch id.

        Raises:
            CapacityExceeded: If the registry is full.
            InvalidInput: If a field violates its bounds.
            AuthorityNotSet: Before an authority is recorded.
            FeeTransferFailed: If the sink rejects the fee.
        """
        start_time = time.monotonic()
        cfg = self.config

        with self._lock:
            self._ids.ensure_capacity(self.gate.capacity)
            check_exact_length(hash, cfg.hash_length, "hash", self.name)
            check_length(title, "title", self.name, 1, 100)
            check_length(description, "description", self.name, 1, 500)
            check_range(harvest_date, "harvest_date", self.name, 0,
                        low_inclusive=False)
            check_range(batch_size, "batch_size", self.name, 0,
                        cfg.max_batch_size, low_inclusive=False)
            check_length(cert_body, "cert_body", self.name, 1, 50)
            check_length(geo_location, "geo_location", self.name, 1, 100)
            check_range(quality_metric, "quality_metric", self.name, 0,
                        cfg.max_quality_metric)
            authority = self.gate.require_authority()

            now = self._now()
            batch = self._build_record(
                Batch,
                batch_id=self._ids.next_id,
                hash=hash,
                title=title,
                description=description,
                harvest_date=harvest_date,
                batch_size=batch_size,
                cert_body=cert_body,
                geo_location=geo_location,
                quality_metric=quality_metric,
                owner=caller,
                created_at=now,
            )

            self._collect_fee(caller, authority)

            batch_id = self._ids.allocate()
            self._batches[batch_id] = batch
            self.history.append(
                batch_id, HistoryAction.BATCH_REGISTERED.value, caller, now,
                {"owner": caller, "hash": hash},
            )
            self._record_count_changed()

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Registered batch %d (%s) for %s, size=%d (%.1f ms)",
            batch_id, title, caller, batch_size, elapsed_ms,
        )
        return batch_id

    # ------------------------------------------------------------------
    # Certification
    # ------------------------------------------------------------------

    def certify_batch(
        self, caller: str, batch_id: int, cert_hash: str, expiry: int,
    ) -> bool:
        """Attach a certification issued by ``caller`` to a batch.

        Raises:
            NotFound: Unknown batch.
            AlreadyCertified: The batch is already certified.
            InvalidInput: ``cert_hash`` has the wrong length.
            InvalidExpiry: ``expiry`` is not after the current ledger time.
        """
        with self._lock:
            batch = self._require_batch(batch_id)
            if batch.certified:
                raise AlreadyCertified(
                    message=f"Batch {batch_id} is already certified",
                    ledger=self.name,
                    current_state="certified",
                    required_state="uncertified",
                )
            check_exact_length(
                cert_hash, self.config.hash_length, "cert_hash", self.name,
            )
            check_int(expiry, "expiry", self.name)
            now = self._now()
            if expiry <= now:
                raise InvalidExpiry(
                    message=f"Expiry {expiry} must be after ledger time {now}",
                    ledger=self.name,
                    context={"value": expiry, "now": now},
                )

            certification = self._build_record(
                Certification,
                batch_id=batch_id,
                cert_hash=cert_hash,
                issued_at=now,
                expires_at=expiry,
                issuer=caller,
            )

            batch.certified = True
            batch.cert_expiry = expiry
            self._certifications[batch_id] = certification
            self.history.append(
                batch_id, HistoryAction.BATCH_CERTIFIED.value, caller, now,
                {"cert_hash": cert_hash, "expires_at": expiry},
            )

        logger.info(
            "Certified batch %d by %s until %d", batch_id, caller, expiry,
        )
        return True

    def revoke_certification(self, caller: str, batch_id: int) -> bool:
        """Remove the certification of a batch; only its issuer may do so.

        Raises:
            NotFound: Unknown batch or no certification on record.
            Unauthorized: ``caller`` is not the issuer.
            InvalidState: The batch is not certified.
        """
        with self._lock:
            batch = self._require_batch(batch_id)
            certification = self._certifications.get(batch_id)
            if certification is None:
                raise NotFound(
                    message=f"Batch {batch_id} has no certification",
                    ledger=self.name,
                    record_type="certification",
                    record_id=batch_id,
                )
            if caller != certification.issuer:
                logger.warning(
                    "Revocation of batch %d by %s rejected (issuer %s)",
                    batch_id, caller, certification.issuer,
                )
                raise Unauthorized(
                    message="Only the issuer may revoke a certification",
                    ledger=self.name,
                    caller=caller,
                    expected=certification.issuer,
                )
            if not batch.certified:
                raise InvalidState(
                    message=f"Batch {batch_id} is not certified",
                    ledger=self.name,
                    current_state="uncertified",
                    required_state="certified",
                )

            batch.certified = False
            batch.cert_expiry = 0
            del self._certifications[batch_id]
            self.history.append(
                batch_id, HistoryAction.CERTIFICATION_REVOKED.value, caller,
                self._now(), {"cert_hash": certification.cert_hash},
            )

        logger.info("Revoked certification of batch %d by %s", batch_id, caller)
        return True

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def update_batch(
        self, caller: str, batch_id: int, title: str, description: str,
    ) -> bool:
        """Overwrite the title and description of a batch (owner only)."""
        with self._lock:
            batch = self._require_owner(caller, batch_id, "update")
            check_length(title, "title", self.name, 1, 100)
            check_length(description, "description", self.name, 1, 500)

            now = self._now()
            update = self._build_record(
                BatchUpdate,
                title=title,
                description=description,
                updated_at=now,
                updater=caller,
            )
            batch.title = title
            batch.description = description
            batch.last_update = update
            self.history.append(
                batch_id, HistoryAction.BATCH_UPDATED.value, caller, now,
                {"title": title},
            )

        logger.info("Updated batch %d by %s", batch_id, caller)
        return True

    def transfer_ownership(
        self, caller: str, batch_id: int, new_owner: str,
    ) -> bool:
        """Hand an active batch to ``new_owner``.

        The new owner is taken as given: it may equal the current owner and
        is not checked against the principal format, only required to be a
        string.

        Raises:
            NotFound: Unknown batch.
            Unauthorized: ``caller`` is not the owner.
            BatchInactive: The batch has been deactivated.
        """
        with self._lock:
            batch = self._require_owner(caller, batch_id, "transfer")
            if not batch.active:
                raise BatchInactive(
                    message=f"Batch {batch_id} is inactive",
                    ledger=self.name,
                    current_state="inactive",
                    required_state="active",
                )
            check_text(new_owner, "new_owner", self.name)
            previous_owner = batch.owner
            batch.owner = new_owner
            self.history.append(
                batch_id, HistoryAction.OWNERSHIP_TRANSFERRED.value, caller,
                self._now(),
                {"previous_owner": previous_owner, "new_owner": new_owner},
            )

        logger.info(
            "Batch %d ownership %s -> %s", batch_id, previous_owner, new_owner,
        )
        return True

    def deactivate_batch(self, caller: str, batch_id: int) -> bool:
        """Mark a batch inactive (owner only, irreversible).

        Raises:
            NotFound: Unknown batch.
            Unauthorized: ``caller`` is not the owner.
            BatchInactive: The batch is already inactive.
        """
        with self._lock:
            batch = self._require_owner(caller, batch_id, "deactivate")
            if not batch.active:
                raise BatchInactive(
                    message=f"Batch {batch_id} is already inactive",
                    ledger=self.name,
                    current_state="inactive",
                    required_state="active",
                )
            batch.active = False
            self.history.append(
                batch_id, HistoryAction.BATCH_DEACTIVATED.value, caller,
                self._now(),
            )

        logger.info("Deactivated batch %d by %s", batch_id, caller)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def batch_count(self) -> int:
        return self._ids.count

    def batch_exists(self, batch_id: int) -> bool:
        return batch_id in self._batches

    def get_batch(self, batch_id: int) -> Optional[Batch]:
        """Get a batch by id, or None if it does not exist."""
        return self._batches.get(batch_id)

    def get_certification(self, batch_id: int) -> Optional[Certification]:
        """Get the current certification of a batch, or None."""
        return self._certifications.get(batch_id)

    def check_certification(self, batch_id: int) -> bool:
        """Return True if the batch carries a certification still in force.

        Raises:
            NotFound: Unknown batch.
            Expired: Not certified, certification missing, or past expiry.
        """
        batch = self._require_batch(batch_id)
        certification = self._certifications.get(batch_id)
        now = self._now()
        if not batch.certified or certification is None:
            raise Expired(
                message=f"Batch {batch_id} has no certification in force",
                ledger=self.name,
                context={"batch_id": batch_id},
            )
        if now > certification.expires_at:
            raise Expired(
                message=(
                    f"Certification of batch {batch_id} expired at "
                    f"{certification.expires_at}"
                ),
                ledger=self.name,
                context={
                    "batch_id": batch_id,
                    "expires_at": certification.expires_at,
                    "now": now,
                },
            )
        return True

    def get_owner_history(self, batch_id: int) -> List[OwnershipRecord]:
        """Return the owners of a batch in order, the registrant first."""
        records: List[OwnershipRecord] = []
        for entry in self.history.entries(batch_id):
            if entry.action == HistoryAction.BATCH_REGISTERED.value:
                owner = entry.details["owner"]
            elif entry.action == HistoryAction.OWNERSHIP_TRANSFERRED.value:
                owner = entry.details["new_owner"]
            else:
                continue
            records.append(OwnershipRecord(
                index=len(records), owner=owner, recorded_at=entry.recorded_at,
            ))
        return records

    def get_history(self, batch_id: int) -> List[HistoryEntry]:
        """Return every history entry of a batch, oldest first."""
        return self.history.entries(batch_id)

    def list_batches(
        self,
        owner: Optional[str] = None,
        certified: Optional[bool] = None,
        active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Batch]:
        """List batches with optional filtering.

        Args:
            owner: Optional current-owner filter.
            certified: Optional certification-flag filter.
            active: Optional active-flag filter.
            limit: Maximum results.
            offset: Results to skip.

        Returns:
            List of Batch instances in id order.
        """
        batches = list(self._batches.values())

        if owner is not None:
            batches = [b for b in batches if b.owner == owner]
        if certified is not None:
            batches = [b for b in batches if b.certified == certified]
        if active is not None:
            batches = [b for b in batches if b.active == active]

        return batches[offset:offset + limit]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_batch(self, batch_id: int) -> Batch:
        batch = self._batches.get(batch_id)
        if batch is None:
            raise NotFound(
                message=f"Batch {batch_id} not found",
                ledger=self.name,
                record_type="batch",
                record_id=batch_id,
            )
        return batch

    def _require_owner(self, caller: str, batch_id: int, action: str) -> Batch:
        batch = self._require_batch(batch_id)
        if caller != batch.owner:
            logger.warning(
                "%s of batch %d by %s rejected (owner %s)",
                action, batch_id, caller, batch.owner,
            )
            raise Unauthorized(
                message=f"Only the owner may {action} batch {batch_id}",
                ledger=self.name,
                caller=caller,
                expected=batch.owner,
            )
        return batch


__all__ = ["BatchRegistry"]
