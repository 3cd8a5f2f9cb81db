# -*- coding: utf-8 -*-
"""
Provenance Ledger Configuration

Centralized configuration for the agritrace provenance ledgers covering:
- Fee defaults: batch registration, shipment initiation, ownership transfer
- Capacity defaults: maximum batches, shipments and transfers per ledger
- Approval settings: shipment quorum and approver slot cap
- Validation: principal prefix, hash length, batch size and quality bounds
- Observability: metrics toggle and logging level

All settings can be overridden via environment variables with the
``AGRITRACE_LEDGER_`` prefix (e.g. ``AGRITRACE_LEDGER_TRANSFER_FEE``).

Fee and capacity values here are only the starting values each ledger's
AuthorityGate is built with; later changes go through the gate.

Example:
    >>> from agritrace.ledger.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.registration_fee, cfg.approval_quorum)
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "AGRITRACE_LEDGER_"


# ---------------------------------------------------------------------------
# LedgerConfig
# ---------------------------------------------------------------------------


@dataclass
class LedgerConfig:
    """Complete configuration for the agritrace provenance ledgers.

    Attributes:
        registration_fee: Fee charged when a batch is registered.
        shipment_fee: Fee charged when a shipment is initiated.
        transfer_fee: Fee charged when an ownership transfer is initiated.
        max_batches: Initial batch capacity of the registry.
        max_shipments: Initial shipment capacity of the shipment ledger.
        max_transfers: Initial transfer capacity of the transfer ledger.
        approval_quorum: Distinct approvals that move a shipment in transit.
        max_approvers_per_shipment: Approval slots available per shipment.
        principal_prefix: Prefix every standard principal must start with.
        hash_length: Exact length of batch and certification hashes.
        max_batch_size: Largest accepted batch size.
        max_quality_metric: Largest accepted quality metric.
        enable_metrics: Whether Prometheus metrics are recorded.
        log_level: Logging level for the agritrace logger tree.
    """

    # -- Fees ----------------------------------------------------------------
    registration_fee: int = 500
    shipment_fee: int = 200
    transfer_fee: int = 300

    # -- Capacity ------------------------------------------------------------
    max_batches: int = 5000
    max_shipments: int = 10000
    max_transfers: int = 5000

    # -- Approvals -----------------------------------------------------------
    approval_quorum: int = 2
    max_approvers_per_shipment: int = 10

    # -- Validation ----------------------------------------------------------
    principal_prefix: str = "ST"
    hash_length: int = 64
    max_batch_size: int = 10000
    max_quality_metric: int = 100

    # -- Observability -------------------------------------------------------
    enable_metrics: bool = True
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> LedgerConfig:
        """Build a LedgerConfig from environment variables.

        Every field can be overridden via ``AGRITRACE_LEDGER_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Integer values are parsed via ``int()``.

        Returns:
            Populated LedgerConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%s, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        config = cls(
            registration_fee=_int("REGISTRATION_FEE", cls.registration_fee),
            shipment_fee=_int("SHIPMENT_FEE", cls.shipment_fee),
            transfer_fee=_int("TRANSFER_FEE", cls.transfer_fee),
            max_batches=_int("MAX_BATCHES", cls.max_batches),
            max_shipments=_int("MAX_SHIPMENTS", cls.max_shipments),
            max_transfers=_int("MAX_TRANSFERS", cls.max_transfers),
            approval_quorum=_int("APPROVAL_QUORUM", cls.approval_quorum),
            max_approvers_per_shipment=_int(
                "MAX_APPROVERS_PER_SHIPMENT",
                cls.max_approvers_per_shipment,
            ),
            principal_prefix=_str("PRINCIPAL_PREFIX", cls.principal_prefix),
            hash_length=_int("HASH_LENGTH", cls.hash_length),
            max_batch_size=_int("MAX_BATCH_SIZE", cls.max_batch_size),
            max_quality_metric=_int(
                "MAX_QUALITY_METRIC", cls.max_quality_metric,
            ),
            enable_metrics=_bool("ENABLE_METRICS", cls.enable_metrics),
            log_level=_str("LOG_LEVEL", cls.log_level),
        )

        logger.info(
            "LedgerConfig loaded: fees=[%d,%d,%d], "
            "capacity=[%d,%d,%d], quorum=%d, approver_slots=%d, "
            "prefix=%s, metrics=%s",
            config.registration_fee,
            config.shipment_fee,
            config.transfer_fee,
            config.max_batches,
            config.max_shipments,
            config.max_transfers,
            config.approval_quorum,
            config.max_approvers_per_shipment,
            config.principal_prefix,
            config.enable_metrics,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[LedgerConfig] = None
_config_lock = threading.Lock()


def get_config() -> LedgerConfig:
    """Return the singleton LedgerConfig, creating from env if needed.

    Returns:
        LedgerConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = LedgerConfig.from_env()
    return _config_instance


def set_config(config: LedgerConfig) -> None:
    """Replace the singleton LedgerConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("LedgerConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "LedgerConfig",
    "get_config",
    "set_config",
    "reset_config",
]
