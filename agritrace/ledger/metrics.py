# -*- coding: utf-8 -*-
"""
Prometheus Metrics - agritrace provenance ledgers

Prometheus metrics for the batch registry, shipment ledger and transfer
ledger. Each engine passes its own ``LedgerConfig.enable_metrics`` to the
helpers, so two engines with different configurations record independently.

Metrics:
    1. agritrace_ledger_operations_total (Counter)
    2. agritrace_ledger_operation_duration_seconds (Histogram)
    3. agritrace_ledger_fee_intents_total (Counter)
    4. agritrace_ledger_fee_amount_total (Counter)
    5. agritrace_ledger_quorum_reached_total (Counter)
    6. agritrace_ledger_escrow_locked_total (Counter)
    7. agritrace_ledger_escrow_released_total (Counter)
    8. agritrace_ledger_records (Gauge)
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Operations count
ledger_operations_total = Counter(
    "agritrace_ledger_operations_total",
    "Total provenance ledger operations performed",
    labelnames=["ledger", "operation", "result"],
)

# 2. Operation duration
ledger_operation_duration_seconds = Histogram(
    "agritrace_ledger_operation_duration_seconds",
    "Provenance ledger operation duration in seconds",
    labelnames=["ledger", "operation"],
    buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)

# 3. Fee intents emitted
ledger_fee_intents_total = Counter(
    "agritrace_ledger_fee_intents_total",
    "Total fee intents handed to the value-transfer sink",
    labelnames=["ledger", "result"],
)

# 4. Fee amount emitted
ledger_fee_amount_total = Counter(
    "agritrace_ledger_fee_amount_total",
    "Sum of accepted fee intent amounts",
    labelnames=["ledger"],
)

# 5. Shipments reaching approval quorum
ledger_quorum_reached_total = Counter(
    "agritrace_ledger_quorum_reached_total",
    "Total shipments moved in transit by approval quorum",
)

# 6. Escrow locked
ledger_escrow_locked_total = Counter(
    "agritrace_ledger_escrow_locked_total",
    "Sum of escrow amounts locked by transfer initiation",
)

# 7. Escrow released
ledger_escrow_released_total = Counter(
    "agritrace_ledger_escrow_released_total",
    "Sum of escrow amounts released, by closing transition",
    labelnames=["outcome"],
)

# 8. Records per ledger
ledger_records = Gauge(
    "agritrace_ledger_records",
    "Current number of records held by each ledger",
    labelnames=["ledger"],
)


# ---------------------------------------------------------------------------
# Helper functions
#
# Every helper takes the ``enabled`` flag of the calling ledger's
# LedgerConfig and returns without touching the collectors when it is off.
# ---------------------------------------------------------------------------


def record_operation(
    ledger: str,
    operation: str,
    result: str,
    duration_seconds: float,
    enabled: bool = True,
) -> None:
    """Record a ledger operation.

    Args:
        ledger: Ledger name (batch_registry, shipment_ledger, ...).
        operation: Operation name (register_batch, approve_shipment, ...).
        result: "success" or the error code of the failure.
        duration_seconds: Operation duration in seconds.
        enabled: ``enable_metrics`` of the caller's configuration.
    """
    if not enabled:
        return
    ledger_operations_total.labels(
        ledger=ledger, operation=operation, result=result,
    ).inc()
    ledger_operation_duration_seconds.labels(
        ledger=ledger, operation=operation,
    ).observe(duration_seconds)


def record_fee_intent(
    ledger: str, amount: int, accepted: bool, enabled: bool = True,
) -> None:
    """Record a fee intent handed to the sink.

    Args:
        ledger: Emitting ledger.
        amount: Fee amount.
        accepted: False if the sink raised.
        enabled: ``enable_metrics`` of the caller's configuration.
    """
    if not enabled:
        return
    ledger_fee_intents_total.labels(
        ledger=ledger, result="accepted" if accepted else "failed",
    ).inc()
    if accepted:
        ledger_fee_amount_total.labels(ledger=ledger).inc(amount)


def record_quorum_reached(enabled: bool = True) -> None:
    """Record a shipment reaching its approval quorum."""
    if not enabled:
        return
    ledger_quorum_reached_total.inc()


def record_escrow_locked(amount: int, enabled: bool = True) -> None:
    """Record an escrow hold created by a new transfer."""
    if not enabled:
        return
    ledger_escrow_locked_total.inc(amount)


def record_escrow_released(
    amount: int, outcome: str, enabled: bool = True,
) -> None:
    """Record an escrow hold removed.

    Args:
        amount: Released amount.
        outcome: Transfer status that closed the hold.
        enabled: ``enable_metrics`` of the caller's configuration.
    """
    if not enabled:
        return
    ledger_escrow_released_total.labels(outcome=outcome).inc(amount)


def update_record_count(ledger: str, count: int, enabled: bool = True) -> None:
    """Set the records gauge of ``ledger``."""
    if not enabled:
        return
    ledger_records.labels(ledger=ledger).set(count)


__all__ = [
    "ledger_operations_total",
    "ledger_operation_duration_seconds",
    "ledger_fee_intents_total",
    "ledger_fee_amount_total",
    "ledger_quorum_reached_total",
    "ledger_escrow_locked_total",
    "ledger_escrow_released_total",
    "ledger_records",
    "record_operation",
    "record_fee_intent",
    "record_quorum_reached",
    "record_escrow_locked",
    "record_escrow_released",
    "update_record_count",
]
