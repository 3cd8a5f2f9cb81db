"""Tests for ProvenanceLedgerService and the ledger metrics."""

import threading

import pytest
from prometheus_client import REGISTRY

from agritrace.ledger.batch_registry import BatchRegistry
from agritrace.ledger.config import LedgerConfig
from agritrace.ledger.models import OperationResult, ShipmentStatus, TransferStatus
from agritrace.ledger.setup import (
    ProvenanceLedgerService,
    get_ledger_service,
    reset_ledger_service,
)

from conftest import AUTHORITY, CERT_HASH, FULL_GEO

FARMER = "ST1FARMER"
CARRIER_DEST = "ST2WAREHOUSE"
BUYER = "ST3BUYER"


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestBootstrap:
    """bootstrap_authority and governance results."""

    def test_bootstrap_sets_all_ledgers(self, service):
        assert [l.authority for l in service.ledgers] == [AUTHORITY] * 3

    def test_second_bootstrap_fails(self, service):
        result = service.bootstrap_authority("ST9OTHER")
        assert result.ok is False
        assert result.error_type == "AuthorityAlreadySet"
        assert result.error_code == "TRACE_AUTHORITY_ALREADY_SET"

    def test_bootstrap_is_all_or_nothing(self, config, clock, sink):
        svc = ProvenanceLedgerService(config=config, clock=clock, sink=sink)
        assert svc.set_authority("transfer_ledger", "ST8EARLY").ok
        assert svc.bootstrap_authority(AUTHORITY).ok is False
        assert svc.batch_registry.authority is None
        assert svc.shipment_ledger.authority is None

    def test_set_fee_result(self, service):
        assert service.set_fee("shipment_ledger", 250).ok
        assert service.shipment_ledger.fee == 250
        failed = service.set_fee("shipment_ledger", -1)
        assert failed.ok is False
        assert failed.context["field"] == "fee"

    def test_set_capacity_without_authority(self, config, clock, sink):
        svc = ProvenanceLedgerService(config=config, clock=clock, sink=sink)
        result = svc.set_capacity("batch_registry", 10)
        assert result.error_type == "AuthorityNotSet"

    @pytest.mark.parametrize("method,arg", [
        ("set_authority", "ST9OTHER"),
        ("set_fee", 1),
        ("set_capacity", 1),
    ])
    def test_unknown_ledger_name_is_a_result(self, service, method, arg):
        result = getattr(service, method)("warehouse", arg)
        assert result.ok is False
        assert result.error_type == "NotFound"
        assert result.error_code == "TRACE_NOT_FOUND"
        assert result.context == {"record_type": "ledger", "record_id": "warehouse"}

    def test_concurrent_bootstraps_elect_one_authority(self, config, clock, sink):
        """Racing bootstraps leave exactly one winner on all three ledgers."""
        svc = ProvenanceLedgerService(config=config, clock=clock, sink=sink)
        principals = [f"ST{i}AUTH" for i in range(8)]
        barrier = threading.Barrier(len(principals))
        results = {}

        def bootstrap(principal):
            barrier.wait()
            results[principal] = svc.bootstrap_authority(principal)

        threads = [
            threading.Thread(target=bootstrap, args=(p,)) for p in principals
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        winners = [p for p, r in results.items() if r.ok]
        assert len(winners) == 1
        assert [l.authority for l in svc.ledgers] == winners * 3
        losers = [r for r in results.values() if not r.ok]
        assert {r.error_type for r in losers} == {"AuthorityAlreadySet"}


class TestEndToEnd:
    """A batch from registration to delivery and sale."""

    def test_kale_lifecycle(self, service, clock, sink, kale_batch):
        registered = service.register_batch(FARMER, **kale_batch)
        assert registered == OperationResult.success(0)
        batch_id = registered.value

        clock.set(10)
        assert service.certify_batch("ST4CERT", batch_id, CERT_HASH, 1000).ok
        assert service.check_certification(batch_id).value is True

        shipment_id = service.initiate_shipment(
            FARMER, batch_id, CARRIER_DEST, 10, FULL_GEO,
        ).value
        assert service.add_approver(FARMER, shipment_id, "ST5X").ok
        assert service.approve_shipment("ST5X", shipment_id).value is False
        assert service.approve_shipment("ST6Y", shipment_id).value is True
        assert service.complete_shipment(CARRIER_DEST, shipment_id).ok

        transfer_id = service.initiate_transfer(
            FARMER, batch_id, BUYER, 20, 5000,
        ).value
        assert service.accept_transfer(BUYER, transfer_id).ok
        assert service.complete_transfer(BUYER, transfer_id).ok
        assert service.transfer_ownership(FARMER, batch_id, BUYER).ok

        trace = service.trace_batch(batch_id)
        assert trace.batch.owner == BUYER
        assert trace.certification.issuer == "ST4CERT"
        assert [o.owner for o in trace.owner_history] == [FARMER, BUYER]
        assert [s.status for s in trace.shipments] == [ShipmentStatus.DELIVERED]
        assert [t.status for t in trace.transfers] == [TransferStatus.COMPLETED]

        assert [i.amount for i in sink.intents] == [500, 200, 300]

    def test_failures_are_results(self, service, kale_batch):
        kale_batch["title"] = ""
        result = service.register_batch(FARMER, **kale_batch)
        assert result.ok is False
        assert result.error_type == "InvalidInput"
        assert result.context["field"] == "title"
        assert result.value is None

    def test_malformed_transfer_is_a_failed_result(self, service, sink):
        """A malformed batch id leaves no transfer, escrow or fee intent."""
        result = service.initiate_transfer(FARMER, None, BUYER, 0, 500)
        assert result.ok is False
        assert result.error_type == "InvalidInput"
        assert result.context["field"] == "batch_id"
        assert service.transfer_ledger.transfer_count() == 0
        assert service.transfer_ledger.open_escrows() == []
        assert sink.intents == []

    def test_trace_unknown_batch(self, service):
        trace = service.trace_batch(42)
        assert trace.batch is None
        assert trace.owner_history == []
        assert trace.shipments == []

    def test_trace_reports_unregistered_batch_references(self, service):
        """Shipments and transfers are not checked against the registry."""
        service.initiate_shipment(FARMER, 42, CARRIER_DEST, 0, FULL_GEO)
        trace = service.trace_batch(42)
        assert trace.batch is None
        assert len(trace.shipments) == 1


class TestStatistics:
    """get_statistics."""

    def test_counts(self, service, kale_batch):
        service.register_batch(FARMER, **kale_batch)
        service.register_batch(FARMER, **kale_batch)
        service.certify_batch("ST4CERT", 0, CERT_HASH, 1000)
        service.deactivate_batch(FARMER, 1)
        service.initiate_shipment(FARMER, 0, CARRIER_DEST, 0, FULL_GEO)
        t0 = service.initiate_transfer(FARMER, 0, BUYER, 0, 700).value
        t1 = service.initiate_transfer(FARMER, 0, BUYER, 0, 300).value
        service.cancel_transfer(FARMER, t1)

        stats = service.get_statistics()
        assert stats.total_batches == 2
        assert stats.certified_batches == 1
        assert stats.inactive_batches == 1
        assert stats.total_shipments == 1
        assert stats.shipments_by_status["active"] == 1
        assert stats.total_transfers == 2
        assert stats.transfers_by_status["pending"] == 1
        assert stats.transfers_by_status["cancelled"] == 1
        assert stats.open_escrows == 1
        assert stats.escrow_locked_total == 700
        assert stats.fee_intents == 5
        assert stats.fee_total == 500 * 2 + 200 + 300 * 2
        assert t0 == 0

    def test_empty(self, service):
        stats = service.get_statistics()
        assert stats.total_batches == 0
        assert stats.open_escrows == 0


class TestSingletonAccessor:
    """get_ledger_service / reset_ledger_service."""

    def test_shared_instance(self):
        assert get_ledger_service() is get_ledger_service()

    def test_reset(self):
        first = get_ledger_service()
        reset_ledger_service()
        assert get_ledger_service() is not first


class TestMetrics:
    """Prometheus metrics recorded by the ledgers and the facade."""

    def test_operation_counter(self, service, kale_batch):
        labels = {"ledger": "batch_registry", "operation": "register_batch",
                  "result": "success"}
        before = sample("agritrace_ledger_operations_total", **labels)
        service.register_batch(FARMER, **kale_batch)
        assert sample("agritrace_ledger_operations_total", **labels) == before + 1

    def test_failure_labelled_with_error_code(self, service):
        labels = {"ledger": "transfer_ledger", "operation": "accept_transfer",
                  "result": "TRACE_NOT_FOUND"}
        before = sample("agritrace_ledger_operations_total", **labels)
        service.accept_transfer(BUYER, 99)
        assert sample("agritrace_ledger_operations_total", **labels) == before + 1

    def test_quorum_and_escrow_counters(self, service):
        quorum_before = sample("agritrace_ledger_quorum_reached_total")
        locked_before = sample("agritrace_ledger_escrow_locked_total")
        released_before = sample(
            "agritrace_ledger_escrow_released_total", outcome="cancelled",
        )

        sid = service.initiate_shipment(FARMER, 0, CARRIER_DEST, 0, FULL_GEO).value
        service.approve_shipment("ST5X", sid)
        service.approve_shipment("ST6Y", sid)
        tid = service.initiate_transfer(FARMER, 0, BUYER, 0, 400).value
        service.cancel_transfer(FARMER, tid)

        assert sample("agritrace_ledger_quorum_reached_total") == quorum_before + 1
        assert sample("agritrace_ledger_escrow_locked_total") == locked_before + 400
        assert sample(
            "agritrace_ledger_escrow_released_total", outcome="cancelled",
        ) == released_before + 400

    def test_disabled_metrics_record_nothing(self, clock, sink, kale_batch):
        svc = ProvenanceLedgerService(
            config=LedgerConfig(enable_metrics=False), clock=clock, sink=sink,
        )
        svc.bootstrap_authority(AUTHORITY)
        labels = {"ledger": "batch_registry"}
        before = sample("agritrace_ledger_fee_amount_total", **labels)
        svc.register_batch(FARMER, **kale_batch)
        assert sample("agritrace_ledger_fee_amount_total", **labels) == before

    def test_engine_follows_its_own_config(self, clock, sink, kale_batch):
        """An engine built directly honours its own enable_metrics flag."""
        quiet = BatchRegistry(LedgerConfig(enable_metrics=False), clock, sink)
        quiet.set_authority(AUTHORITY)
        labels = {"ledger": "batch_registry"}
        before = sample("agritrace_ledger_fee_amount_total", **labels)
        quiet.register_batch(FARMER, **kale_batch)
        assert sample("agritrace_ledger_fee_amount_total", **labels) == before

        loud = BatchRegistry(LedgerConfig(enable_metrics=True), clock, sink)
        loud.set_authority(AUTHORITY)
        loud.register_batch(FARMER, **kale_batch)
        assert sample("agritrace_ledger_fee_amount_total", **labels) == before + 500

    def test_quiet_service_does_not_silence_other_engines(
        self, clock, sink, kale_batch,
    ):
        ProvenanceLedgerService(
            config=LedgerConfig(enable_metrics=False), clock=clock, sink=sink,
        )
        registry = BatchRegistry(LedgerConfig(), clock, sink)
        registry.set_authority(AUTHORITY)
        labels = {"ledger": "batch_registry", "result": "accepted"}
        before = sample("agritrace_ledger_fee_intents_total", **labels)
        registry.register_batch(FARMER, **kale_batch)
        assert sample("agritrace_ledger_fee_intents_total", **labels) == before + 1
