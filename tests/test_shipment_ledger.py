"""Tests for ShipmentLedger."""

import pytest

from agritrace.exceptions import (
    AuthorityNotSet,
    CapacityExceeded,
    DuplicateApproval,
    InvalidInput,
    InvalidState,
    NotFound,
    Unauthorized,
)
from agritrace.ledger.config import LedgerConfig
from agritrace.ledger.models import HistoryAction, ShipmentStatus
from agritrace.ledger.shipment_ledger import ShipmentLedger

from conftest import AUTHORITY, FULL_GEO

ORIGIN = "ST1ORIGIN"
DEST = "ST2DEST"
X = "ST3APPROVERX"
Y = "ST4APPROVERY"


@pytest.fixture
def shipment_id(shipments):
    return shipments.initiate_shipment(ORIGIN, 1, DEST, 1731328000, FULL_GEO)


def in_transit(shipments, shipment_id):
    shipments.approve_shipment(X, shipment_id)
    shipments.approve_shipment(Y, shipment_id)


class TestInitiateShipment:
    """initiate_shipment validation order and effects."""

    def test_initiate(self, shipments, sink, shipment_id):
        shipment = shipments.get_shipment(shipment_id)
        assert shipment_id == 0
        assert shipment.origin == ORIGIN
        assert shipment.destination == DEST
        assert shipment.batch_id == 1
        assert shipment.status == ShipmentStatus.ACTIVE
        assert shipment.last_update is None
        assert [(i.amount, i.sender, i.recipient) for i in sink.intents] == [
            (200, ORIGIN, AUTHORITY),
        ]
        assert shipments.shipment_count() == 1

    def test_ids_are_dense(self, shipments):
        ids = [
            shipments.initiate_shipment(ORIGIN, b, DEST, 0, FULL_GEO)
            for b in range(3)
        ]
        assert ids == [0, 1, 2]

    @pytest.mark.parametrize("caller,destination,start,geo,field", [
        ("XX1ORIGIN", DEST, 0, FULL_GEO, "origin"),
        (ORIGIN, "XX2DEST", 0, FULL_GEO, "destination"),
        (ORIGIN, DEST, 4, FULL_GEO, "start_timestamp"),
        (ORIGIN, DEST, 10, "", "geo_start"),
        (ORIGIN, DEST, 10, "g" * 101, "geo_start"),
        (ORIGIN, ORIGIN, 10, FULL_GEO, "destination"),
    ])
    def test_invalid_input(
        self, shipments, clock, sink, caller, destination, start, geo, field,
    ):
        clock.set(5)
        with pytest.raises(InvalidInput) as exc_info:
            shipments.initiate_shipment(caller, 1, destination, start, geo)
        assert exc_info.value.field == field
        assert shipments.shipment_count() == 0
        assert sink.intents == []

    def test_start_at_current_time_allowed(self, shipments, clock):
        clock.set(5)
        assert shipments.initiate_shipment(ORIGIN, 1, DEST, 5, FULL_GEO) == 0

    def test_authority_required(self, config, clock, sink):
        ledger = ShipmentLedger(config, clock, sink)
        with pytest.raises(AuthorityNotSet):
            ledger.initiate_shipment(ORIGIN, 1, DEST, 0, FULL_GEO)

    def test_capacity(self, shipments):
        shipments.set_capacity(1)
        shipments.initiate_shipment(ORIGIN, 1, DEST, 0, FULL_GEO)
        with pytest.raises(CapacityExceeded):
            shipments.initiate_shipment(ORIGIN, 1, DEST, 0, FULL_GEO)

    @pytest.mark.parametrize("batch_id", [None, -1, 1.5, True, "1"])
    def test_malformed_batch_id_charges_nothing(
        self, shipments, sink, batch_id,
    ):
        """A malformed batch id fails before the fee and id allocation."""
        with pytest.raises(InvalidInput) as exc_info:
            shipments.initiate_shipment(ORIGIN, batch_id, DEST, 0, FULL_GEO)
        assert exc_info.value.field == "batch_id"
        assert shipments.shipment_count() == 0
        assert sink.intents == []
        assert shipments.initiate_shipment(ORIGIN, 1, DEST, 0, FULL_GEO) == 0

    def test_non_integer_start_timestamp(self, shipments, sink):
        with pytest.raises(InvalidInput) as exc_info:
            shipments.initiate_shipment(ORIGIN, 1, DEST, 2.5, FULL_GEO)
        assert exc_info.value.field == "start_timestamp"
        assert sink.intents == []


class TestApprovals:
    """add_approver and approve_shipment."""

    def test_quorum_after_second_distinct_approval(self, shipments, shipment_id):
        """In transit exactly when the second distinct caller approves."""
        assert shipments.approve_shipment(X, shipment_id) is False
        assert shipments.get_shipment(shipment_id).status == ShipmentStatus.ACTIVE
        assert shipments.approve_shipment(Y, shipment_id) is True
        assert shipments.get_shipment(shipment_id).status == ShipmentStatus.IN_TRANSIT

    def test_quorum_not_reached_twice(self, shipments, shipment_id):
        in_transit(shipments, shipment_id)
        with pytest.raises(InvalidState):
            shipments.approve_shipment("ST5THIRD", shipment_id)

    def test_pre_registered_approver_then_quorum(self, shipments, shipment_id):
        """Add approver X, X approves, Y approves: quorum."""
        shipments.add_approver(ORIGIN, shipment_id, X)
        assert shipments.approval_count(shipment_id) == 1
        assert shipments.approve_shipment(X, shipment_id) is False
        assert shipments.approve_shipment(Y, shipment_id) is True
        assert shipments.get_shipment(shipment_id).status == ShipmentStatus.IN_TRANSIT
        assert shipments.approval_count(shipment_id) == 2

    def test_registered_slots_do_not_count_toward_quorum(self, shipments, shipment_id):
        shipments.add_approver(ORIGIN, shipment_id, X)
        shipments.add_approver(ORIGIN, shipment_id, Y)
        assert shipments.get_shipment(shipment_id).status == ShipmentStatus.ACTIVE
        assert [a.given for a in shipments.get_approvals(shipment_id)] == [False, False]

    def test_duplicate_approval(self, shipments, shipment_id):
        shipments.approve_shipment(X, shipment_id)
        with pytest.raises(DuplicateApproval):
            shipments.approve_shipment(X, shipment_id)
        assert shipments.approval_count(shipment_id) == 1

    def test_add_existing_approver(self, shipments, shipment_id):
        shipments.add_approver(ORIGIN, shipment_id, X)
        with pytest.raises(DuplicateApproval):
            shipments.add_approver(ORIGIN, shipment_id, X)

    def test_add_approver_after_approval(self, shipments, shipment_id):
        shipments.approve_shipment(X, shipment_id)
        with pytest.raises(DuplicateApproval):
            shipments.add_approver(ORIGIN, shipment_id, X)

    def test_add_approver_origin_only(self, shipments, shipment_id):
        with pytest.raises(Unauthorized):
            shipments.add_approver(DEST, shipment_id, X)

    def test_approver_slot_cap(self, shipments, shipment_id):
        for i in range(10):
            shipments.add_approver(ORIGIN, shipment_id, f"ST{i}SLOT")
        with pytest.raises(CapacityExceeded):
            shipments.add_approver(ORIGIN, shipment_id, "ST99LATE")
        with pytest.raises(CapacityExceeded):
            shipments.approve_shipment("ST99LATE", shipment_id)
        assert shipments.approval_count(shipment_id) == 10

    def test_unknown_shipment(self, shipments):
        with pytest.raises(NotFound):
            shipments.approve_shipment(X, 7)
        with pytest.raises(NotFound):
            shipments.add_approver(ORIGIN, 7, X)

    def test_configured_quorum(self, clock, sink):
        ledger = ShipmentLedger(LedgerConfig(approval_quorum=3), clock, sink)
        ledger.set_authority(AUTHORITY)
        sid = ledger.initiate_shipment(ORIGIN, 1, DEST, 0, FULL_GEO)
        assert ledger.approve_shipment(X, sid) is False
        assert ledger.approve_shipment(Y, sid) is False
        assert ledger.approve_shipment("ST5Z", sid) is True


class TestStatusChanges:
    """update_shipment_status, complete_shipment, dispute_shipment."""

    def test_complete_in_transit(self, shipments, shipment_id):
        in_transit(shipments, shipment_id)
        shipments.complete_shipment(DEST, shipment_id)
        shipment = shipments.get_shipment(shipment_id)
        assert shipment.status == ShipmentStatus.DELIVERED
        assert shipment.last_update.updater == DEST

    def test_complete_requires_in_transit(self, shipments, shipment_id):
        with pytest.raises(InvalidState):
            shipments.complete_shipment(DEST, shipment_id)

    def test_complete_destination_only(self, shipments, shipment_id):
        in_transit(shipments, shipment_id)
        with pytest.raises(Unauthorized):
            shipments.complete_shipment(ORIGIN, shipment_id)

    def test_update_status_any_to_any(self, shipments, clock, shipment_id):
        clock.set(3)
        shipments.update_shipment_status(DEST, shipment_id, "delivered", "Portland")
        shipments.update_shipment_status(ORIGIN, shipment_id, "active", "Seattle")
        shipment = shipments.get_shipment(shipment_id)
        assert shipment.status == ShipmentStatus.ACTIVE
        assert shipment.last_update.geo_update == "Seattle"
        assert shipment.last_update.updater == ORIGIN
        assert shipment.last_update.updated_at == 3

    def test_update_status_unknown_label(self, shipments, shipment_id):
        with pytest.raises(InvalidInput) as exc_info:
            shipments.update_shipment_status(ORIGIN, shipment_id, "lost", FULL_GEO)
        assert exc_info.value.field == "new_status"

    def test_update_status_bad_geo(self, shipments, shipment_id):
        with pytest.raises(InvalidInput):
            shipments.update_shipment_status(ORIGIN, shipment_id, "in-transit", "")

    def test_update_status_parties_only(self, shipments, shipment_id):
        with pytest.raises(Unauthorized):
            shipments.update_shipment_status(X, shipment_id, "in-transit", FULL_GEO)

    def test_dispute_from_any_status(self, shipments, shipment_id):
        in_transit(shipments, shipment_id)
        shipments.complete_shipment(DEST, shipment_id)
        shipments.dispute_shipment(ORIGIN, shipment_id, "damaged")
        shipment = shipments.get_shipment(shipment_id)
        assert shipment.status == ShipmentStatus.DISPUTED
        assert shipment.last_update.reason == "damaged"
        assert shipments.get_history(shipment_id)[-1].details["reason"] == "damaged"

    def test_dispute_parties_only(self, shipments, shipment_id):
        with pytest.raises(Unauthorized):
            shipments.dispute_shipment(X, shipment_id, "meddling")

    def test_dispute_with_non_text_reason_changes_nothing(
        self, shipments, shipment_id,
    ):
        with pytest.raises(InvalidInput) as exc_info:
            shipments.dispute_shipment(ORIGIN, shipment_id, 42)
        assert exc_info.value.field == "reason"
        shipment = shipments.get_shipment(shipment_id)
        assert shipment.status == ShipmentStatus.ACTIVE
        assert shipment.last_update is None
        assert len(shipments.get_history(shipment_id)) == 1


class TestHistoryAndQueries:
    """History entries and list_shipments."""

    def test_one_history_entry_per_mutation(self, shipments, shipment_id):
        shipments.add_approver(ORIGIN, shipment_id, X)
        in_transit(shipments, shipment_id)
        shipments.update_shipment_status(DEST, shipment_id, "in-transit", "Portland")
        shipments.complete_shipment(DEST, shipment_id)

        actions = [e.action for e in shipments.get_history(shipment_id)]
        assert actions == [
            HistoryAction.SHIPMENT_INITIATED.value,
            HistoryAction.APPROVER_ADDED.value,
            HistoryAction.SHIPMENT_APPROVED.value,
            HistoryAction.SHIPMENT_APPROVED.value,
            HistoryAction.SHIPMENT_STATUS_UPDATED.value,
            HistoryAction.SHIPMENT_COMPLETED.value,
        ]
        assert shipments.get_history(shipment_id)[3].details["quorum_reached"] is True

    def test_exists(self, shipments, shipment_id):
        assert shipments.shipment_exists(shipment_id) is True
        assert shipments.shipment_exists(shipment_id + 1) is False

    def test_list_shipments(self, shipments):
        shipments.initiate_shipment(ORIGIN, 1, DEST, 0, FULL_GEO)
        shipments.initiate_shipment(ORIGIN, 2, DEST, 0, FULL_GEO)
        shipments.initiate_shipment(DEST, 1, "ST9OTHER", 0, FULL_GEO)
        shipments.dispute_shipment(ORIGIN, 1, "late")

        assert [s.shipment_id for s in shipments.list_shipments(batch_id=1)] == [0, 2]
        assert [s.shipment_id for s in shipments.list_shipments(status="disputed")] == [1]
        assert [s.shipment_id for s in shipments.list_shipments(party="ST9OTHER")] == [2]
        assert [s.shipment_id for s in shipments.list_shipments(limit=1, offset=1)] == [1]
