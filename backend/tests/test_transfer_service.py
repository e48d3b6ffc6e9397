# Overview: Pytest coverage for the inter-store transfer workflow.

import pytest

from stockledger.models import ActivityLog, Inventory, InventoryHistory, ProductTransfer
from stockledger.services import stock_service, transfer_service
from stockledger.services.activity_service import (
    TRANSFER_CANCELLED,
    TRANSFER_COMPLETED,
    TRANSFER_INITIATED,
    TRANSFER_REJECTED,
)
from stockledger.services.history_service import validate_inventory_integrity
from stockledger.validation import (
    AssignmentNotFoundError,
    InsufficientInventoryError,
    InvalidQuantityError,
    InvalidTransferStatusError,
    InventoryNotFoundError,
    MissingFieldError,
    SameStoreError,
    TransferNotFoundError,
    ValidationError,
)

from conftest import ACTOR


@pytest.fixture
def stocked(db_session, store_a, store_b, make_product):
    """Tire-X with 10 units at store_a, assigned to store_b without stock."""
    return make_product(
        "Tire-X",
        store_assignments=[
            {"store_id": store_a.id, "initial_quantity": 10},
            {"store_id": store_b.id},
        ],
    )


def _inventory(db_session, product_id, store_id):
    return db_session.query(Inventory).filter_by(product_id=product_id, store_id=store_id).one()


def _initiate(product, store_a, store_b, quantity=4, **kwargs):
    return transfer_service.initiate_transfer(
        product_id=product["id"],
        from_store_id=store_a.id,
        to_store_id=store_b.id,
        quantity=quantity,
        actor_id=ACTOR,
        **kwargs,
    )


class TestInitiateTransfer:

    def test_initiate_moves_no_stock(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b, reason="rebalance")

        assert transfer["status"] == "PENDING"
        assert transfer["initiated_by"] == ACTOR
        assert transfer["reason"] == "rebalance"
        assert _inventory(db_session, stocked["id"], store_a.id).quantity == 10
        assert db_session.query(InventoryHistory).count() == 1

        log = db_session.query(ActivityLog).filter_by(action=TRANSFER_INITIATED).one()
        assert log.entity_id == transfer["id"]
        assert log.details["quantity"] == 4

    def test_same_store(self, db_session, store_a, stocked):
        with pytest.raises(SameStoreError):
            _initiate(stocked, store_a, store_a)

    def test_more_than_source_holds(self, db_session, store_a, store_b, stocked):
        with pytest.raises(InsufficientInventoryError):
            _initiate(stocked, store_a, store_b, quantity=11)
        assert db_session.query(ProductTransfer).count() == 0

    def test_source_without_stock(self, db_session, store_a, store_b, stocked):
        with pytest.raises(InventoryNotFoundError):
            _initiate(stocked, store_b, store_a)

    def test_destination_must_be_assigned(self, db_session, store_a, store_b, make_product):
        product = make_product("Tire-Y", store_assignments=[{"store_id": store_a.id, "initial_quantity": 5}])

        with pytest.raises(AssignmentNotFoundError):
            _initiate(product, store_a, store_b)

    @pytest.mark.parametrize("quantity", [0, -1, 2.5])
    def test_bad_quantity(self, db_session, store_a, store_b, stocked, quantity):
        with pytest.raises(InvalidQuantityError):
            _initiate(stocked, store_a, store_b, quantity=quantity)


class TestCompleteTransfer:

    def test_complete_moves_stock_with_history_at_both_stores(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)

        result = transfer_service.complete_transfer(transfer_id=transfer["id"], actor_id="user-2")

        assert result["transfer"]["status"] == "COMPLETED"
        assert result["transfer"]["completed_by"] == "user-2"
        assert result["source_inventory"]["quantity"] == 6
        assert result["destination_inventory"]["quantity"] == 4

        out_line = result["source_history"]
        assert out_line["change_type"] == "TRANSFER_OUT"
        assert (out_line["previous_quantity"], out_line["quantity_change"], out_line["new_quantity"]) == (10, -4, 6)
        in_line = result["destination_history"]
        assert in_line["change_type"] == "TRANSFER_IN"
        assert (in_line["previous_quantity"], in_line["quantity_change"], in_line["new_quantity"]) == (0, 4, 4)
        assert {out_line["reference_id"], in_line["reference_id"]} == {transfer["id"]}
        assert out_line["reference_type"] == "TRANSFER"

        assert db_session.query(ActivityLog).filter_by(action=TRANSFER_COMPLETED).count() == 1
        assert all(r["is_valid"] for r in validate_inventory_integrity())

    def test_source_shrank_since_initiation(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b, quantity=8)
        stock_service.adjust_inventory(
            product_id=stocked["id"], store_id=store_a.id, adjustment=-5,
            change_type="SALE", actor_id=ACTOR,
        )

        with pytest.raises(InsufficientInventoryError):
            transfer_service.complete_transfer(transfer_id=transfer["id"], actor_id=ACTOR)

        assert db_session.get(ProductTransfer, transfer["id"]).status == "PENDING"
        assert _inventory(db_session, stocked["id"], store_a.id).quantity == 5
        assert db_session.query(Inventory).filter_by(store_id=store_b.id).count() == 0

    def test_complete_twice(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)
        transfer_service.complete_transfer(transfer_id=transfer["id"], actor_id=ACTOR)

        with pytest.raises(InvalidTransferStatusError):
            transfer_service.complete_transfer(transfer_id=transfer["id"], actor_id=ACTOR)
        assert _inventory(db_session, stocked["id"], store_b.id).quantity == 4

    def test_unknown_transfer(self, db_session):
        with pytest.raises(TransferNotFoundError):
            transfer_service.complete_transfer(transfer_id="missing", actor_id=ACTOR)


class TestCancelTransfer:

    def test_cancel_pending(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b, reason="rebalance")

        cancelled = transfer_service.cancel_transfer(transfer_id=transfer["id"], actor_id="user-2")

        assert cancelled["status"] == "CANCELLED"
        assert cancelled["closed_by"] == "user-2"
        assert cancelled["reason"] == "rebalance"
        assert _inventory(db_session, stocked["id"], store_a.id).quantity == 10
        assert db_session.query(ActivityLog).filter_by(action=TRANSFER_CANCELLED).count() == 1

    def test_cannot_cancel_completed(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)
        transfer_service.complete_transfer(transfer_id=transfer["id"], actor_id=ACTOR)

        with pytest.raises(InvalidTransferStatusError):
            transfer_service.cancel_transfer(transfer_id=transfer["id"], actor_id=ACTOR)


class TestRejectTransfer:

    def test_reject_returns_stock(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)
        transfer_service.complete_transfer(transfer_id=transfer["id"], actor_id=ACTOR)

        result = transfer_service.reject_transfer(
            transfer_id=transfer["id"], actor_id="user-2", reason="damaged on arrival",
        )

        assert result["transfer"]["status"] == "REJECTED"
        assert result["transfer"]["reason"] == "damaged on arrival"
        assert result["source_inventory"]["quantity"] == 10
        assert result["destination_inventory"]["quantity"] == 0
        assert result["source_history"]["change_type"] == "TRANSFER_IN"
        assert result["destination_history"]["reference_type"] == "TRANSFER_REJECTION"

        assert db_session.query(InventoryHistory).filter_by(reference_id=transfer["id"]).count() == 4
        assert db_session.query(ActivityLog).filter_by(action=TRANSFER_REJECTED).count() == 1
        assert all(r["is_valid"] for r in validate_inventory_integrity())

    def test_reason_required(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)
        transfer_service.complete_transfer(transfer_id=transfer["id"], actor_id=ACTOR)

        with pytest.raises(MissingFieldError):
            transfer_service.reject_transfer(transfer_id=transfer["id"], actor_id=ACTOR, reason="  ")

    def test_only_completed_can_be_rejected(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)

        with pytest.raises(InvalidTransferStatusError):
            transfer_service.reject_transfer(transfer_id=transfer["id"], actor_id=ACTOR, reason="wrong item")

    def test_destination_already_sold_units(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)
        transfer_service.complete_transfer(transfer_id=transfer["id"], actor_id=ACTOR)
        stock_service.adjust_inventory(
            product_id=stocked["id"], store_id=store_b.id, adjustment=-1,
            change_type="SALE", actor_id=ACTOR,
        )

        with pytest.raises(InsufficientInventoryError):
            transfer_service.reject_transfer(transfer_id=transfer["id"], actor_id=ACTOR, reason="wrong item")
        assert db_session.get(ProductTransfer, transfer["id"]).status == "COMPLETED"


class TestTransferReads:

    def test_list_and_filters(self, db_session, store_a, store_b, stocked):
        first = _initiate(stocked, store_a, store_b, quantity=1)
        second = _initiate(stocked, store_a, store_b, quantity=2)
        transfer_service.cancel_transfer(transfer_id=first["id"], actor_id=ACTOR)

        everything = transfer_service.list_transfers()
        assert everything["total"] == 2

        pending = transfer_service.list_transfers({"status": "PENDING"})
        assert [t["id"] for t in pending["transfers"]] == [second["id"]]
        assert pending["transfers"][0]["from_store"]["name"] == "Alpha Depot"
        assert pending["transfers"][0]["product"]["name"] == "Tire-X"

        assert transfer_service.list_transfers({"to_store_id": store_a.id})["total"] == 0

    def test_list_rejects_unknown_filter(self, db_session):
        with pytest.raises(ValidationError):
            transfer_service.list_transfers({"colour": "red"})

    def test_pending_for_store(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)

        at_a = transfer_service.get_pending_transfers_for_store(store_a.id)
        at_b = transfer_service.get_pending_transfers_for_store(store_b.id)

        assert [t["id"] for t in at_a["outgoing"]] == [transfer["id"]]
        assert at_a["incoming"] == []
        assert [t["id"] for t in at_b["incoming"]] == [transfer["id"]]

    def test_get_transfer(self, db_session, store_a, store_b, stocked):
        transfer = _initiate(stocked, store_a, store_b)

        fetched = transfer_service.get_transfer(transfer["id"])
        assert fetched["to_store"]["id"] == store_b.id
        with pytest.raises(TransferNotFoundError):
            transfer_service.get_transfer("missing")
