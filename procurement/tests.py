"""Tests for the procurement app: purchase request workflow and endpoints."""

import datetime
import json

import pytest

from assets.models import Asset, AssetStatus
from core.exceptions import (
    ConflictError, InvalidTransition, NotFound, PermissionDenied, ValidationError
)
from core.models import ActivityLog
from inventory.ledger import StockLedger
from inventory.models import MovementType, StockMovement
from procurement import workflow
from procurement.models import AllocationTarget, ItemStatus, OrderType, RequestStatus
from procurement.services import PurchaseRequestWorkflow

JAN_2025 = datetime.date(2025, 1, 15)


@pytest.fixture
def service():
    return PurchaseRequestWorkflow()


@pytest.fixture
def new_request(service, requester):
    def _new(quantity=10, name="Router", brand="Mikrotik", **kwargs):
        return service.create(
            requester, [{"name": name, "brand": brand, "quantity": quantity}], **kwargs
        )
    return _new


def only_item(request):
    return request.items.get()


def assert_fully_registered(request):
    for item in request.items.all():
        assert request.registered_count(item) >= item.target_quantity


# ============================================================
# PURE RULES
# ============================================================


class TestTransitionTable:
    def test_terminal_statuses_have_no_exits(self):
        for status in (RequestStatus.COMPLETED, RequestStatus.REJECTED, RequestStatus.CANCELLED):
            assert workflow.TRANSITIONS[status] == frozenset()

    def test_assert_transition(self):
        workflow.assert_transition(RequestStatus.PENDING, RequestStatus.LOGISTIC_APPROVED)
        with pytest.raises(InvalidTransition):
            workflow.assert_transition(RequestStatus.COMPLETED, RequestStatus.PENDING)

    def test_registration_never_regresses(self):
        status = workflow.registration_status(
            RequestStatus.AWAITING_HANDOVER, AllocationTarget.INVENTORY, fully_registered=True
        )
        assert status == RequestStatus.AWAITING_HANDOVER

    def test_is_fully_registered(self):
        assert workflow.is_fully_registered({"1": 5, "2": 0}, {"1": 5})
        assert not workflow.is_fully_registered({"1": 5}, {"1": 4})


# ============================================================
# CREATE
# ============================================================


@pytest.mark.django_db
class TestCreate:
    def test_numbered_and_pending(self, new_request):
        request = new_request(request_date=JAN_2025)
        assert request.pk == "RO-202501-001"
        assert request.status == RequestStatus.PENDING
        assert only_item(request).item_status == ItemStatus.PENDING
        assert list(request.activity_log.values_list("action", flat=True)) == ["CREATE"]

    def test_sequence_continues(self, new_request):
        new_request(request_date=JAN_2025)
        assert new_request(request_date=JAN_2025).pk == "RO-202501-002"

    @pytest.mark.parametrize("items", [
        [],
        [{"name": "Router", "quantity": 0}],
        [{"name": "", "quantity": 1}],
        [{"name": "Router", "quantity": "2"}],
        ["Router"],
    ])
    def test_invalid_items(self, service, requester, items):
        with pytest.raises(ValidationError):
            service.create(requester, items)

    def test_project_order_needs_project_name(self, new_request):
        with pytest.raises(ValidationError):
            new_request(order_type=OrderType.PROJECT_BASED)


# ============================================================
# LOGISTIC REVIEW
# ============================================================


@pytest.mark.django_db
class TestLogisticApproval:
    def test_stock_allocated_usage_awaits_handover(self, service, new_request, logistik):
        request = new_request(quantity=10, request_date=JAN_2025)
        item = only_item(request)
        request = service.approve(request.pk, {item.pk: "stock_allocated"}, actor=logistik)

        assert request.pk == "RO-202501-001"
        assert request.status == RequestStatus.AWAITING_HANDOVER
        assert request.partially_registered_items == {str(item.pk): 10}
        assert request.is_registered
        assert request.logistic_approver == "Admin Logistik"
        assert_fully_registered(request)

        request = service.register_assets(request.pk, item.pk, 10, actor=logistik)
        assert request.status == RequestStatus.AWAITING_HANDOVER
        assert_fully_registered(request)

    def test_stock_allocated_inventory_completes(self, service, new_request, logistik):
        request = new_request(quantity=10, allocation_target=AllocationTarget.INVENTORY)
        request = service.approve(request.pk, {only_item(request).pk: "stock_allocated"}, actor=logistik)
        assert request.status == RequestStatus.COMPLETED
        assert request.completed_by == "Admin Logistik"
        assert_fully_registered(request)

    def test_undecided_items_use_stock_when_available(self, service, new_request, make_assets, logistik):
        make_assets("Router", "Mikrotik", count=3)
        request = service.approve(new_request(quantity=2).pk, actor=logistik)
        assert only_item(request).item_status == ItemStatus.STOCK_ALLOCATED
        assert request.status == RequestStatus.AWAITING_HANDOVER

    def test_lines_of_one_identity_share_storage(self, service, requester, make_assets, logistik):
        make_assets("Router", "Mikrotik", count=1)
        request = service.create(requester, [
            {"name": "Router", "brand": "Mikrotik", "quantity": 1},
            {"name": "Router", "brand": "Mikrotik", "quantity": 1},
        ])
        first, second = request.items.order_by("id")
        request = service.approve(request.pk, actor=logistik)

        first.refresh_from_db()
        second.refresh_from_db()
        assert first.item_status == ItemStatus.STOCK_ALLOCATED
        assert second.item_status == ItemStatus.PROCUREMENT_NEEDED
        assert request.status == RequestStatus.LOGISTIC_APPROVED
        assert request.partially_registered_items == {str(first.pk): 1}
        assert not request.is_registered

    def test_enough_storage_for_every_line(self, service, requester, make_assets, logistik):
        make_assets("Router", "Mikrotik", count=3)
        request = service.create(requester, [
            {"name": "Router", "brand": "Mikrotik", "quantity": 1},
            {"name": "Router", "brand": "Mikrotik", "quantity": 2},
        ])
        request = service.approve(request.pk, actor=logistik)
        assert set(request.items.values_list("item_status", flat=True)) == {ItemStatus.STOCK_ALLOCATED}
        assert request.status == RequestStatus.AWAITING_HANDOVER

    def test_undecided_items_need_procurement_without_stock(self, service, new_request, make_assets, logistik):
        make_assets("Router", "Mikrotik", count=3)
        request = service.approve(new_request(quantity=5).pk, actor=logistik)
        assert only_item(request).item_status == ItemStatus.PROCUREMENT_NEEDED
        assert request.status == RequestStatus.LOGISTIC_APPROVED

    def test_all_rejected_rejects_request(self, service, new_request, logistik):
        request = new_request()
        request = service.approve(request.pk, {only_item(request).pk: "rejected"}, actor=logistik)
        assert request.status == RequestStatus.REJECTED
        assert request.rejection_reason == "All items rejected"

    def test_zero_quantity_means_rejected(self, service, new_request, logistik):
        request = new_request()
        item = only_item(request)
        request = service.approve(
            request.pk, [{"item_id": item.pk, "status": "approved", "approved_quantity": 0}], actor=logistik
        )
        assert only_item(request).item_status == ItemStatus.REJECTED
        assert request.status == RequestStatus.REJECTED

    def test_less_than_requested_is_partial(self, service, new_request, logistik):
        request = new_request(quantity=10)
        item = only_item(request)
        request = service.approve(
            request.pk, {item.pk: {"status": "approved", "approved_quantity": 4}}, actor=logistik
        )
        item.refresh_from_db()
        assert item.item_status == ItemStatus.PARTIAL
        assert item.approved_quantity == 4
        assert request.status == RequestStatus.LOGISTIC_APPROVED

    def test_mixed_request_credits_stock_items(self, service, requester, logistik):
        request = service.create(requester, [
            {"name": "Router", "brand": "Mikrotik", "quantity": 2},
            {"name": "Switch", "brand": "Cisco", "quantity": 1},
        ])
        router, switch = request.items.order_by("id")
        request = service.approve(
            request.pk, {router.pk: "stock_allocated", switch.pk: "procurement_needed"}, actor=logistik
        )
        assert request.status == RequestStatus.LOGISTIC_APPROVED
        assert request.partially_registered_items == {str(router.pk): 2}
        assert not request.is_registered

    def test_unknown_item_rejected(self, service, new_request, logistik):
        request = new_request()
        with pytest.raises(ValidationError):
            service.approve(request.pk, {"999999": "approved"}, actor=logistik)

    def test_over_approval_rejected(self, service, new_request, logistik):
        request = new_request(quantity=2)
        with pytest.raises(ValidationError):
            service.approve(
                request.pk, {only_item(request).pk: {"status": "approved", "approved_quantity": 3}},
                actor=logistik,
            )

    def test_cannot_approve_twice(self, service, new_request, logistik):
        request = new_request()
        service.approve(request.pk, {only_item(request).pk: "stock_allocated"}, actor=logistik)
        with pytest.raises(InvalidTransition):
            service.approve(request.pk, actor=logistik)

    def test_stale_version(self, service, new_request, logistik):
        request = new_request()
        with pytest.raises(ConflictError):
            service.approve(request.pk, actor=logistik, expected_version=request.version + 1)

    def test_missing_request(self, service, logistik):
        with pytest.raises(NotFound):
            service.approve("RO-209901-001", actor=logistik)


# ============================================================
# PURCHASE PATH
# ============================================================


@pytest.fixture
def approved_request(service, new_request, logistik, ceo):
    """A 5-unit request taken through logistic and final approval."""
    request = new_request(quantity=5)
    item = only_item(request)
    service.approve(request.pk, {item.pk: "procurement_needed"}, actor=logistik)
    service.submit_for_final_approval(
        request.pk, {item.pk: {"price": 1500000, "vendor": "PT Vendor", "po_number": "PO-1"}}, actor=logistik
    )
    return service.approve(request.pk, actor=ceo)


@pytest.mark.django_db
class TestPurchasePath:
    def test_final_approval(self, approved_request):
        assert approved_request.status == RequestStatus.APPROVED
        assert approved_request.final_approver == "Direktur Utama"
        item_id = str(only_item(approved_request).pk)
        assert approved_request.purchase_details[item_id]["vendor"] == "PT Vendor"

    def test_final_rejection_of_every_item(self, service, new_request, logistik, ceo):
        request = new_request(quantity=5)
        item = only_item(request)
        service.approve(request.pk, {item.pk: "procurement_needed"}, actor=logistik)
        service.submit_for_final_approval(request.pk, actor=logistik)
        request = service.approve(request.pk, {item.pk: "rejected"}, actor=ceo)
        assert request.status == RequestStatus.REJECTED

    @pytest.mark.parametrize("target, expected", [
        (AllocationTarget.USAGE, RequestStatus.AWAITING_HANDOVER),
        (AllocationTarget.INVENTORY, RequestStatus.COMPLETED),
    ])
    def test_final_rejection_of_purchase_leaves_stock_items(
        self, service, requester, logistik, ceo, target, expected
    ):
        request = service.create(requester, [
            {"name": "Switch", "brand": "Cisco", "quantity": 2},
            {"name": "Server", "brand": "Dell", "quantity": 1},
        ], allocation_target=target)
        switch, server = request.items.order_by("id")
        service.approve(
            request.pk, {switch.pk: "stock_allocated", server.pk: "procurement_needed"}, actor=logistik
        )
        service.submit_for_final_approval(request.pk, actor=logistik)

        request = service.approve(request.pk, {server.pk: "rejected"}, actor=ceo)
        assert request.status == expected
        assert request.is_registered
        assert request.partially_registered_items == {str(switch.pk): 2}
        assert_fully_registered(request)

    def test_negative_price_rejected(self, service, new_request, logistik):
        request = new_request()
        item = only_item(request)
        service.approve(request.pk, {item.pk: "procurement_needed"}, actor=logistik)
        with pytest.raises(ValidationError):
            service.submit_for_final_approval(request.pk, {item.pk: {"price": -1}}, actor=logistik)

    def test_arrive_register_handover(self, service, approved_request, logistik, requester):
        item = only_item(approved_request)
        request = service.mark_arrived(approved_request.pk, actor=logistik)
        assert request.status == RequestStatus.ARRIVED

        request = service.register_assets(request.pk, item.pk, 2, actor=logistik)
        assert request.status == RequestStatus.ARRIVED
        request = service.register_assets(request.pk, item.pk, 3, actor=logistik)
        assert request.status == RequestStatus.AWAITING_HANDOVER
        assert_fully_registered(request)

        asset_ids = list(Asset.objects.filter(origin_document=request.pk).values_list("pk", flat=True))
        assert len(asset_ids) == 5
        request = service.handover(request.pk, asset_ids, actor=logistik)
        assert request.status == RequestStatus.COMPLETED
        assert set(Asset.objects.values_list("status", flat=True)) == {AssetStatus.IN_USE}
        assert set(Asset.objects.values_list("current_holder_user", flat=True)) == {requester.pk}
        assert StockLedger().current_balance("Router", "Mikrotik") == 0
        assert list(
            StockMovement.objects.order_by("id").values_list("movement_type", "quantity")
        ) == [
            (MovementType.IN_PURCHASE, 2),
            (MovementType.IN_PURCHASE, 3),
            (MovementType.OUT_HANDOVER, 5),
        ]

    def test_registration_is_additive(self, service, new_request, logistik, ceo):
        def registered_after(counts):
            request = new_request(quantity=5)
            item = only_item(request)
            service.approve(request.pk, {item.pk: "procurement_needed"}, actor=logistik)
            for count in counts:
                request = service.register_assets(request.pk, item.pk, count, actor=logistik)
            return request.partially_registered_items[str(item.pk)], request.status

        assert registered_after([2, 3]) == registered_after([5])

    def test_registration_at_logistic_approved_can_complete(self, service, new_request, logistik):
        request = new_request(quantity=2, allocation_target=AllocationTarget.INVENTORY)
        item = only_item(request)
        service.approve(request.pk, {item.pk: "procurement_needed"}, actor=logistik)
        request = service.register_assets(request.pk, item.pk, 2, actor=logistik)
        assert request.status == RequestStatus.COMPLETED

    def test_negative_count(self, service, approved_request, logistik):
        with pytest.raises(ValidationError):
            service.register_assets(approved_request.pk, only_item(approved_request).pk, -1, actor=logistik)

    def test_register_before_approval(self, service, new_request, logistik):
        request = new_request()
        with pytest.raises(InvalidTransition):
            service.register_assets(request.pk, only_item(request).pk, 1, actor=logistik)

    def test_register_unknown_item(self, service, approved_request, logistik):
        with pytest.raises(NotFound):
            service.register_assets(approved_request.pk, 999999, 1, actor=logistik)

    def test_register_rejected_item(self, service, requester, logistik):
        request = service.create(requester, [
            {"name": "Router", "quantity": 1},
            {"name": "Switch", "quantity": 1},
        ])
        router, switch = request.items.order_by("id")
        service.approve(request.pk, {router.pk: "procurement_needed", switch.pk: "rejected"}, actor=logistik)
        with pytest.raises(ValidationError):
            service.register_assets(request.pk, switch.pk, 1, actor=logistik)

    def test_register_on_completed_is_noop(self, service, new_request, logistik):
        request = new_request(quantity=1, allocation_target=AllocationTarget.INVENTORY)
        item = only_item(request)
        request = service.approve(request.pk, {item.pk: "stock_allocated"}, actor=logistik)
        version = request.version

        request = service.register_assets(request.pk, item.pk, 4, actor=logistik)
        assert request.status == RequestStatus.COMPLETED
        assert request.version == version
        assert Asset.objects.count() == 0

    def test_zero_count_registers_nothing(self, service, approved_request, logistik):
        request = service.register_assets(approved_request.pk, only_item(approved_request).pk, 0, actor=logistik)
        assert request.status == RequestStatus.APPROVED
        assert Asset.objects.count() == 0
        assert StockMovement.objects.count() == 0


# ============================================================
# HANDOVER
# ============================================================


@pytest.mark.django_db
class TestHandover:
    @pytest.fixture
    def awaiting(self, service, new_request, make_assets, logistik):
        make_assets("Router", "Mikrotik", count=2)
        request = new_request(quantity=2)
        return service.approve(request.pk, {only_item(request).pk: "stock_allocated"}, actor=logistik)

    def test_to_customer(self, service, awaiting, customer, logistik):
        ids = list(Asset.objects.values_list("pk", flat=True))
        service.handover(awaiting.pk, ids, actor=logistik, recipient=customer)
        assert set(Asset.objects.values_list("current_holder_customer", flat=True)) == {customer.pk}

    def test_other_identity_refused(self, service, awaiting, make_assets, logistik):
        switch = make_assets("Switch", "Cisco")[0]
        with pytest.raises(ValidationError):
            service.handover(awaiting.pk, [switch.pk], actor=logistik)

    def test_asset_in_use_refused(self, service, awaiting, other_user, logistik):
        from assets.ledger import CustodyLedger

        asset = Asset.objects.first()
        CustodyLedger().update_one(asset.pk, {"status": "IN_USE", "current_holder_user": other_user}, logistik)
        with pytest.raises(ValidationError):
            service.handover(awaiting.pk, [asset.pk], actor=logistik)

    def test_missing_asset(self, service, awaiting, logistik):
        with pytest.raises(NotFound):
            service.handover(awaiting.pk, ["AST-209901-001"], actor=logistik)

    def test_not_awaiting_handover(self, service, new_request, make_assets, logistik):
        asset = make_assets()[0]
        with pytest.raises(InvalidTransition):
            service.handover(new_request().pk, [asset.pk], actor=logistik)


# ============================================================
# REJECT / CANCEL
# ============================================================


@pytest.mark.django_db
class TestRejectAndCancel:
    def test_reject_is_idempotent(self, service, new_request, logistik, ceo):
        request = new_request()
        service.reject(request.pk, "Budget frozen", actor=logistik)
        logs = ActivityLog.for_entity(request).count()

        request = service.reject(request.pk, "Another reason", actor=ceo)
        assert request.status == RequestStatus.REJECTED
        assert request.rejection_reason == "Budget frozen"
        assert request.rejected_by == "Admin Logistik"
        assert ActivityLog.for_entity(request).count() == logs

    def test_reject_needs_reason(self, service, new_request, logistik):
        with pytest.raises(ValidationError):
            service.reject(new_request().pk, "  ", actor=logistik)

    def test_reject_completed(self, service, new_request, logistik):
        request = new_request(allocation_target=AllocationTarget.INVENTORY)
        service.approve(request.pk, {only_item(request).pk: "stock_allocated"}, actor=logistik)
        with pytest.raises(InvalidTransition):
            service.reject(request.pk, "Too late", actor=logistik)

    def test_reject_cancelled(self, service, new_request, requester, logistik):
        request = new_request()
        service.cancel(request.pk, requester)
        with pytest.raises(InvalidTransition):
            service.reject(request.pk, "Too late", actor=logistik)

    def test_cancel_rejected(self, service, new_request, requester, logistik):
        request = new_request()
        service.reject(request.pk, "Budget frozen", actor=logistik)
        with pytest.raises(InvalidTransition):
            service.cancel(request.pk, requester)

    def test_reject_after_final_approval(self, service, approved_request, ceo):
        request = service.reject(approved_request.pk, "Vendor unavailable", actor=ceo)
        assert request.status == RequestStatus.REJECTED

    def test_cancel_by_requester(self, service, new_request, requester):
        request = service.cancel(new_request().pk, requester, reason="Not needed")
        assert request.status == RequestStatus.CANCELLED
        assert request.cancellation_reason == "Not needed"
        # Cancelling again changes nothing
        assert service.cancel(request.pk, requester).version == request.version

    def test_cancel_by_someone_else(self, service, new_request, other_user):
        with pytest.raises(PermissionDenied):
            service.cancel(new_request().pk, other_user)

    def test_cancel_after_review(self, service, new_request, requester, logistik):
        request = new_request()
        service.approve(request.pk, {only_item(request).pk: "procurement_needed"}, actor=logistik)
        with pytest.raises(InvalidTransition):
            service.cancel(request.pk, requester)


# ============================================================
# ENDPOINTS
# ============================================================


@pytest.mark.django_db
class TestRequestEndpoints:
    def send(self, client, method, path, body=None):
        return getattr(client, method)(path, data=json.dumps(body or {}), content_type="application/json")

    def test_create_and_fetch(self, requester_client):
        response = self.send(requester_client, "post", "/requests", {
            "items": [{"name": "Router", "brand": "Mikrotik", "quantity": 2}],
            "allocation_target": "USAGE",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["items"][0]["item_status"] == "pending"

        response = requester_client.get(f"/requests/{body['id']}")
        assert response.status_code == 200
        assert response.json()["version"] == 1

    def test_approve(self, logistik_client, new_request):
        request = new_request(quantity=3)
        item = only_item(request)
        response = self.send(logistik_client, "patch", f"/requests/{request.pk}/approve", {
            "item_statuses": {str(item.pk): "stock_allocated"}, "version": request.version,
        })
        assert response.status_code == 200
        assert response.json()["status"] == "AWAITING_HANDOVER"
        assert response.json()["items"][0]["registered"] == 3

    def test_invalid_transition_is_409(self, logistik_client, new_request, service, logistik):
        request = new_request()
        service.reject(request.pk, "No", actor=logistik)
        response = self.send(logistik_client, "patch", f"/requests/{request.pk}/arrive")
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_cancel_by_other_is_403(self, logistik_client, new_request):
        response = self.send(logistik_client, "patch", f"/requests/{new_request().pk}/cancel")
        assert response.status_code == 403

    def test_validation_error_is_400(self, requester_client):
        response = self.send(requester_client, "post", "/requests", {"items": []})
        assert response.status_code == 400
        assert response.json() == {"error": "validation_error", "detail": "At least one item is required"}

    def test_unknown_request_is_404(self, requester_client):
        assert requester_client.get("/requests/RO-209901-001").status_code == 404

    def test_malformed_json_is_400(self, requester_client):
        response = requester_client.post("/requests", data="{not json", content_type="application/json")
        assert response.status_code == 400

    def test_register_assets_lists_assets(self, logistik_client, service, new_request, logistik):
        request = new_request(quantity=2)
        item = only_item(request)
        service.approve(request.pk, {item.pk: "procurement_needed"}, actor=logistik)
        response = self.send(logistik_client, "post", f"/requests/{request.pk}/register-assets", {
            "item_id": item.pk, "count": 2, "category": "Perangkat Jaringan",
        })
        assert response.status_code == 200
        assert len(response.json()["assets"]) == 2
        assert response.json()["status"] == "AWAITING_HANDOVER"
