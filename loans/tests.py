"""Tests for the loans app: loan workflow, return reconciliation and endpoints."""

import datetime
import json
from io import StringIO

import pytest
from django.core.management import call_command

from assets.ledger import CustodyLedger
from assets.models import Asset, AssetCondition, AssetStatus
from core.exceptions import ConflictError, InvalidTransition, NotFound, ValidationError
from core.models import ActivityLog
from inventory.ledger import StockLedger
from inventory.models import MovementType, StockMovement
from loans import workflow
from loans.models import AssetReturn, LoanStatus, ReturnItemStatus, ReturnStatus
from loans.services import LoanWorkflow, ReturnReconciliation, parse_return_date
from procurement.models import ItemStatus


@pytest.fixture
def loans():
    return LoanWorkflow()


@pytest.fixture
def reconciliation():
    return ReturnReconciliation()


@pytest.fixture
def laptops(make_assets):
    return [asset.pk for asset in make_assets("Laptop", "Lenovo", count=2)]


@pytest.fixture
def pending_loan(loans, requester):
    return loans.create(
        requester,
        [{"name": "Laptop", "brand": "Lenovo", "quantity": 2, "return_date": "2025-02-01"}],
        purpose="Site survey",
    )


@pytest.fixture
def on_loan(loans, pending_loan, laptops, logistik):
    item = pending_loan.items.get()
    return loans.approve(pending_loan.pk, {item.pk: laptops}, actor=logistik)


def status_of(asset_id):
    return Asset.objects.get(pk=asset_id).status


# ============================================================
# PURE RULES
# ============================================================


class TestReconcile:
    def test_all_accepted_completes(self):
        result = workflow.reconcile(
            [("A1", "GOOD"), ("A2", "NEW")], ["A1", "A2"], [], ["A1", "A2"], "RTN-1", "Gudang"
        )
        assert result.return_status == ReturnStatus.COMPLETED
        assert result.loan_status == LoanStatus.RETURNED
        assert result.returned_ids == ["A1", "A2"]

    def test_none_accepted_rejects(self):
        result = workflow.reconcile([("A1", "GOOD")], [], [], ["A1"], "RTN-1", "Gudang")
        assert result.return_status == ReturnStatus.REJECTED
        assert result.loan_status == LoanStatus.ON_LOAN
        assert result.item_statuses == {"A1": ReturnItemStatus.REJECTED}

    def test_damaged_goes_to_damaged(self):
        result = workflow.reconcile([("A1", "MAJOR_DAMAGE")], ["A1"], [], ["A1"], "RTN-1", "Gudang")
        (event,) = result.events
        assert event.status == AssetStatus.DAMAGED
        assert event.condition == "MAJOR_DAMAGE"

    def test_previous_returns_count(self):
        result = workflow.reconcile([("A2", "GOOD")], ["A2"], ["A1"], ["A1", "A2"], "RTN-2", "Gudang")
        assert result.loan_status == LoanStatus.RETURNED
        assert result.returned_ids == ["A1", "A2"]

    def test_unknown_accepted_id(self):
        with pytest.raises(ValidationError):
            workflow.reconcile([("A1", "GOOD")], ["A9"], [], ["A1"], "RTN-1", "Gudang")


class TestParseReturnDate:
    def test_iso_string(self):
        assert parse_return_date("2025-02-01") == datetime.date(2025, 2, 1)

    def test_datetime_string(self):
        assert parse_return_date("2025-02-01T10:30:00") == datetime.date(2025, 2, 1)

    def test_empty(self):
        assert parse_return_date(None) is None

    def test_garbage(self):
        with pytest.raises(ValidationError):
            parse_return_date("next week")


# ============================================================
# CREATE / APPROVE / REJECT
# ============================================================


@pytest.mark.django_db
class TestLoanApproval:
    def test_create(self, pending_loan):
        assert pending_loan.pk.startswith("RL-")
        assert pending_loan.status == LoanStatus.PENDING
        assert pending_loan.items.get().return_date == datetime.date(2025, 2, 1)

    def test_approve_lends_assets(self, on_loan, laptops, requester):
        assert on_loan.status == LoanStatus.ON_LOAN
        assert on_loan.all_assigned_ids == laptops
        assert on_loan.approver == "Admin Logistik"
        for asset in Asset.objects.filter(pk__in=laptops):
            assert asset.status == AssetStatus.IN_USE
            assert asset.current_holder_user == requester
        item = on_loan.items.get()
        assert item.item_status == ItemStatus.APPROVED
        assert item.approved_quantity == 2

    def test_approve_books_stock_out(self, on_loan):
        movement = StockMovement.objects.get()
        assert movement.movement_type == MovementType.OUT_LOAN
        assert movement.quantity == 2
        assert movement.reference_id == on_loan.pk

    def test_all_items_rejected(self, loans, pending_loan, laptops, logistik):
        item = pending_loan.items.get()
        loan = loans.approve(pending_loan.pk, item_statuses={item.pk: "rejected"}, actor=logistik)
        assert loan.status == LoanStatus.REJECTED
        assert loan.rejection_reason == "All items rejected"
        assert {status_of(asset_id) for asset_id in laptops} == {AssetStatus.IN_STORAGE}

    def test_asset_not_in_storage(self, loans, pending_loan, laptops, logistik):
        CustodyLedger().update_one(laptops[0], {"status": "IN_REPAIR"}, logistik)
        with pytest.raises(ValidationError):
            loans.approve(pending_loan.pk, {pending_loan.items.get().pk: laptops}, actor=logistik)
        assert status_of(laptops[1]) == AssetStatus.IN_STORAGE

    def test_missing_asset(self, loans, pending_loan, logistik):
        with pytest.raises(NotFound):
            loans.approve(pending_loan.pk, {pending_loan.items.get().pk: ["AST-209901-001"]}, actor=logistik)

    def test_asset_listed_twice(self, loans, pending_loan, laptops, logistik):
        with pytest.raises(ValidationError):
            loans.approve(
                pending_loan.pk, {pending_loan.items.get().pk: [laptops[0], laptops[0]]}, actor=logistik
            )

    def test_more_assets_than_approved(self, loans, pending_loan, laptops, logistik):
        item = pending_loan.items.get()
        with pytest.raises(ValidationError):
            loans.approve(
                pending_loan.pk, {item.pk: laptops},
                item_statuses={item.pk: {"status": "approved", "approved_quantity": 1}},
                actor=logistik,
            )

    def test_no_assets(self, loans, pending_loan, logistik):
        with pytest.raises(ValidationError):
            loans.approve(pending_loan.pk, {}, actor=logistik)

    def test_approve_twice(self, loans, on_loan, laptops, logistik):
        with pytest.raises(InvalidTransition):
            loans.approve(on_loan.pk, {on_loan.items.get().pk: laptops}, actor=logistik)

    def test_stale_version(self, loans, pending_loan, laptops, logistik):
        with pytest.raises(ConflictError):
            loans.approve(
                pending_loan.pk, {pending_loan.items.get().pk: laptops},
                actor=logistik, expected_version=pending_loan.version + 1,
            )

    def test_reject_is_idempotent(self, loans, pending_loan, logistik):
        loans.reject(pending_loan.pk, "No stock", actor=logistik)
        logs = ActivityLog.for_entity(pending_loan).count()
        loan = loans.reject(pending_loan.pk, "Changed my mind", actor=logistik)
        assert loan.status == LoanStatus.REJECTED
        assert loan.rejection_reason == "No stock"
        assert ActivityLog.for_entity(loan).count() == logs

    def test_reject_on_loan(self, loans, on_loan, logistik):
        with pytest.raises(InvalidTransition):
            loans.reject(on_loan.pk, "Too late", actor=logistik)


# ============================================================
# RETURNS
# ============================================================


@pytest.mark.django_db
class TestSubmitReturn:
    def test_flags_assets_awaiting_return(self, loans, on_loan, laptops, requester):
        asset_return = loans.submit_return(on_loan.pk, laptops, actor=requester)
        assert asset_return.pk.startswith("RTN-")
        assert asset_return.status == ReturnStatus.PENDING_APPROVAL
        assert asset_return.returned_by == "Budi Santoso"
        assert set(asset_return.items.values_list("status", flat=True)) == {ReturnItemStatus.PENDING}
        for asset in Asset.objects.filter(pk__in=laptops):
            assert asset.status == AssetStatus.AWAITING_RETURN
            assert asset.current_holder_user == requester
        on_loan.refresh_from_db()
        assert on_loan.status == LoanStatus.AWAITING_RETURN

    def test_condition_recorded(self, loans, on_loan, laptops, requester):
        asset_return = loans.submit_return(
            on_loan.pk,
            [{"asset_id": laptops[0], "returned_condition": "MINOR_DAMAGE", "notes": "Scratched lid"}],
            actor=requester,
        )
        item = asset_return.items.get()
        assert item.returned_condition == AssetCondition.MINOR_DAMAGE
        assert item.notes == "Scratched lid"

    def test_loan_must_be_on_loan(self, loans, pending_loan, laptops, requester):
        with pytest.raises(InvalidTransition):
            loans.submit_return(pending_loan.pk, laptops, actor=requester)

    def test_foreign_asset(self, loans, on_loan, make_assets, requester):
        stranger = make_assets("Laptop", "Lenovo")[0]
        with pytest.raises(ValidationError):
            loans.submit_return(on_loan.pk, [stranger.pk], actor=requester)
        assert AssetReturn.objects.count() == 0

    def test_duplicate_asset(self, loans, on_loan, laptops, requester):
        with pytest.raises(ValidationError):
            loans.submit_return(on_loan.pk, [laptops[0], laptops[0]], actor=requester)

    def test_unknown_condition(self, loans, on_loan, laptops, requester):
        with pytest.raises(ValidationError):
            loans.submit_return(
                on_loan.pk, [{"asset_id": laptops[0], "returned_condition": "LOST"}], actor=requester
            )

    def test_nothing_returned(self, loans, on_loan, requester):
        with pytest.raises(ValidationError):
            loans.submit_return(on_loan.pk, [], actor=requester)


@pytest.mark.django_db
class TestVerifyReturn:
    def test_partial_then_full_return(self, loans, reconciliation, on_loan, laptops, requester, logistik):
        first, second = laptops

        # First cycle: only one laptop is accepted
        asset_return = loans.submit_return(on_loan.pk, laptops, actor=requester)
        asset_return = reconciliation.verify(asset_return.pk, [first], verifier=logistik)
        assert asset_return.status == ReturnStatus.APPROVED
        assert asset_return.verified_by == "Admin Logistik"
        assert status_of(first) == AssetStatus.IN_STORAGE
        assert Asset.objects.get(pk=first).current_holder is None
        assert status_of(second) == AssetStatus.IN_USE
        assert Asset.objects.get(pk=second).current_holder_user == requester
        loan = loans.get(on_loan.pk)
        assert loan.status == LoanStatus.ON_LOAN
        assert loan.returned_asset_ids == [first]
        assert loan.actual_return_date is None

        # Second cycle: the other laptop comes back
        asset_return = loans.submit_return(on_loan.pk, [second], actor=requester)
        asset_return = reconciliation.verify(asset_return.pk, [second], verifier=logistik)
        assert asset_return.status == ReturnStatus.COMPLETED
        loan = loans.get(on_loan.pk)
        assert loan.status == LoanStatus.RETURNED
        assert set(loan.returned_asset_ids) >= set(loan.all_assigned_ids)
        assert loan.actual_return_date is not None
        assert {status_of(asset_id) for asset_id in laptops} == {AssetStatus.IN_STORAGE}

    def test_damaged_return(self, loans, reconciliation, on_loan, laptops, requester, logistik):
        asset_return = loans.submit_return(
            on_loan.pk,
            [{"asset_id": asset_id, "returned_condition": "MAJOR_DAMAGE"} for asset_id in laptops],
            actor=requester,
        )
        reconciliation.verify(asset_return.pk, laptops, verifier=logistik)
        for asset in Asset.objects.filter(pk__in=laptops):
            assert asset.status == AssetStatus.DAMAGED
            assert asset.condition == AssetCondition.MAJOR_DAMAGE
            assert asset.current_holder is None
            assert asset.location == "Gudang"

    def test_everything_rejected(self, loans, reconciliation, on_loan, laptops, requester, logistik):
        asset_return = loans.submit_return(on_loan.pk, laptops, actor=requester)
        asset_return = reconciliation.verify(asset_return.pk, [], verifier=logistik)
        assert asset_return.status == ReturnStatus.REJECTED
        assert set(asset_return.items.values_list("status", flat=True)) == {ReturnItemStatus.REJECTED}
        assert {status_of(asset_id) for asset_id in laptops} == {AssetStatus.IN_USE}
        assert loans.get(on_loan.pk).status == LoanStatus.ON_LOAN

    def test_accepted_books_stock_back(self, loans, reconciliation, on_loan, laptops, requester, logistik):
        asset_return = loans.submit_return(on_loan.pk, laptops, actor=requester)
        reconciliation.verify(asset_return.pk, laptops[:1], verifier=logistik)
        movement = StockMovement.objects.get(movement_type=MovementType.IN_RETURN)
        assert movement.quantity == 1
        assert movement.reference_id == asset_return.pk
        assert StockLedger().current_balance("Laptop", "Lenovo") == 1

    def test_accepted_id_outside_return(self, loans, reconciliation, on_loan, laptops, requester, logistik):
        asset_return = loans.submit_return(on_loan.pk, laptops[:1], actor=requester)
        with pytest.raises(ValidationError):
            reconciliation.verify(asset_return.pk, laptops[1:], verifier=logistik)
        assert reconciliation.get(asset_return.pk).status == ReturnStatus.PENDING_APPROVAL

    def test_verify_twice(self, loans, reconciliation, on_loan, laptops, requester, logistik):
        asset_return = loans.submit_return(on_loan.pk, laptops, actor=requester)
        reconciliation.verify(asset_return.pk, laptops, verifier=logistik)
        with pytest.raises(InvalidTransition):
            reconciliation.verify(asset_return.pk, laptops, verifier=logistik)

    def test_returned_asset_cannot_be_returned_again(
        self, loans, reconciliation, on_loan, laptops, requester, logistik
    ):
        asset_return = loans.submit_return(on_loan.pk, laptops[:1], actor=requester)
        reconciliation.verify(asset_return.pk, laptops[:1], verifier=logistik)
        with pytest.raises(ValidationError):
            loans.submit_return(on_loan.pk, laptops[:1], actor=requester)

    def test_missing_return(self, reconciliation, logistik):
        with pytest.raises(NotFound):
            reconciliation.verify("RTN-209901-001", [], verifier=logistik)


# ============================================================
# MANAGEMENT COMMANDS
# ============================================================


@pytest.mark.django_db
class TestCheckOverdueLoans:
    def test_lists_overdue_loan(self, on_loan):
        out = StringIO()
        call_command("check_overdue_loans", stdout=out)
        assert on_loan.pk in out.getvalue()
        assert "Total: 1 loan(s) due" in out.getvalue()

    def test_pending_loans_ignored(self, pending_loan):
        out = StringIO()
        call_command("check_overdue_loans", "--days", "30", stdout=out)
        assert "No loans due" in out.getvalue()


# ============================================================
# ENDPOINTS
# ============================================================


@pytest.mark.django_db
class TestLoanEndpoints:
    def send(self, client, method, path, body=None):
        return getattr(client, method)(path, data=json.dumps(body or {}), content_type="application/json")

    def test_full_cycle(self, requester_client, logistik_client, laptops):
        response = self.send(requester_client, "post", "/loan-requests", {
            "items": [{"name": "Laptop", "brand": "Lenovo", "quantity": 2, "return_date": "2025-03-01"}],
            "purpose": "Training",
        })
        assert response.status_code == 201
        loan = response.json()
        item_id = loan["items"][0]["id"]

        response = self.send(logistik_client, "patch", f"/loan-requests/{loan['id']}/approve", {
            "assigned_asset_ids": {str(item_id): laptops}, "version": loan["version"],
        })
        assert response.status_code == 200
        assert response.json()["status"] == "ON_LOAN"

        response = self.send(requester_client, "post", f"/loan-requests/{loan['id']}/return", {
            "items": [{"asset_id": asset_id} for asset_id in laptops],
        })
        assert response.status_code == 201
        return_id = response.json()["id"]

        response = self.send(logistik_client, "patch", f"/returns/{return_id}/verify", {
            "accepted_asset_ids": laptops,
        })
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"

        response = requester_client.get(f"/loan-requests/{loan['id']}")
        assert response.json()["status"] == "RETURNED"
        assert requester_client.get(f"/returns/{return_id}").json()["verified_by"] == "Admin Logistik"

    def test_reject_endpoint(self, logistik_client, pending_loan):
        response = self.send(logistik_client, "patch", f"/loan-requests/{pending_loan.pk}/reject", {
            "reason": "No stock",
        })
        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "No stock"

    def test_return_before_approval_is_409(self, requester_client, pending_loan, laptops):
        response = self.send(requester_client, "post", f"/loan-requests/{pending_loan.pk}/return", {
            "items": laptops,
        })
        assert response.status_code == 409

    def test_missing_return_is_404(self, logistik_client):
        assert logistik_client.get("/returns/RTN-209901-001").status_code == 404
