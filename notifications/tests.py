"""Tests for transition notifications."""

import logging

import pytest

from core.signals import document_transitioned
from loans.services import LoanWorkflow, ReturnReconciliation
from notifications.models import Notification
from notifications.receivers import build_notifications
from users.models import UserRole


LAPTOP = [{"name": "Laptop", "brand": "Lenovo", "quantity": 1}]


@pytest.mark.django_db
class TestTransitionNotifications:
    def test_new_loan_goes_to_logistics_inbox(self, requester, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            loan = LoanWorkflow().create(requester, LAPTOP)
        notification = Notification.objects.get()
        assert notification.recipient_role == UserRole.ADMIN_LOGISTIK
        assert notification.recipient_user is None
        assert notification.document_type == "LoanRequest"
        assert notification.document_id == loan.pk
        assert notification.new_status == "PENDING"

    def test_approval_tells_requester(self, requester, logistik, make_assets,
                                      django_capture_on_commit_callbacks):
        asset = make_assets("Laptop", "Lenovo")[0]
        loans = LoanWorkflow()
        loan = loans.create(requester, LAPTOP)
        with django_capture_on_commit_callbacks(execute=True):
            loans.approve(loan.pk, {loan.items.get().pk: [asset.pk]}, actor=logistik)
        notification = Notification.objects.get()
        assert notification.recipient_user == requester
        assert notification.previous_status == "PENDING"
        assert notification.message == f"Loan {loan.pk} was approved; assets are on loan to you"

    def test_return_verdict_reaches_borrower(self, requester, logistik, make_assets,
                                             django_capture_on_commit_callbacks):
        asset = make_assets("Laptop", "Lenovo")[0]
        loans = LoanWorkflow()
        loan = loans.create(requester, LAPTOP)
        loans.approve(loan.pk, {loan.items.get().pk: [asset.pk]}, actor=logistik)
        asset_return = loans.submit_return(loan.pk, [asset.pk], actor=requester)
        with django_capture_on_commit_callbacks(execute=True):
            ReturnReconciliation().verify(asset_return.pk, [asset.pk], verifier=logistik)
        messages = set(Notification.objects.filter(recipient_user=requester).values_list("message", flat=True))
        assert messages == {f"Return {asset_return.pk} was accepted", f"Loan {loan.pk} is fully returned"}

    def test_nothing_sent_before_commit(self, requester, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            LoanWorkflow().create(requester, LAPTOP)
        assert len(callbacks) == 1
        assert not Notification.objects.exists()

    def test_status_without_rule(self, requester):
        loan = LoanWorkflow().create(requester, LAPTOP)
        assert build_notifications(loan, "ON_LOAN", "AWAITING_RETURN") == []

    def test_failing_receiver_does_not_block_others(self, requester, caplog,
                                                     django_capture_on_commit_callbacks):
        def broken(sender, **kwargs):
            raise RuntimeError("mail server down")

        document_transitioned.connect(broken, weak=False)
        try:
            with caplog.at_level(logging.ERROR, logger="core.signals"):
                with django_capture_on_commit_callbacks(execute=True):
                    LoanWorkflow().create(requester, LAPTOP)
        finally:
            document_transitioned.disconnect(broken)
        assert Notification.objects.count() == 1
        assert "mail server down" in caplog.text


@pytest.mark.django_db
class TestInbox:
    def test_for_user_includes_role_inbox(self, requester, logistik):
        Notification.objects.create(
            recipient_role=UserRole.ADMIN_LOGISTIK, document_type="LoanRequest",
            document_id="RL-202501-001", new_status="PENDING", message="New loan",
        )
        Notification.objects.create(
            recipient_user=requester, document_type="LoanRequest",
            document_id="RL-202501-001", new_status="ON_LOAN", message="Approved",
        )
        assert [n.message for n in Notification.objects.for_user(logistik)] == ["New loan"]
        assert [n.message for n in Notification.objects.for_user(requester)] == ["Approved"]

    def test_mark_read(self, requester):
        notification = Notification.objects.create(
            recipient_user=requester, document_type="Request",
            document_id="RO-202501-001", new_status="APPROVED", message="Approved",
        )
        assert Notification.objects.for_user(requester).unread().count() == 1
        notification.mark_read()
        read_at = notification.read_at
        assert read_at is not None
        notification.mark_read()
        assert notification.read_at == read_at
        assert Notification.objects.for_user(requester).unread().count() == 0
