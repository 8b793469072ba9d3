"""
Loan & Return Services
======================
Runs loan transitions and verifies returned assets.

Same shape as ``procurement.services``: lock the document, let
``loans.workflow`` decide, hand the custody events to the ledger, commit.
"""

import datetime
import logging
from collections import Counter

from dateutil.parser import isoparse
from django.db import IntegrityError, transaction
from django.utils import timezone

from assets.ledger import CustodyLedger
from assets.models import Asset, AssetCondition
from core.exceptions import ConflictError, InvalidTransition, NotFound, ValidationError
from core.models import ActivityLog, actor_name, actor_pk
from core.numbering import DocumentPrefix, next_document_number
from core.services import commit_transition
from core.signals import announce_transition
from inventory.ledger import StockLedger
from inventory.models import MovementType
from procurement.services import clean_items
from procurement.workflow import resolve_item_outcomes
from . import workflow
from .models import (
    AssetReturn, AssetReturnItem, LoanItem, LoanRequest, LoanStatus, ReturnStatus
)

logger = logging.getLogger(__name__)


def parse_return_date(value):
    """Accept a date, a datetime or an ISO 8601 string."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return isoparse(str(value)).date()
    except ValueError:
        raise ValidationError(f"Invalid return date: {value!r}", return_date=value)


def clean_return_items(items):
    """
    Normalize submitted return lines.

    Each line is an asset id or ``{'asset_id', 'returned_condition', 'notes'}``.
    """
    if not items:
        raise ValidationError("At least one asset must be returned")
    cleaned = []
    for index, item in enumerate(items, start=1):
        if isinstance(item, dict):
            asset_id = item.get('asset_id')
            condition = item.get('returned_condition') or AssetCondition.GOOD
            notes = item.get('notes')
        else:
            asset_id, condition, notes = item, AssetCondition.GOOD, None
        if not asset_id:
            raise ValidationError(f"Item #{index}: asset_id is required")
        if condition not in AssetCondition.values:
            raise ValidationError(f"Item #{index}: unknown condition {condition}", condition=condition)
        cleaned.append({'asset_id': str(asset_id), 'returned_condition': condition, 'notes': notes})
    return cleaned


def _book_stock(stock, assets, movement_type, actor, reference_id):
    for (name, brand), quantity in sorted(Counter((a.name, a.brand) for a in assets).items()):
        stock.record(name, brand, movement_type, quantity, actor, reference_id=reference_id)


class LoanWorkflow:
    """
    Usage:
        loans = LoanWorkflow()
        loan = loans.create(user, [{'name': 'Laptop', 'brand': 'Lenovo', 'quantity': 1}])
        loans.approve(loan.pk, {str(item.pk): ['AST-202501-001']}, actor=logistik)
        asset_return = loans.submit_return(loan.pk, ['AST-202501-001'], actor=user)
    """

    def __init__(self, custody=None, stock=None):
        self.custody = custody or CustodyLedger()
        self.stock = stock or StockLedger()

    def get(self, loan_id):
        try:
            return LoanRequest.objects.select_related('requester', 'division').get(pk=loan_id)
        except LoanRequest.DoesNotExist:
            raise NotFound(f"Loan request {loan_id} not found", loan_id=loan_id)

    def _lock(self, loan_id):
        try:
            return LoanRequest.objects.select_for_update().get(pk=loan_id)
        except LoanRequest.DoesNotExist:
            raise NotFound(f"Loan request {loan_id} not found", loan_id=loan_id)

    def create(self, requester, items, purpose=None, division=None, request_date=None):
        """Submit a new PENDING loan request."""
        cleaned = clean_items(items, extra_fields=('return_date',))
        for row in cleaned:
            row['return_date'] = parse_return_date(row['return_date'])

        try:
            with transaction.atomic():
                loan = LoanRequest.objects.create(
                    id=next_document_number(LoanRequest, DocumentPrefix.LOAN, request_date),
                    requester=requester,
                    division=division or requester.division,
                    request_date=request_date or timezone.localdate(),
                    purpose=purpose,
                    created_by=actor_pk(requester),
                )
                LoanItem.objects.bulk_create([LoanItem(loan=loan, **row) for row in cleaned])
                ActivityLog.record(
                    loan, 'CREATE', requester,
                    detail=f"Loan requested with {len(cleaned)} item(s)",
                    reference_id=loan.pk,
                )
                announce_transition(loan, None, loan.status, requester)
        except IntegrityError as exc:
            raise ConflictError(f"Could not number the new loan request: {exc}")

        logger.info("Loan %s created by %s", loan.pk, actor_name(requester))
        return loan

    def approve(self, loan_id, assigned_asset_ids=None, item_statuses=None, actor=None,
                expected_version=None):
        """
        PENDING → ON_LOAN, lending the assigned assets to the requester.

        Rejecting every item rejects the loan instead and leaves the assets
        untouched.

        Raises:
            InvalidTransition: loan is not PENDING
            NotFound: an assigned asset does not exist
            ValidationError: bad decisions or assignments
        """
        with transaction.atomic():
            loan = self._lock(loan_id)
            loan.check_version(expected_version)
            previous = loan.status
            if previous != LoanStatus.PENDING:
                raise InvalidTransition(f"Loan {loan_id} cannot be approved in {previous}", current=previous)

            items = list(loan.items.all())
            outcomes = resolve_item_outcomes(items, item_statuses)
            assignments = workflow.normalize_assignments(assigned_asset_ids)
            requested_ids = [asset_id for ids in assignments.values() for asset_id in ids]
            asset_statuses = dict(
                Asset.objects.select_for_update()
                .filter(pk__in=requested_ids)
                .order_by('pk')
                .values_list('pk', 'status')
            )
            plan = workflow.plan_approval(
                previous, outcomes, assignments, asset_statuses,
                holder=loan.requester, reference_id=loan.pk,
            )

            for item in items:
                outcome = outcomes[str(item.pk)]
                item.item_status = outcome.status
                item.approved_quantity = outcome.approved_quantity
                if outcome.reason is not None:
                    item.reason = outcome.reason
            LoanItem.objects.bulk_update(items, ['item_status', 'approved_quantity', 'reason'])

            now = timezone.now()
            if plan.status == LoanStatus.REJECTED:
                loan.rejected_by = actor_name(actor)
                loan.rejection_reason = "All items rejected"
                loan.rejection_date = now
                detail = "All items rejected"
            else:
                self.custody.apply(plan.events, actor)
                _book_stock(
                    self.stock, Asset.objects.filter(pk__in=requested_ids),
                    MovementType.OUT_LOAN, actor, loan.pk,
                )
                loan.assigned_asset_ids = plan.assignments
                loan.approver = actor_name(actor)
                loan.approval_date = now
                detail = f"Lent {len(requested_ids)} asset(s) to {actor_name(loan.requester)}"

            loan.status = plan.status
            commit_transition(
                loan, previous, actor, 'APPROVED' if plan.status == LoanStatus.ON_LOAN else 'REJECTED',
                detail=detail,
                changes={'assigned_asset_ids': plan.assignments} if plan.assignments else None,
            )
        return loan

    def reject(self, loan_id, reason, actor=None, expected_version=None):
        """Reject a pending loan. Re-rejecting is a silent success."""
        with transaction.atomic():
            loan = self._lock(loan_id)
            previous = loan.status
            if workflow.plan_reject(previous) is None:
                return loan
            loan.check_version(expected_version)
            if not reason or not str(reason).strip():
                raise ValidationError("A rejection reason is required")

            loan.status = LoanStatus.REJECTED
            loan.rejected_by = actor_name(actor)
            loan.rejection_reason = reason
            loan.rejection_date = timezone.now()
            commit_transition(loan, previous, actor, 'REJECTED', detail=f"Rejected: {reason}")
        return loan

    def submit_return(self, loan_id, items, actor=None, notes=None, expected_version=None):
        """
        ON_LOAN → AWAITING_RETURN: record the assets handed back.

        Returns:
            AssetReturn: The new PENDING_APPROVAL return document
        """
        cleaned = clean_return_items(items)
        submitted_ids = [row['asset_id'] for row in cleaned]

        try:
            with transaction.atomic():
                loan = self._lock(loan_id)
                loan.check_version(expected_version)
                previous = loan.status

                number = next_document_number(AssetReturn, DocumentPrefix.RETURN)
                event = workflow.plan_return_submission(
                    previous, loan.all_assigned_ids, loan.returned_asset_ids or [],
                    submitted_ids, reference_id=number,
                )

                asset_return = AssetReturn.objects.create(
                    id=number,
                    loan_request=loan,
                    returned_by=actor_name(actor or loan.requester),
                    notes=notes,
                    created_by=actor_pk(actor),
                )
                AssetReturnItem.objects.bulk_create([
                    AssetReturnItem(
                        asset_return=asset_return,
                        asset_id=row['asset_id'],
                        returned_condition=row['returned_condition'],
                        notes=row['notes'],
                    )
                    for row in cleaned
                ])
                self.custody.apply([event], actor)
                ActivityLog.record(
                    asset_return, 'CREATE', actor,
                    detail=f"{len(cleaned)} asset(s) returned for {loan.pk}",
                    reference_id=loan.pk,
                )
                announce_transition(asset_return, None, asset_return.status, actor)

                loan.status = LoanStatus.AWAITING_RETURN
                commit_transition(
                    loan, previous, actor, 'RETURN_SUBMITTED',
                    detail=f"Return {asset_return.pk} submitted",
                    changes={'asset_ids': submitted_ids},
                )
        except IntegrityError as exc:
            raise ConflictError(f"Could not number the new return: {exc}")

        logger.info("Return %s submitted for %s by %s", asset_return.pk, loan.pk, actor_name(actor))
        return asset_return


class ReturnReconciliation:
    """
    Verifies returned assets one by one and settles the loan.

    Usage:
        ReturnReconciliation().verify('RTN-202501-001', ['AST-202501-001'], verifier=logistik)
    """

    def __init__(self, custody=None, stock=None):
        self.custody = custody or CustodyLedger()
        self.stock = stock or StockLedger()

    def get(self, return_id):
        try:
            return AssetReturn.objects.select_related('loan_request').get(pk=return_id)
        except AssetReturn.DoesNotExist:
            raise NotFound(f"Return {return_id} not found", return_id=return_id)

    def verify(self, return_id, accepted_asset_ids, verifier, expected_version=None):
        """
        Accept or reject every asset of a PENDING_APPROVAL return.

        Raises:
            InvalidTransition: return was already verified
            ValidationError: an accepted id is not part of this return
        """
        if accepted_asset_ids is None:
            accepted_asset_ids = []
        if isinstance(accepted_asset_ids, str) or not isinstance(accepted_asset_ids, (list, tuple)):
            raise ValidationError("Accepted asset ids must be a list")
        accepted = list(dict.fromkeys(str(asset_id) for asset_id in accepted_asset_ids))
        accepted_set = set(accepted)

        with transaction.atomic():
            try:
                asset_return = AssetReturn.objects.select_for_update().get(pk=return_id)
            except AssetReturn.DoesNotExist:
                raise NotFound(f"Return {return_id} not found", return_id=return_id)
            asset_return.check_version(expected_version)
            previous_return = asset_return.status
            if previous_return != ReturnStatus.PENDING_APPROVAL:
                raise InvalidTransition(
                    f"Return {return_id} was already verified ({previous_return})",
                    current=previous_return,
                )
            loan = LoanRequest.objects.select_for_update().get(pk=asset_return.loan_request_id)
            previous_loan = loan.status

            items = list(asset_return.items.select_related('asset'))
            result = workflow.reconcile(
                [(item.asset_id, item.returned_condition) for item in items],
                accepted,
                loan.returned_asset_ids or [],
                loan.all_assigned_ids,
                reference_id=asset_return.pk,
                storage_location=self.custody.storage_location,
            )
            workflow.assert_return_transition(previous_return, result.return_status)
            workflow.assert_transition(previous_loan, result.loan_status)

            for item in items:
                item.status = result.item_statuses[item.asset_id]
            AssetReturnItem.objects.bulk_update(items, ['status'])
            self.custody.apply(result.events, verifier)
            _book_stock(
                self.stock, [item.asset for item in items if item.asset_id in accepted_set],
                MovementType.IN_RETURN, verifier, asset_return.pk,
            )

            now = timezone.now()
            asset_return.status = result.return_status
            asset_return.verified_by = actor_name(verifier)
            asset_return.verification_date = now
            commit_transition(
                asset_return, previous_return, verifier, 'VERIFIED',
                detail=f"{len(accepted)} of {len(items)} asset(s) accepted",
                changes={asset_id: str(status) for asset_id, status in result.item_statuses.items()},
            )

            loan.returned_asset_ids = result.returned_ids
            loan.status = result.loan_status
            if result.loan_status == LoanStatus.RETURNED:
                loan.actual_return_date = now
            commit_transition(
                loan, previous_loan, verifier, 'RETURN_VERIFIED',
                detail=f"Return {asset_return.pk} verified "
                       f"({len(result.returned_ids)}/{len(loan.all_assigned_ids)} returned)",
                changes={'returned_asset_ids': result.returned_ids},
            )
        return asset_return
