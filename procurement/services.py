"""
Purchase Request Workflow
=========================
Service object that runs purchase-request transitions.

Each public method is one atomic read-modify-write: the request row is
locked with ``select_for_update``, the pure rules in
``procurement.workflow`` decide the outcome, the custody and stock ledgers
apply the side effects, and the whole thing commits or rolls back together.
Collaborators hear about the transition through
``core.signals.document_transitioned`` after the commit.
"""

import logging
from collections import Counter

from django.db import IntegrityError, transaction
from django.utils import timezone

from assets.ledger import CustodyLedger
from assets.models import Asset, AssetStatus
from core.events import AssetsAssigned, AssetsRegistered
from core.exceptions import (
    ConflictError, InvalidTransition, NotFound, PermissionDenied, ValidationError
)
from core.models import ActivityLog, Customer, actor_name, actor_pk
from core.numbering import DocumentPrefix, next_document_number
from core.services import commit_transition
from core.signals import announce_transition
from inventory.ledger import StockLedger
from inventory.models import MovementType
from . import workflow
from .models import (
    Request, RequestItem, RequestStatus, ItemStatus, OrderType, AllocationTarget
)

logger = logging.getLogger(__name__)


def clean_items(items, extra_fields=()):
    """Validate submitted line items; return them as plain dicts."""
    if not items:
        raise ValidationError("At least one item is required")
    cleaned = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Item #{index} must be an object")
        name = (item.get('name') or '').strip()
        if not name:
            raise ValidationError(f"Item #{index}: name is required")
        quantity = item.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Item #{index}: quantity must be a positive integer", quantity=quantity)
        row = {
            'name': name,
            'brand': (item.get('brand') or '').strip(),
            'quantity': quantity,
            'unit': item.get('unit') or 'pcs',
            'note': item.get('note'),
        }
        for field in extra_fields:
            row[field] = item.get(field)
        cleaned.append(row)
    return cleaned


class PurchaseRequestWorkflow:
    """
    Usage:
        workflow = PurchaseRequestWorkflow()
        request = workflow.create(user, [{'name': 'Router', 'brand': 'Mikrotik', 'quantity': 2}])
        workflow.approve(request.pk, {item.pk: 'procurement_needed'}, actor=logistik)
    """

    def __init__(self, custody=None, stock=None):
        self.custody = custody or CustodyLedger()
        self.stock = stock or StockLedger()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get(self, request_id):
        try:
            return Request.objects.select_related('requester', 'division').get(pk=request_id)
        except Request.DoesNotExist:
            raise NotFound(f"Request {request_id} not found", request_id=request_id)

    def _lock(self, request_id):
        try:
            return Request.objects.select_for_update().get(pk=request_id)
        except Request.DoesNotExist:
            raise NotFound(f"Request {request_id} not found", request_id=request_id)

    def _targets(self, items):
        return {str(item.pk): item.target_quantity for item in items}

    def _apply_outcomes(self, items, outcomes):
        for item in items:
            outcome = outcomes[str(item.pk)]
            item.item_status = outcome.status
            item.approved_quantity = outcome.approved_quantity
            if outcome.reason is not None:
                item.reason = outcome.reason
        RequestItem.objects.bulk_update(items, ['item_status', 'approved_quantity', 'reason'])

    def _stock_claims(self):
        """
        Availability check for one review. Lines sharing a name and brand
        draw on the same storage, so each claim reduces what the next sees.
        """
        claimed = Counter()

        def available(item):
            key = (item.name, item.brand)
            wanted = claimed[key] + item.quantity
            if not self.custody.check_availability(item.name, item.brand, wanted).is_sufficient:
                return False
            claimed[key] = wanted
            return True
        return available

    def _complete(self, request, actor, now):
        request.completed_by = actor_name(actor)
        request.completion_date = now

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(self, requester, items, allocation_target=AllocationTarget.USAGE,
               order_type=OrderType.REGULAR_STOCK, division=None, justification=None,
               project_name=None, request_date=None):
        """Submit a new PENDING request."""
        cleaned = clean_items(items)
        if allocation_target not in AllocationTarget.values:
            raise ValidationError(f"Unknown allocation target: {allocation_target}")
        if order_type not in OrderType.values:
            raise ValidationError(f"Unknown order type: {order_type}")
        if order_type == OrderType.PROJECT_BASED and not project_name:
            raise ValidationError("Project-based orders need a project name")

        try:
            with transaction.atomic():
                request = Request.objects.create(
                    id=next_document_number(Request, DocumentPrefix.REQUEST, request_date),
                    requester=requester,
                    division=division or requester.division,
                    order_type=order_type,
                    allocation_target=allocation_target,
                    request_date=request_date or timezone.localdate(),
                    justification=justification,
                    project_name=project_name,
                    created_by=actor_pk(requester),
                )
                RequestItem.objects.bulk_create([RequestItem(request=request, **row) for row in cleaned])
                ActivityLog.record(
                    request, 'CREATE', requester,
                    detail=f"Request created with {len(cleaned)} item(s)",
                    reference_id=request.pk,
                )
                announce_transition(request, None, request.status, requester)
        except IntegrityError as exc:
            raise ConflictError(f"Could not number the new request: {exc}")

        logger.info("Request %s created by %s", request.pk, actor_name(requester))
        return request

    def approve(self, request_id, item_statuses=None, actor=None, expected_version=None):
        """
        Logistic review (at PENDING) or final approval (at AWAITING_CEO_APPROVAL).

        Raises:
            InvalidTransition: request is in any other status
            ValidationError: malformed item decisions
        """
        with transaction.atomic():
            request = self._lock(request_id)
            request.check_version(expected_version)
            previous = request.status
            items = list(request.items.all())
            now = timezone.now()

            if previous == RequestStatus.PENDING:
                outcomes = workflow.resolve_item_outcomes(
                    items, item_statuses, availability=self._stock_claims(),
                )
                next_status = workflow.logistic_decision(outcomes, request.allocation_target)
                request.logistic_approver = actor_name(actor)
                request.logistic_approval_date = now
                action = 'LOGISTIC_APPROVAL'
            elif previous == RequestStatus.AWAITING_CEO_APPROVAL:
                outcomes = workflow.resolve_item_outcomes(items, item_statuses)
                credited = workflow.allocation_credits(outcomes, request.partially_registered_items)
                next_status = workflow.final_decision(
                    outcomes, request.allocation_target,
                    workflow.is_fully_registered(workflow.outcome_targets(outcomes), credited),
                )
                request.final_approver = actor_name(actor)
                request.final_approval_date = now
                action = 'FINAL_APPROVAL'
            else:
                raise InvalidTransition(
                    f"Request {request_id} cannot be approved in {previous}",
                    current=previous,
                )

            workflow.assert_transition(previous, next_status)
            self._apply_outcomes(items, outcomes)
            request.partially_registered_items = workflow.allocation_credits(
                outcomes, request.partially_registered_items
            )
            request.is_registered = workflow.is_fully_registered(
                self._targets(items), request.partially_registered_items
            )

            if next_status == RequestStatus.REJECTED:
                request.rejected_by = actor_name(actor)
                request.rejection_reason = "All items rejected"
                request.rejection_date = now
            elif next_status == RequestStatus.COMPLETED:
                self._complete(request, actor, now)

            request.status = next_status
            summary = Counter(str(outcome.status) for outcome in outcomes.values())
            breakdown = ', '.join(f"{count} {status}" for status, count in sorted(summary.items()))
            commit_transition(
                request, previous, actor, action,
                detail=f"{previous} → {next_status} ({breakdown})",
                changes={key: [str(o.status), o.approved_quantity] for key, o in outcomes.items()},
            )
        return request

    def submit_for_final_approval(self, request_id, purchase_details=None, actor=None,
                                  expected_version=None):
        """LOGISTIC_APPROVED → AWAITING_CEO_APPROVAL with per-item purchase details."""
        with transaction.atomic():
            request = self._lock(request_id)
            request.check_version(expected_version)
            previous = request.status
            workflow.assert_transition(previous, RequestStatus.AWAITING_CEO_APPROVAL)

            item_ids = {str(pk) for pk in request.items.values_list('pk', flat=True)}
            details = {}
            for item_id, detail in (purchase_details or {}).items():
                if str(item_id) not in item_ids:
                    raise ValidationError(f"Unknown item: {item_id}", item_id=item_id)
                if not isinstance(detail, dict):
                    raise ValidationError(f"Purchase details for item {item_id} must be an object")
                price = detail.get('price')
                if price is not None and (isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0):
                    raise ValidationError(f"Price for item {item_id} must be a non-negative number")
                details[str(item_id)] = {
                    'price': price,
                    'vendor': detail.get('vendor'),
                    'po_number': detail.get('po_number'),
                }

            request.purchase_details = details
            request.status = RequestStatus.AWAITING_CEO_APPROVAL
            commit_transition(request, previous, actor, 'SUBMITTED_FOR_FINAL_APPROVAL',
                         detail="Purchase details submitted for final approval")
        return request

    def mark_arrived(self, request_id, actor=None, expected_version=None):
        """APPROVED → ARRIVED once purchased goods are delivered."""
        with transaction.atomic():
            request = self._lock(request_id)
            request.check_version(expected_version)
            previous = request.status
            if previous != RequestStatus.APPROVED:
                raise InvalidTransition(
                    f"Request {request_id} cannot be marked arrived in {previous}",
                    current=previous,
                )
            request.status = RequestStatus.ARRIVED
            request.arrival_date = timezone.now()
            commit_transition(request, previous, actor, 'ARRIVED', detail="Goods arrived")
        return request

    def register_assets(self, request_id, item_id, count, actor=None, expected_version=None,
                        **asset_fields):
        """
        Register ``count`` received units of one item as new assets.

        Monotonic: counts only grow and the request never regresses. On a
        COMPLETED request the call changes nothing and succeeds.
        """
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValidationError(f"Count must be a non-negative integer, got {count!r}", count=count)

        with transaction.atomic():
            request = self._lock(request_id)
            if request.status == RequestStatus.COMPLETED:
                logger.info("Request %s already completed; registration ignored", request.pk)
                return request
            request.check_version(expected_version)
            previous = request.status

            items = list(request.items.all())
            item = next((i for i in items if str(i.pk) == str(item_id)), None)
            if item is None:
                raise NotFound(f"Item {item_id} not found in request {request_id}", item_id=item_id)
            if item.is_rejected:
                raise ValidationError(f"Item {item_id} was rejected and cannot be registered", item_id=item_id)

            registered = dict(request.partially_registered_items)
            key = str(item.pk)
            registered[key] = int(registered.get(key, 0)) + count
            fully_registered = workflow.is_fully_registered(self._targets(items), registered)
            next_status = workflow.registration_status(previous, request.allocation_target, fully_registered)

            assets = self.custody.apply(
                [AssetsRegistered(item.name, item.brand, count, reference_id=request.pk, fields=asset_fields)],
                actor,
            )
            if count:
                self.stock.record(
                    item.name, item.brand, MovementType.IN_PURCHASE, count, actor,
                    reference_id=request.pk,
                    notes=f"Registered {', '.join(asset.pk for asset in assets)}",
                )

            request.partially_registered_items = registered
            request.is_registered = fully_registered
            if next_status == RequestStatus.COMPLETED:
                self._complete(request, actor, timezone.now())
            request.status = next_status
            commit_transition(
                request, previous, actor, 'REGISTER',
                detail=f"Registered {count} x {item.name} ({registered[key]}/{item.target_quantity})",
                changes={key: registered[key]},
            )
        return request

    def handover(self, request_id, asset_ids, actor=None, recipient=None, expected_version=None):
        """
        AWAITING_HANDOVER → COMPLETED: give in-storage assets to the recipient.

        ``recipient`` defaults to the requester and may be a user or a
        customer.
        """
        asset_ids = list(dict.fromkeys(str(asset_id) for asset_id in asset_ids or ()))
        if not asset_ids:
            raise ValidationError("At least one asset is required for handover")

        with transaction.atomic():
            request = self._lock(request_id)
            request.check_version(expected_version)
            previous = request.status
            if previous != RequestStatus.AWAITING_HANDOVER:
                raise InvalidTransition(
                    f"Request {request_id} is not awaiting handover ({previous})",
                    current=previous,
                )

            assets = list(Asset.objects.filter(pk__in=asset_ids))
            missing = sorted(set(asset_ids) - {asset.pk for asset in assets})
            if missing:
                raise NotFound(f"Assets not found: {', '.join(missing)}", asset_ids=missing)
            identities = {
                (item.name, item.brand)
                for item in request.items.exclude(item_status=ItemStatus.REJECTED)
            }
            for asset in assets:
                if asset.status != AssetStatus.IN_STORAGE:
                    raise ValidationError(f"Asset {asset.pk} is not in storage ({asset.status})", asset_id=asset.pk)
                if (asset.name, asset.brand) not in identities:
                    raise ValidationError(f"Asset {asset.pk} does not match any item of {request.pk}", asset_id=asset.pk)

            recipient = recipient or request.requester
            if isinstance(recipient, Customer):
                event = AssetsAssigned(asset_ids, reference_id=request.pk, holder_customer=recipient)
            else:
                event = AssetsAssigned(asset_ids, reference_id=request.pk, holder_user=recipient)
            self.custody.apply([event], actor)

            for (name, brand), quantity in sorted(Counter((a.name, a.brand) for a in assets).items()):
                self.stock.record(name, brand, MovementType.OUT_HANDOVER, quantity, actor, reference_id=request.pk)

            request.status = RequestStatus.COMPLETED
            self._complete(request, actor, timezone.now())
            commit_transition(
                request, previous, actor, 'HANDOVER',
                detail=f"Handed over {len(asset_ids)} asset(s) to {actor_name(recipient)}",
                changes={'asset_ids': asset_ids},
            )
        return request

    def reject(self, request_id, reason, actor=None, expected_version=None):
        """
        Reject a request. Re-rejecting a REJECTED request is a silent success.
        """
        with transaction.atomic():
            request = self._lock(request_id)
            previous = request.status
            if workflow.plan_reject(previous) is None:
                return request
            request.check_version(expected_version)
            if not reason or not str(reason).strip():
                raise ValidationError("A rejection reason is required")

            request.status = RequestStatus.REJECTED
            request.rejected_by = actor_name(actor)
            request.rejection_reason = reason
            request.rejection_date = timezone.now()
            commit_transition(request, previous, actor, 'REJECTED', detail=f"Rejected: {reason}")
        return request

    def cancel(self, request_id, actor, reason=None, expected_version=None):
        """Withdraw a PENDING request. Only its requester may do this."""
        with transaction.atomic():
            request = self._lock(request_id)
            if actor_pk(actor) != request.requester_id:
                logger.warning("%s tried to cancel %s", actor_name(actor), request.pk)
                raise PermissionDenied(f"Only the requester can cancel {request.pk}")
            previous = request.status
            if workflow.plan_cancel(previous) is None:
                return request
            request.check_version(expected_version)

            request.status = RequestStatus.CANCELLED
            request.cancellation_reason = reason
            request.cancelled_at = timezone.now()
            commit_transition(request, previous, actor, 'CANCELLED', detail=f"Cancelled: {reason or '-'}")
        return request
