"""
Purchase Request Endpoints
==========================
JSON views over ``PurchaseRequestWorkflow``.
"""

from django.core.exceptions import ValidationError as DjangoValidationError

from assets.models import Asset
from core.api import json_endpoint, require, isoformat
from core.exceptions import NotFound
from core.models import Customer
from users.models import User
from .models import AllocationTarget, OrderType
from .services import PurchaseRequestWorkflow


def serialize_request(request_doc):
    registered = request_doc.partially_registered_items or {}
    return {
        'id': request_doc.id,
        'doc_number': request_doc.doc_number,
        'requester': str(request_doc.requester_id),
        'division': str(request_doc.division_id) if request_doc.division_id else None,
        'order_type': request_doc.order_type,
        'allocation_target': request_doc.allocation_target,
        'request_date': isoformat(request_doc.request_date),
        'justification': request_doc.justification,
        'project_name': request_doc.project_name,
        'status': request_doc.status,
        'version': request_doc.version,
        'items': [
            {
                'id': item.pk,
                'name': item.name,
                'brand': item.brand,
                'quantity': item.quantity,
                'unit': item.unit,
                'note': item.note,
                'item_status': item.item_status,
                'approved_quantity': item.approved_quantity,
                'reason': item.reason,
                'registered': int(registered.get(str(item.pk), 0)),
            }
            for item in request_doc.items.all()
        ],
        'partially_registered_items': registered,
        'is_registered': request_doc.is_registered,
        'logistic_approver': request_doc.logistic_approver,
        'logistic_approval_date': isoformat(request_doc.logistic_approval_date),
        'final_approver': request_doc.final_approver,
        'final_approval_date': isoformat(request_doc.final_approval_date),
        'purchase_details': request_doc.purchase_details,
        'rejected_by': request_doc.rejected_by,
        'rejection_reason': request_doc.rejection_reason,
        'rejection_date': isoformat(request_doc.rejection_date),
        'arrival_date': isoformat(request_doc.arrival_date),
        'completed_by': request_doc.completed_by,
        'completion_date': isoformat(request_doc.completion_date),
    }


def _recipient(payload):
    if payload.get('recipient_user'):
        try:
            return User.objects.get(pk=payload['recipient_user'])
        except (User.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound(f"User {payload['recipient_user']} not found")
    if payload.get('recipient_customer'):
        try:
            return Customer.objects.get(pk=payload['recipient_customer'])
        except (Customer.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound(f"Customer {payload['recipient_customer']} not found")
    return None


@json_endpoint('POST', status=201)
def request_create(request, payload):
    doc = PurchaseRequestWorkflow().create(
        request.user,
        payload.get('items'),
        allocation_target=payload.get('allocation_target', AllocationTarget.USAGE),
        order_type=payload.get('order_type', OrderType.REGULAR_STOCK),
        justification=payload.get('justification'),
        project_name=payload.get('project_name'),
    )
    return serialize_request(doc)


@json_endpoint('GET')
def request_detail(request, payload, pk):
    return serialize_request(PurchaseRequestWorkflow().get(pk))


@json_endpoint('PATCH')
def request_approve(request, payload, pk):
    doc = PurchaseRequestWorkflow().approve(
        pk, payload.get('item_statuses'), actor=request.user,
        expected_version=payload.get('version'),
    )
    return serialize_request(doc)


@json_endpoint('PATCH')
def request_reject(request, payload, pk):
    doc = PurchaseRequestWorkflow().reject(
        pk, payload.get('reason'), actor=request.user,
        expected_version=payload.get('version'),
    )
    return serialize_request(doc)


@json_endpoint('PATCH')
def request_cancel(request, payload, pk):
    doc = PurchaseRequestWorkflow().cancel(
        pk, request.user, reason=payload.get('reason'),
        expected_version=payload.get('version'),
    )
    return serialize_request(doc)


@json_endpoint('PATCH')
def request_submit_final(request, payload, pk):
    doc = PurchaseRequestWorkflow().submit_for_final_approval(
        pk, payload.get('purchase_details'), actor=request.user,
        expected_version=payload.get('version'),
    )
    return serialize_request(doc)


@json_endpoint('PATCH')
def request_arrive(request, payload, pk):
    doc = PurchaseRequestWorkflow().mark_arrived(
        pk, actor=request.user, expected_version=payload.get('version'),
    )
    return serialize_request(doc)


@json_endpoint('PATCH')
def request_handover(request, payload, pk):
    doc = PurchaseRequestWorkflow().handover(
        pk, require(payload, 'asset_ids'), actor=request.user,
        recipient=_recipient(payload),
        expected_version=payload.get('version'),
    )
    return serialize_request(doc)


@json_endpoint('POST')
def request_register_assets(request, payload, pk):
    fields = {
        key: payload[key]
        for key in ('category', 'asset_type', 'condition', 'location', 'notes')
        if key in payload
    }
    doc = PurchaseRequestWorkflow().register_assets(
        pk, require(payload, 'item_id'), payload.get('count'), actor=request.user,
        expected_version=payload.get('version'), **fields
    )
    data = serialize_request(doc)
    data['assets'] = list(
        Asset.objects.filter(origin_document=doc.pk).order_by('pk').values_list('pk', flat=True)
    )
    return data
