"""
Loan & Return Endpoints
=======================
JSON views over ``LoanWorkflow`` and ``ReturnReconciliation``.
"""

from core.api import json_endpoint, require, isoformat
from .services import LoanWorkflow, ReturnReconciliation


def serialize_loan(loan):
    return {
        'id': loan.id,
        'doc_number': loan.doc_number,
        'requester': str(loan.requester_id),
        'division': str(loan.division_id) if loan.division_id else None,
        'request_date': isoformat(loan.request_date),
        'purpose': loan.purpose,
        'status': loan.status,
        'version': loan.version,
        'items': [
            {
                'id': item.pk,
                'name': item.name,
                'brand': item.brand,
                'quantity': item.quantity,
                'unit': item.unit,
                'return_date': isoformat(item.return_date),
                'note': item.note,
                'item_status': item.item_status,
                'approved_quantity': item.approved_quantity,
                'reason': item.reason,
            }
            for item in loan.items.all()
        ],
        'assigned_asset_ids': loan.assigned_asset_ids,
        'returned_asset_ids': loan.returned_asset_ids,
        'approver': loan.approver,
        'approval_date': isoformat(loan.approval_date),
        'rejected_by': loan.rejected_by,
        'rejection_reason': loan.rejection_reason,
        'rejection_date': isoformat(loan.rejection_date),
        'actual_return_date': isoformat(loan.actual_return_date),
    }


def serialize_return(asset_return):
    return {
        'id': asset_return.id,
        'doc_number': asset_return.doc_number,
        'loan_request': asset_return.loan_request_id,
        'return_date': isoformat(asset_return.return_date),
        'returned_by': asset_return.returned_by,
        'status': asset_return.status,
        'version': asset_return.version,
        'items': [
            {
                'asset_id': item.asset_id,
                'returned_condition': item.returned_condition,
                'notes': item.notes,
                'status': item.status,
            }
            for item in asset_return.items.all()
        ],
        'verified_by': asset_return.verified_by,
        'verification_date': isoformat(asset_return.verification_date),
        'notes': asset_return.notes,
    }


# ============================================================================
# LOAN REQUESTS
# ============================================================================

@json_endpoint('POST', status=201)
def loan_create(request, payload):
    loan = LoanWorkflow().create(request.user, payload.get('items'), purpose=payload.get('purpose'))
    return serialize_loan(loan)


@json_endpoint('GET')
def loan_detail(request, payload, pk):
    return serialize_loan(LoanWorkflow().get(pk))


@json_endpoint('PATCH')
def loan_approve(request, payload, pk):
    loan = LoanWorkflow().approve(
        pk,
        assigned_asset_ids=payload.get('assigned_asset_ids'),
        item_statuses=payload.get('item_statuses'),
        actor=request.user,
        expected_version=payload.get('version'),
    )
    return serialize_loan(loan)


@json_endpoint('PATCH')
def loan_reject(request, payload, pk):
    loan = LoanWorkflow().reject(
        pk, payload.get('reason'), actor=request.user,
        expected_version=payload.get('version'),
    )
    return serialize_loan(loan)


@json_endpoint('POST', status=201)
def loan_return(request, payload, pk):
    asset_return = LoanWorkflow().submit_return(
        pk, require(payload, 'items'), actor=request.user,
        notes=payload.get('notes'),
        expected_version=payload.get('version'),
    )
    return serialize_return(asset_return)


# ============================================================================
# RETURNS
# ============================================================================

@json_endpoint('GET')
def return_detail(request, payload, pk):
    return serialize_return(ReturnReconciliation().get(pk))


@json_endpoint('PATCH')
def return_verify(request, payload, pk):
    asset_return = ReturnReconciliation().verify(
        pk, payload.get('accepted_asset_ids', []), verifier=request.user,
        expected_version=payload.get('version'),
    )
    return serialize_return(asset_return)
