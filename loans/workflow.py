"""
Loan & Return State Machines
============================
Pure transition rules for loans and their returns. Functions take the
current state and return the outcome plus the custody events it implies;
``loans.services`` does the loading, locking and saving.
"""

from collections import defaultdict
from dataclasses import dataclass

from django.core.exceptions import ImproperlyConfigured

from assets.models import AssetStatus, is_good_condition
from core.events import (
    AssetsAssigned, AssetsAwaitingReturn, AssetsReleased, AssetsReverted
)
from core.exceptions import InvalidTransition, NotFound, ValidationError
from procurement.workflow import all_rejected
from .models import LoanStatus, ReturnStatus, ReturnItemStatus


# ============================================================================
# TRANSITION TABLES
# ============================================================================

TRANSITIONS = {
    LoanStatus.PENDING: frozenset({LoanStatus.ON_LOAN, LoanStatus.REJECTED}),
    # Not reached by approve(), which moves straight to ON_LOAN
    LoanStatus.APPROVED: frozenset({LoanStatus.ON_LOAN, LoanStatus.REJECTED}),
    LoanStatus.ON_LOAN: frozenset({LoanStatus.AWAITING_RETURN}),
    LoanStatus.AWAITING_RETURN: frozenset({LoanStatus.ON_LOAN, LoanStatus.RETURNED}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.RETURNED: frozenset(),
}

RETURN_TRANSITIONS = {
    ReturnStatus.PENDING_APPROVAL: frozenset({
        ReturnStatus.APPROVED,
        ReturnStatus.REJECTED,
        ReturnStatus.COMPLETED,
    }),
    ReturnStatus.APPROVED: frozenset(),
    ReturnStatus.REJECTED: frozenset(),
    ReturnStatus.COMPLETED: frozenset(),
}

if set(TRANSITIONS) != set(LoanStatus) or set(RETURN_TRANSITIONS) != set(ReturnStatus):
    raise ImproperlyConfigured("Loan transitions must cover every status")


def assert_transition(current, target):
    if target not in TRANSITIONS[LoanStatus(current)]:
        raise InvalidTransition(
            f"Cannot move a loan from {current} to {target}",
            current=current,
            target=target,
        )


def assert_return_transition(current, target):
    if target not in RETURN_TRANSITIONS[ReturnStatus(current)]:
        raise InvalidTransition(
            f"Cannot move a return from {current} to {target}",
            current=current,
            target=target,
        )


# ============================================================================
# APPROVAL
# ============================================================================

def normalize_assignments(assigned_asset_ids):
    """``{item_id: [asset ids]}`` with string keys and string asset ids."""
    if not assigned_asset_ids:
        return {}
    if not isinstance(assigned_asset_ids, dict):
        raise ValidationError("Assigned assets must map item ids to asset id lists")
    normalized = {}
    for item_id, asset_ids in assigned_asset_ids.items():
        if isinstance(asset_ids, str) or not isinstance(asset_ids, (list, tuple)):
            raise ValidationError(f"Assets for item {item_id} must be a list")
        normalized[str(item_id)] = [str(asset_id) for asset_id in asset_ids]
    return normalized


def check_assignments(outcomes, assignments, asset_statuses):
    """
    Validate which assets go out with which item.

    Args:
        outcomes: item id → ItemOutcome
        assignments: item id → [asset ids] (normalized)
        asset_statuses: asset id → current status for every asset that exists

    Raises:
        NotFound: an assigned asset does not exist
        ValidationError: asset listed twice, not in storage, given to a
            rejected or unknown item, or more assets than approved
    """
    seen = set()
    for item_id, asset_ids in assignments.items():
        if item_id not in outcomes:
            raise ValidationError(f"Unknown item: {item_id}", item_id=item_id)
        outcome = outcomes[item_id]
        if outcome.is_rejected and asset_ids:
            raise ValidationError(f"Item {item_id} is rejected and cannot receive assets", item_id=item_id)
        if len(asset_ids) > outcome.approved_quantity:
            raise ValidationError(
                f"Item {item_id} was approved for {outcome.approved_quantity} asset(s), "
                f"got {len(asset_ids)}",
                item_id=item_id,
            )
        for asset_id in asset_ids:
            if asset_id in seen:
                raise ValidationError(f"Asset {asset_id} is assigned more than once", asset_id=asset_id)
            seen.add(asset_id)
            if asset_id not in asset_statuses:
                raise NotFound(f"Asset {asset_id} not found", asset_id=asset_id)
            if asset_statuses[asset_id] != AssetStatus.IN_STORAGE:
                raise ValidationError(
                    f"Asset {asset_id} is not in storage ({asset_statuses[asset_id]})",
                    asset_id=asset_id,
                )


@dataclass(frozen=True)
class LoanApproval:
    status: str
    assignments: dict
    events: tuple = ()


def plan_approval(current, outcomes, assignments, asset_statuses, holder, reference_id):
    """
    Outcome of approving a loan.

    Every item rejected rejects the loan and touches no asset. Otherwise
    the assigned assets go to the requester and the loan is ON_LOAN.
    """
    if current != LoanStatus.PENDING:
        raise InvalidTransition(f"Cannot approve a loan in {current}", current=current)
    if all_rejected(outcomes):
        return LoanApproval(LoanStatus.REJECTED, {})

    check_assignments(outcomes, assignments, asset_statuses)
    asset_ids = [asset_id for ids in assignments.values() for asset_id in ids]
    if not asset_ids:
        raise ValidationError("An approved loan needs at least one assigned asset")
    assert_transition(current, LoanStatus.ON_LOAN)
    event = AssetsAssigned(asset_ids, reference_id=reference_id, holder_user=holder)
    return LoanApproval(LoanStatus.ON_LOAN, assignments, (event,))


def plan_reject(current):
    """
    Return REJECTED, or None when the loan is already rejected.

    Only a repeated reject is a no-op; a loan that is out or RETURNED
    raises InvalidTransition.
    """
    if current == LoanStatus.REJECTED:
        return None
    if current not in (LoanStatus.PENDING, LoanStatus.APPROVED):
        raise InvalidTransition(f"Cannot reject a loan in {current}", current=current)
    return LoanStatus.REJECTED


# ============================================================================
# RETURN SUBMISSION
# ============================================================================

def plan_return_submission(current, assigned_ids, returned_ids, submitted_ids, reference_id):
    """
    Validate a return and emit the event that flags the assets.

    Raises:
        InvalidTransition: loan is not ON_LOAN
        ValidationError: nothing submitted, an asset listed twice, or an
            asset that is not outstanding on this loan
    """
    if current != LoanStatus.ON_LOAN:
        raise InvalidTransition(f"Cannot return assets of a loan in {current}", current=current)
    if not submitted_ids:
        raise ValidationError("At least one asset must be returned")
    if len(set(submitted_ids)) != len(submitted_ids):
        raise ValidationError("An asset is listed more than once")
    assigned, returned = set(assigned_ids), set(returned_ids)
    for asset_id in submitted_ids:
        if asset_id not in assigned:
            raise ValidationError(f"Asset {asset_id} is not assigned to this loan", asset_id=asset_id)
        if asset_id in returned:
            raise ValidationError(f"Asset {asset_id} was already returned", asset_id=asset_id)
    assert_transition(current, LoanStatus.AWAITING_RETURN)
    return AssetsAwaitingReturn(submitted_ids, reference_id=reference_id)


# ============================================================================
# RECONCILIATION
# ============================================================================

@dataclass(frozen=True)
class Reconciliation:
    item_statuses: dict
    return_status: str
    loan_status: str
    returned_ids: list
    events: tuple


def reconcile(items, accepted_ids, previously_returned, all_assigned, reference_id, storage_location):
    """
    Resolve every returned item.

    Args:
        items: (asset id, returned condition) pairs of the return
        accepted_ids: asset ids the verifier accepts
        previously_returned: loan's returned asset ids before this return
        all_assigned: every asset id ever assigned to the loan

    Accepted assets go to storage (or DAMAGED when not in good condition)
    with the holder cleared; rejected ones stay on loan. The loan is
    RETURNED once every assigned asset has been accepted at some point.
    """
    item_ids = [asset_id for asset_id, _ in items]
    accepted = set(accepted_ids)
    unknown = sorted(accepted - set(item_ids))
    if unknown:
        raise ValidationError(
            f"Accepted asset(s) not part of this return: {', '.join(unknown)}",
            asset_ids=unknown,
        )

    item_statuses = {}
    released = defaultdict(list)
    reverted = []
    for asset_id, condition in items:
        if asset_id in accepted:
            item_statuses[asset_id] = ReturnItemStatus.ACCEPTED
            status = AssetStatus.IN_STORAGE if is_good_condition(condition) else AssetStatus.DAMAGED
            released[(status, condition)].append(asset_id)
        else:
            item_statuses[asset_id] = ReturnItemStatus.REJECTED
            reverted.append(asset_id)

    events = [
        AssetsReleased(asset_ids, reference_id=reference_id, status=status,
                       condition=condition, location=storage_location)
        for (status, condition), asset_ids in released.items()
    ]
    if reverted:
        events.append(AssetsReverted(reverted, reference_id=reference_id))

    if not reverted:
        return_status = ReturnStatus.COMPLETED
    elif not accepted:
        return_status = ReturnStatus.REJECTED
    else:
        return_status = ReturnStatus.APPROVED

    returned_ids = list(dict.fromkeys(list(previously_returned) + [i for i in item_ids if i in accepted]))
    fully_returned = set(all_assigned) <= set(returned_ids)
    loan_status = LoanStatus.RETURNED if fully_returned else LoanStatus.ON_LOAN

    return Reconciliation(item_statuses, return_status, loan_status, returned_ids, tuple(events))
