"""
Purchase Request State Machine
==============================
Pure transition rules for purchase requests. Nothing here touches the
database: functions take the current document state and return the next
status (and the custody events the transition implies), or raise.

The service layer (``procurement.services``) loads, locks and saves.
"""

from dataclasses import dataclass

from django.core.exceptions import ImproperlyConfigured

from core.exceptions import InvalidTransition, ValidationError
from .models import RequestStatus, ItemStatus, AllocationTarget


# ============================================================================
# TRANSITION TABLE
# ============================================================================

TRANSITIONS = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.LOGISTIC_APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.AWAITING_HANDOVER,
        RequestStatus.COMPLETED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.LOGISTIC_APPROVED: frozenset({
        RequestStatus.AWAITING_CEO_APPROVAL,
        RequestStatus.AWAITING_HANDOVER,
        RequestStatus.COMPLETED,
        RequestStatus.REJECTED,
    }),
    RequestStatus.AWAITING_CEO_APPROVAL: frozenset({
        RequestStatus.APPROVED,
        RequestStatus.AWAITING_HANDOVER,
        RequestStatus.COMPLETED,
        RequestStatus.REJECTED,
    }),
    RequestStatus.APPROVED: frozenset({
        RequestStatus.ARRIVED,
        RequestStatus.AWAITING_HANDOVER,
        RequestStatus.COMPLETED,
        RequestStatus.REJECTED,
    }),
    RequestStatus.ARRIVED: frozenset({
        RequestStatus.AWAITING_HANDOVER,
        RequestStatus.COMPLETED,
    }),
    RequestStatus.AWAITING_HANDOVER: frozenset({
        RequestStatus.COMPLETED,
    }),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

if set(TRANSITIONS) != set(RequestStatus):
    raise ImproperlyConfigured("Purchase request transitions must cover every status")

REJECTABLE = frozenset({
    RequestStatus.PENDING,
    RequestStatus.LOGISTIC_APPROVED,
    RequestStatus.AWAITING_CEO_APPROVAL,
    RequestStatus.APPROVED,
})

REGISTRABLE = frozenset({
    RequestStatus.LOGISTIC_APPROVED,
    RequestStatus.APPROVED,
    RequestStatus.ARRIVED,
    RequestStatus.AWAITING_HANDOVER,
})

# Item outcomes a reviewer may choose
DECISION_STATUSES = frozenset(set(ItemStatus) - {ItemStatus.PENDING})


def assert_transition(current, target):
    """Raise InvalidTransition unless ``current`` may move to ``target``."""
    if target not in TRANSITIONS[RequestStatus(current)]:
        raise InvalidTransition(
            f"Cannot move a request from {current} to {target}",
            current=current,
            target=target,
        )


def completion_status(allocation_target):
    """Where a fully satisfied request goes: handover for use, done for restock."""
    if allocation_target == AllocationTarget.INVENTORY:
        return RequestStatus.COMPLETED
    return RequestStatus.AWAITING_HANDOVER


# ============================================================================
# PER-ITEM OUTCOMES
# ============================================================================

@dataclass(frozen=True)
class ItemOutcome:
    item_id: str
    status: str
    approved_quantity: int
    reason: str = None

    @property
    def is_rejected(self):
        return self.status == ItemStatus.REJECTED


def normalize_decisions(item_statuses):
    """
    Accept the shapes callers send and key them by item id.

    Either a mapping ``{item_id: status}`` / ``{item_id: {...}}`` or a list
    of ``{'item_id': ..., 'status': ..., 'approved_quantity': ...}``.
    """
    if not item_statuses:
        return {}
    if isinstance(item_statuses, dict):
        pairs = item_statuses.items()
    else:
        pairs = []
        for entry in item_statuses:
            if not isinstance(entry, dict) or 'item_id' not in entry:
                raise ValidationError("Each item decision needs an item_id")
            pairs.append((entry['item_id'], entry))

    decisions = {}
    for item_id, decision in pairs:
        if isinstance(decision, str):
            decision = {'status': decision}
        elif not isinstance(decision, dict):
            raise ValidationError(f"Invalid decision for item {item_id}")
        decisions[str(item_id)] = decision
    return decisions


def decide_item(item, decision):
    """
    Turn one reviewer decision into an ItemOutcome.

    ``approved_quantity`` 0 means rejected; approving less than was asked
    for makes an ``approved`` item ``partial``.
    """
    status = decision.get('status')
    if status not in DECISION_STATUSES:
        raise ValidationError(f"Invalid status for item {item.pk}: {status!r}", item_id=item.pk)

    approved = decision.get('approved_quantity')
    if approved is None:
        approved = 0 if status == ItemStatus.REJECTED else item.quantity
    if isinstance(approved, bool) or not isinstance(approved, int) or approved < 0:
        raise ValidationError(
            f"Approved quantity for item {item.pk} must be a non-negative integer",
            item_id=item.pk,
        )
    if approved > item.quantity:
        raise ValidationError(
            f"Approved quantity {approved} exceeds requested {item.quantity} for item {item.pk}",
            item_id=item.pk,
        )

    if approved == 0:
        status = ItemStatus.REJECTED
    elif status == ItemStatus.REJECTED:
        approved = 0
    elif status in (ItemStatus.APPROVED, ItemStatus.PARTIAL):
        status = ItemStatus.PARTIAL if approved < item.quantity else ItemStatus.APPROVED

    return ItemOutcome(str(item.pk), ItemStatus(status), approved, decision.get('reason'))


def resolve_item_outcomes(items, item_statuses, availability=None):
    """
    Outcome of every item after a review.

    Args:
        items: Request/loan items (need ``pk``, ``quantity``,
            ``item_status`` and ``approved_quantity``)
        item_statuses: Reviewer decisions (see ``normalize_decisions``)
        availability: Callable ``item -> bool`` used for items without a
            decision that are still pending. ``None`` keeps their current
            outcome instead.

    Returns:
        dict: item id → ItemOutcome
    """
    decisions = normalize_decisions(item_statuses)
    known = {str(item.pk) for item in items}
    unknown = sorted(set(decisions) - known)
    if unknown:
        raise ValidationError(f"Unknown item(s): {', '.join(unknown)}", item_ids=unknown)

    outcomes = {}
    for item in items:
        key = str(item.pk)
        if key in decisions:
            outcomes[key] = decide_item(item, decisions[key])
        elif item.item_status == ItemStatus.PENDING and availability is not None:
            status = (
                ItemStatus.STOCK_ALLOCATED if availability(item) else ItemStatus.PROCUREMENT_NEEDED
            )
            outcomes[key] = ItemOutcome(key, status, item.quantity)
        elif item.item_status == ItemStatus.PENDING:
            outcomes[key] = ItemOutcome(key, ItemStatus.APPROVED, item.quantity)
        else:
            approved = item.approved_quantity
            if approved is None:
                approved = 0 if item.item_status == ItemStatus.REJECTED else item.quantity
            outcomes[key] = ItemOutcome(key, ItemStatus(item.item_status), approved, item.reason)
    return outcomes


def all_rejected(outcomes):
    return all(outcome.is_rejected for outcome in outcomes.values())


# ============================================================================
# TRANSITIONS
# ============================================================================

def logistic_decision(outcomes, allocation_target):
    """
    Next status after the logistic review of a PENDING request.

    Every item rejected ends the request. When stock covers every remaining
    item the request resolves straight to handover (usage) or completion
    (restock); any item that must be bought sends it on to final approval.
    """
    if all_rejected(outcomes):
        return RequestStatus.REJECTED
    remaining = [o for o in outcomes.values() if not o.is_rejected]
    if all(o.status == ItemStatus.STOCK_ALLOCATED for o in remaining):
        return completion_status(allocation_target)
    return RequestStatus.LOGISTIC_APPROVED


def final_decision(outcomes, allocation_target, fully_registered):
    """
    Next status after the final approval of an AWAITING_CEO_APPROVAL request.

    When the approver rejects every item still to be bought, the remaining
    items are already covered by stock and the request resolves like a
    stock-only logistic review.
    """
    if all_rejected(outcomes):
        return RequestStatus.REJECTED
    if fully_registered:
        return completion_status(allocation_target)
    return RequestStatus.APPROVED


def outcome_targets(outcomes):
    """Quantity each item must have registered under ``outcomes``."""
    return {
        item_id: 0 if outcome.is_rejected else outcome.approved_quantity
        for item_id, outcome in outcomes.items()
    }


def allocation_credits(outcomes, registered):
    """
    Registered counts after crediting stock-allocated items.

    Stock-allocated items are satisfied from existing stock, so their
    approved quantity counts as registered.
    """
    credited = dict(registered)
    for outcome in outcomes.values():
        if outcome.status == ItemStatus.STOCK_ALLOCATED:
            credited[outcome.item_id] = max(int(credited.get(outcome.item_id, 0)), outcome.approved_quantity)
    return credited


def is_fully_registered(targets, registered):
    """
    Args:
        targets: item id → quantity that must be registered (rejected
            items are left out or given 0)
        registered: item id → cumulative registered quantity
    """
    return all(int(registered.get(item_id, 0)) >= target for item_id, target in targets.items())


def registration_status(current, allocation_target, fully_registered):
    """
    Status after a registration.

    Never regresses out of AWAITING_HANDOVER/COMPLETED; moves there once
    every non-rejected item is fully registered.
    """
    if current not in REGISTRABLE:
        raise InvalidTransition(
            f"Cannot register assets on a request in {current}",
            current=current,
        )
    if current == RequestStatus.AWAITING_HANDOVER or not fully_registered:
        return RequestStatus(current)
    return completion_status(allocation_target)


def plan_reject(current):
    """
    Return REJECTED, or None when the request is already rejected.

    Only a repeated reject is a no-op. Rejecting a CANCELLED or COMPLETED
    request raises InvalidTransition, as does cancelling a rejected one.
    """
    if current == RequestStatus.REJECTED:
        return None
    if current not in REJECTABLE:
        raise InvalidTransition(f"Cannot reject a request in {current}", current=current)
    return RequestStatus.REJECTED


def plan_cancel(current):
    """Return CANCELLED, or None when the request is already cancelled."""
    if current == RequestStatus.CANCELLED:
        return None
    if current != RequestStatus.PENDING:
        raise InvalidTransition(f"Cannot cancel a request in {current}", current=current)
    return RequestStatus.CANCELLED
