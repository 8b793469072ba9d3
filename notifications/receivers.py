"""
Transition Receivers
====================
Turn committed workflow transitions into notifications.

Each rule maps (document type, new status) to the audiences to tell:
``'requester'`` for the document's requester, or a role inbox.
"""

import logging

from django.dispatch import receiver

from core.signals import document_transitioned
from users.models import UserRole
from .models import Notification

logger = logging.getLogger(__name__)

REQUESTER = 'requester'

RULES = {
    ('Request', 'PENDING'): [
        (UserRole.ADMIN_LOGISTIK, "New request {id} awaits logistic review"),
    ],
    ('Request', 'LOGISTIC_APPROVED'): [
        (REQUESTER, "Request {id} passed logistic review"),
        (UserRole.ADMIN_PURCHASE, "Request {id} needs purchasing"),
    ],
    ('Request', 'AWAITING_CEO_APPROVAL'): [
        (UserRole.SUPER_ADMIN, "Request {id} awaits final approval"),
    ],
    ('Request', 'APPROVED'): [
        (REQUESTER, "Request {id} was approved"),
        (UserRole.ADMIN_PURCHASE, "Request {id} approved for purchase"),
    ],
    ('Request', 'REJECTED'): [
        (REQUESTER, "Request {id} was rejected"),
    ],
    ('Request', 'ARRIVED'): [
        (REQUESTER, "Goods for request {id} have arrived"),
        (UserRole.ADMIN_LOGISTIK, "Goods for request {id} arrived and need registering"),
    ],
    ('Request', 'AWAITING_HANDOVER'): [
        (REQUESTER, "Request {id} is ready for handover"),
        (UserRole.ADMIN_LOGISTIK, "Request {id} is ready for handover"),
    ],
    ('Request', 'COMPLETED'): [
        (REQUESTER, "Request {id} is completed"),
    ],
    ('Request', 'CANCELLED'): [
        (UserRole.ADMIN_LOGISTIK, "Request {id} was cancelled by its requester"),
    ],
    ('LoanRequest', 'PENDING'): [
        (UserRole.ADMIN_LOGISTIK, "New loan request {id} awaits approval"),
    ],
    ('LoanRequest', 'ON_LOAN'): [
        (REQUESTER, "Loan {id} was approved; assets are on loan to you"),
    ],
    ('LoanRequest', 'REJECTED'): [
        (REQUESTER, "Loan {id} was rejected"),
    ],
    ('LoanRequest', 'RETURNED'): [
        (REQUESTER, "Loan {id} is fully returned"),
    ],
    ('AssetReturn', 'PENDING_APPROVAL'): [
        (UserRole.ADMIN_LOGISTIK, "Return {id} awaits verification"),
    ],
    ('AssetReturn', 'APPROVED'): [
        (REQUESTER, "Return {id} was partially accepted"),
    ],
    ('AssetReturn', 'COMPLETED'): [
        (REQUESTER, "Return {id} was accepted"),
    ],
    ('AssetReturn', 'REJECTED'): [
        (REQUESTER, "Return {id} was rejected; the assets are still on loan"),
    ],
}


def requester_of(document):
    if hasattr(document, 'loan_request'):
        return document.loan_request.requester
    return getattr(document, 'requester', None)


def build_notifications(document, previous_status, new_status):
    """Unsaved notifications for one transition."""
    document_type = type(document).__name__
    notifications = []
    for audience, template in RULES.get((document_type, str(new_status)), []):
        target = {}
        if audience == REQUESTER:
            requester = requester_of(document)
            if requester is None:
                continue
            target['recipient_user'] = requester
        else:
            target['recipient_role'] = audience
        notifications.append(Notification(
            document_type=document_type,
            document_id=document.pk,
            previous_status=previous_status,
            new_status=new_status,
            message=template.format(id=document.pk),
            **target
        ))
    return notifications


@receiver(document_transitioned)
def notify_transition(sender, document, previous_status, new_status, actor=None, **kwargs):
    notifications = build_notifications(document, previous_status, new_status)
    if notifications:
        Notification.objects.bulk_create(notifications)
        logger.info(
            "%d notification(s) for %s %s -> %s",
            len(notifications), document.pk, previous_status, new_status,
        )
