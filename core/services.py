"""Helpers shared by the workflow services."""

import logging

from .models import ActivityLog, actor_name, actor_pk
from .signals import announce_transition

logger = logging.getLogger(__name__)


def commit_transition(document, previous, actor, action, detail, changes=None):
    """
    Persist a transition already applied to ``document`` in memory.

    Bumps the version, saves, appends the audit entry and queues the
    post-commit ``document_transitioned`` signal. Call inside the
    transition's ``transaction.atomic()`` block.
    """
    document.bump_version()
    document.updated_by = actor_pk(actor)
    document.save()
    ActivityLog.record(
        document, action, actor,
        detail=detail,
        reference_id=document.pk,
        changes=changes,
    )
    announce_transition(document, previous, document.status, actor)
    if previous != document.status:
        logger.info(
            "%s %s %s -> %s by %s",
            type(document).__name__, document.pk, previous, document.status, actor_name(actor),
        )
