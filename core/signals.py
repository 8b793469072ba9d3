"""
Transition Signals
==================
The trigger contract for collaborators that react to workflow transitions
(notifications, audit exports). Sent only after the transition commits.
"""

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

# kwargs: document, previous_status, new_status, actor
document_transitioned = Signal()


def announce_transition(document, previous_status, new_status, actor=None):
    """Queue ``document_transitioned`` for after the current transaction."""
    if previous_status == new_status:
        return

    sender = type(document)
    doc_id = document.pk

    def send():
        results = document_transitioned.send_robust(
            sender=sender,
            document=document,
            previous_status=previous_status,
            new_status=new_status,
            actor=actor,
        )
        for receiver, result in results:
            if isinstance(result, Exception):
                logger.error(
                    "Receiver %r failed for %s %s -> %s: %s",
                    receiver, doc_id, previous_status, new_status, result,
                    exc_info=result,
                )

    transaction.on_commit(send)
