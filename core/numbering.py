"""
Document Numbering
==================
Human-readable, per-month sequence identifiers for every document type.

Format: ``<PREFIX>-<YYYYMM>-<sequence>`` (e.g. ``RO-202501-001``).

The sequence is the smallest positive integer not yet used by a document
with the same prefix and month, so a failed write followed by a retry
reuses the same number instead of skipping one.
"""

import re

from django.db import models
from django.utils import timezone

from .conf import ims_setting


class DocumentPrefix(models.TextChoices):
    ASSET = 'AST', 'Asset'
    REQUEST = 'RO', 'Purchase Request'
    LOAN = 'RL', 'Loan Request'
    RETURN = 'RTN', 'Asset Return'
    HANDOVER = 'HO', 'Handover'


DOC_NUMBER_RE = re.compile(r'^(?P<prefix>[A-Z]+)-(?P<year>\d{4})(?P<month>\d{2})-(?P<seq>\d+)$')


def period_bucket(date=None):
    """Return the ``YYYYMM`` bucket for ``date`` (defaults to now)."""
    date = date or timezone.now()
    return f"{date.year:04d}{date.month:02d}"


def parse_document_number(doc_id):
    """
    Split a document number into its parts.

    Returns:
        tuple: (prefix, year, month, sequence) or None when ``doc_id``
        is not a document number.
    """
    match = DOC_NUMBER_RE.match(doc_id or '')
    if not match:
        return None
    return (
        match.group('prefix'),
        int(match.group('year')),
        int(match.group('month')),
        int(match.group('seq')),
    )


def generate_document_number(prefix, existing_ids, date=None, padding=None):
    """
    Generate the next free document number.

    Args:
        prefix: Document prefix (``DocumentPrefix`` member or plain string)
        existing_ids: Iterable of ids already in use (duplicates tolerated)
        date: Date selecting the month bucket (defaults to now)
        padding: Minimum digits of the sequence

    Returns:
        str: A number that collides with none of ``existing_ids``
    """
    prefix = str(prefix)
    bucket = period_bucket(date)
    if padding is None:
        padding = ims_setting('NUMBER_PADDING')

    used = set()
    for doc_id in existing_ids:
        parsed = parse_document_number(doc_id)
        if not parsed:
            continue
        doc_prefix, year, month, seq = parsed
        if doc_prefix == prefix and f"{year:04d}{month:02d}" == bucket:
            used.add(seq)

    sequence = 1
    while sequence in used:
        sequence += 1

    return f"{prefix}-{bucket}-{sequence:0{padding}d}"


def next_document_number(model, prefix, date=None):
    """
    Number a new row of ``model`` against the ids already stored.

    Call inside the transaction that inserts the row; the primary key's
    uniqueness guards against a concurrent writer taking the same number.
    """
    return allocate_document_numbers(model, prefix, 1, date=date)[0]


def allocate_document_numbers(model, prefix, count, date=None):
    """Reserve ``count`` consecutive free numbers for a bulk insert."""
    bucket_prefix = f"{prefix}-{period_bucket(date)}-"
    existing = list(model.objects.filter(pk__startswith=bucket_prefix).values_list('pk', flat=True))
    numbers = []
    for _ in range(count):
        number = generate_document_number(prefix, existing, date=date)
        existing.append(number)
        numbers.append(number)
    return numbers
