"""Tests for the core app: numbering, activity log, errors and signals."""

import datetime

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError

from assets.models import Asset
from core.exceptions import (
    ConflictError, InvalidTransition, NotFound, PermissionDenied, ValidationError,
    WorkflowError, from_django_validation_error,
)
from core.models import ActivityLog, actor_name, actor_pk
from core.numbering import (
    DocumentPrefix, allocate_document_numbers, generate_document_number,
    next_document_number, parse_document_number,
)
from core.signals import document_transitioned

JAN_2025 = datetime.date(2025, 1, 15)


# ============================================================
# DOCUMENT NUMBERING
# ============================================================


class TestGenerateDocumentNumber:
    def test_first_number_in_bucket(self):
        assert generate_document_number("RO", [], date=JAN_2025) == "RO-202501-001"

    def test_takes_next_after_existing(self):
        existing = ["RO-202501-001", "RO-202501-002"]
        assert generate_document_number("RO", existing, date=JAN_2025) == "RO-202501-003"

    def test_fills_the_smallest_gap(self):
        existing = ["RO-202501-001", "RO-202501-003"]
        assert generate_document_number("RO", existing, date=JAN_2025) == "RO-202501-002"

    def test_duplicates_tolerated(self):
        existing = ["RO-202501-001", "RO-202501-001"]
        assert generate_document_number("RO", existing, date=JAN_2025) == "RO-202501-002"

    def test_other_prefix_and_bucket_ignored(self):
        existing = ["RL-202501-001", "RO-202412-001", "RO-202501-abc", "garbage"]
        assert generate_document_number("RO", existing, date=JAN_2025) == "RO-202501-001"

    def test_widens_past_padding(self):
        existing = [f"AST-202501-{n:03d}" for n in range(1, 1000)]
        assert generate_document_number("AST", existing, date=JAN_2025) == "AST-202501-1000"

    def test_never_collides(self):
        existing = ["RTN-202501-001", "RTN-202501-002", "RTN-202501-004"]
        number = generate_document_number(DocumentPrefix.RETURN, existing, date=JAN_2025)
        assert number not in existing

    def test_deterministic(self):
        existing = ["HO-202501-002"]
        first = generate_document_number("HO", existing, date=JAN_2025)
        assert generate_document_number("HO", existing, date=JAN_2025) == first

    def test_enum_prefix(self):
        assert generate_document_number(DocumentPrefix.LOAN, [], date=JAN_2025) == "RL-202501-001"


class TestParseDocumentNumber:
    def test_parts(self):
        assert parse_document_number("RTN-202502-017") == ("RTN", 2025, 2, 17)

    def test_rejects_malformed(self):
        assert parse_document_number("RO-2025-001") is None
        assert parse_document_number(None) is None


@pytest.mark.django_db
class TestNextDocumentNumber:
    def test_reads_existing_rows(self, make_assets):
        make_assets(count=2)
        number = next_document_number(Asset, DocumentPrefix.ASSET)
        assert parse_document_number(number)[3] == 3

    def test_allocate_consecutive(self):
        numbers = allocate_document_numbers(Asset, DocumentPrefix.ASSET, 3, date=JAN_2025)
        assert numbers == ["AST-202501-001", "AST-202501-002", "AST-202501-003"]


# ============================================================
# ACTIVITY LOG
# ============================================================


@pytest.mark.django_db
class TestActivityLog:
    def test_record_captures_actor(self, make_assets, requester):
        asset = make_assets()[0]
        entry = ActivityLog.record(asset, "NOTE", requester, detail="checked", reference_id="RO-1")
        assert entry.entity_type == "Asset"
        assert entry.entity_id == asset.pk
        assert entry.actor_id == requester.pk
        assert entry.actor_name == "Budi Santoso"

    def test_entries_cannot_be_edited(self, make_assets):
        entry = ActivityLog.for_entity(make_assets()[0]).first()
        entry.detail = "rewritten"
        with pytest.raises(TypeError):
            entry.save()

    def test_entries_cannot_be_deleted(self, make_assets):
        entry = ActivityLog.for_entity(make_assets()[0]).first()
        with pytest.raises(TypeError):
            entry.delete()

    def test_queryset_bulk_changes_refused(self, make_assets):
        make_assets()
        with pytest.raises(TypeError):
            ActivityLog.objects.all().update(detail="x")
        with pytest.raises(TypeError):
            ActivityLog.objects.all().delete()

    def test_system_actor(self, make_assets):
        entry = ActivityLog.record(make_assets()[0], "NOTE")
        assert entry.actor_id is None
        assert entry.actor_name == "System"


class TestActorHelpers:
    def test_named_actor(self):
        assert actor_name("scheduler") == "scheduler"
        assert actor_pk("scheduler") is None

    def test_none(self):
        assert actor_name(None) == "System"
        assert actor_pk(None) is None


# ============================================================
# ERRORS
# ============================================================


class TestErrors:
    @pytest.mark.parametrize("exc_class, code, status", [
        (NotFound, "not_found", 404),
        (InvalidTransition, "invalid_transition", 409),
        (ValidationError, "validation_error", 400),
        (ConflictError, "conflict", 409),
        (PermissionDenied, "permission_denied", 403),
    ])
    def test_codes(self, exc_class, code, status):
        exc = exc_class("boom")
        assert isinstance(exc, WorkflowError)
        assert exc.code == code
        assert exc.status_code == status
        assert exc.message == "boom"

    def test_context_kept(self):
        exc = NotFound("missing", asset_id="AST-1")
        assert exc.context == {"asset_id": "AST-1"}

    def test_from_django_validation_error(self):
        exc = from_django_validation_error(DjangoValidationError({"status": ["bad status"]}))
        assert isinstance(exc, ValidationError)
        assert "bad status" in exc.message


# ============================================================
# TRANSITION SIGNAL
# ============================================================


@pytest.mark.django_db
class TestDocumentTransitioned:
    def test_sent_after_commit(self, requester, django_capture_on_commit_callbacks):
        from procurement.services import PurchaseRequestWorkflow

        received = []

        def listener(sender, document, previous_status, new_status, **kwargs):
            received.append((sender.__name__, document.pk, previous_status, new_status))

        document_transitioned.connect(listener)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                request = PurchaseRequestWorkflow().create(
                    requester, [{"name": "Router", "quantity": 1}]
                )
        finally:
            document_transitioned.disconnect(listener)

        assert received == [("Request", request.pk, None, "PENDING")]

    def test_not_sent_when_rolled_back(self, requester, django_capture_on_commit_callbacks):
        from procurement.services import PurchaseRequestWorkflow

        with django_capture_on_commit_callbacks() as callbacks:
            with pytest.raises(ValidationError):
                PurchaseRequestWorkflow().create(requester, [])
        assert callbacks == []
