"""Tests for the assets app: custody ledger, events, endpoints and report."""

import json
from io import StringIO

import pytest
from django.core.management import call_command

from assets.ledger import CustodyLedger
from assets.models import Asset, AssetCondition, AssetStatus, is_good_condition
from core.events import (
    AssetsAssigned, AssetsAwaitingReturn, AssetsRegistered, AssetsReleased, AssetsReverted
)
from core.exceptions import ConflictError, NotFound, ValidationError
from core.models import ActivityLog


def log_count(asset):
    return ActivityLog.for_entity(asset).count()


# ============================================================
# MODEL TESTS
# ============================================================


class TestConditions:
    @pytest.mark.parametrize("condition", ["NEW", "GOOD", "USED_OKAY"])
    def test_good_class(self, condition):
        assert is_good_condition(condition)

    @pytest.mark.parametrize("condition", ["MINOR_DAMAGE", "MAJOR_DAMAGE", "SALVAGE"])
    def test_damaged_class(self, condition):
        assert not is_good_condition(condition)


@pytest.mark.django_db
class TestAssetModel:
    def test_custody_errors_for_holderless_in_use(self, make_assets):
        asset = make_assets()[0]
        asset.status = AssetStatus.IN_USE
        assert asset.custody_errors() == ["Status IN_USE requires a holder."]

    def test_storage_save_clears_holder(self, make_assets, requester):
        asset = make_assets()[0]
        asset.current_holder_user = requester
        asset.save()
        asset.refresh_from_db()
        assert asset.current_holder_user is None

    def test_serial_number_trimmed(self, make_assets):
        asset = make_assets()[0]
        asset.serial_number = "  SN-001 "
        asset.save()
        asset.refresh_from_db()
        assert asset.serial_number == "SN-001"


# ============================================================
# REGISTRATION
# ============================================================


@pytest.mark.django_db
class TestRegister:
    def test_creates_in_storage_assets(self, logistik):
        assets = CustodyLedger().register("Switch", "Cisco", 3, logistik, reference_id="RO-202501-001")
        assert len(assets) == 3
        assert {a.status for a in assets} == {AssetStatus.IN_STORAGE}
        assert {a.origin_document for a in assets} == {"RO-202501-001"}
        assert all(a.location == "Gudang" for a in assets)
        assert len({a.pk for a in assets}) == 3

    def test_one_create_log_each(self, logistik):
        for asset in CustodyLedger().register("Switch", "Cisco", 2, logistik):
            assert list(ActivityLog.for_entity(asset).values_list("action", flat=True)) == ["CREATE"]

    def test_zero_count_creates_nothing(self, logistik):
        assert CustodyLedger().register("Switch", "Cisco", 0, logistik) == []
        assert Asset.objects.count() == 0

    def test_negative_count_rejected(self, logistik):
        with pytest.raises(ValidationError):
            CustodyLedger().register("Switch", "Cisco", -1, logistik)

    def test_bad_purchase_date_rejected(self, logistik):
        with pytest.raises(ValidationError):
            CustodyLedger().register("Switch", "Cisco", 1, logistik, purchase_date="not-a-date")
        assert Asset.objects.count() == 0

    def test_number_taken_by_concurrent_writer(self, make_assets, logistik, monkeypatch):
        taken = make_assets()[0].pk
        monkeypatch.setattr("assets.ledger.allocate_document_numbers", lambda *args, **kwargs: [taken])
        with pytest.raises(ConflictError):
            CustodyLedger().register("Switch", "Cisco", 1, logistik)
        assert list(Asset.objects.values_list("pk", flat=True)) == [taken]


# ============================================================
# UPDATE ONE / BATCH
# ============================================================


@pytest.mark.django_db
class TestUpdateOne:
    def test_assign_to_user(self, make_assets, requester, logistik):
        asset = make_assets()[0]
        updated = CustodyLedger().update_one(
            asset.pk, {"status": "IN_USE", "current_holder_user": str(requester.pk)}, logistik
        )
        assert updated.status == AssetStatus.IN_USE
        assert updated.current_holder_user == requester
        assert updated.version == asset.version + 1
        assert log_count(updated) == 2

    def test_customer_holder_replaces_user(self, make_assets, requester, customer, logistik):
        ledger = CustodyLedger()
        asset = make_assets()[0]
        ledger.update_one(asset.pk, {"status": "IN_USE", "current_holder_user": requester}, logistik)
        updated = ledger.update_one(asset.pk, {"current_holder_customer": customer}, logistik)
        assert updated.current_holder_customer == customer
        assert updated.current_holder_user is None

    def test_back_to_storage_clears_holder(self, make_assets, requester, logistik):
        ledger = CustodyLedger()
        asset = make_assets()[0]
        ledger.update_one(asset.pk, {"status": "IN_USE", "current_holder_user": requester}, logistik)
        updated = ledger.update_one(asset.pk, {"status": "IN_STORAGE"}, logistik)
        assert updated.current_holder is None

    def test_in_use_without_holder_rejected(self, make_assets, logistik):
        asset = make_assets()[0]
        with pytest.raises(ValidationError):
            CustodyLedger().update_one(asset.pk, {"status": "IN_USE"}, logistik)
        asset.refresh_from_db()
        assert asset.status == AssetStatus.IN_STORAGE
        assert log_count(asset) == 1

    def test_non_custody_field_rejected(self, make_assets, logistik):
        asset = make_assets()[0]
        with pytest.raises(ValidationError):
            CustodyLedger().update_one(asset.pk, {"name": "Renamed"}, logistik)

    def test_unknown_status_rejected(self, make_assets, logistik):
        with pytest.raises(ValidationError):
            CustodyLedger().update_one(make_assets()[0].pk, {"status": "LOST"}, logistik)

    def test_missing_asset(self, logistik):
        with pytest.raises(NotFound):
            CustodyLedger().update_one("AST-209901-001", {"status": "IN_REPAIR"}, logistik)

    def test_missing_holder(self, make_assets, logistik):
        with pytest.raises(NotFound):
            CustodyLedger().update_one(
                make_assets()[0].pk,
                {"status": "IN_USE", "current_holder_user": "not-a-uuid"},
                logistik,
            )

    def test_version_conflict(self, make_assets, logistik):
        asset = make_assets()[0]
        with pytest.raises(ConflictError):
            CustodyLedger().update_one(
                asset.pk, {"status": "IN_REPAIR"}, logistik, expected_version=asset.version + 5
            )


@pytest.mark.django_db
class TestUpdateBatch:
    def test_all_assets_updated_and_logged(self, make_assets, logistik):
        assets = make_assets(count=3)
        updated = CustodyLedger().update_batch(
            [a.pk for a in assets], {"status": "IN_REPAIR"}, logistik, reference_id="RO-1"
        )
        assert [a.status for a in updated] == [AssetStatus.IN_REPAIR] * 3
        for asset in assets:
            assert ActivityLog.for_entity(asset).filter(reference_id="RO-1").count() == 1

    def test_missing_id_rolls_back_everything(self, make_assets, logistik):
        assets = make_assets(count=2)
        ids = [a.pk for a in assets] + ["AST-209901-999"]
        with pytest.raises(NotFound):
            CustodyLedger().update_batch(ids, {"status": "IN_REPAIR"}, logistik)
        assert set(Asset.objects.values_list("status", flat=True)) == {AssetStatus.IN_STORAGE}
        assert ActivityLog.objects.filter(action="UPDATE").count() == 0

    def test_inconsistent_patch_rolls_back_everything(self, make_assets, requester, logistik):
        ledger = CustodyLedger()
        first, second = make_assets(count=2)
        ledger.update_one(first.pk, {"status": "IN_USE", "current_holder_user": requester}, logistik)
        # The second asset has no holder, so IN_CUSTODY fails for it
        with pytest.raises(ValidationError):
            ledger.update_batch([first.pk, second.pk], {"status": "IN_CUSTODY"}, logistik)
        first.refresh_from_db()
        assert first.status == AssetStatus.IN_USE

    def test_empty_batch(self, logistik):
        assert CustodyLedger().update_batch([], {"status": "IN_REPAIR"}, logistik) == []


# ============================================================
# EVENTS
# ============================================================


@pytest.mark.django_db
class TestApplyEvents:
    def test_assign_then_return_cycle(self, make_assets, requester, logistik):
        ledger = CustodyLedger()
        ids = [a.pk for a in make_assets(count=2)]
        ledger.apply([AssetsAssigned(ids, reference_id="RL-1", holder_user=requester)], logistik)
        ledger.apply([AssetsAwaitingReturn(ids, reference_id="RTN-1")], requester)
        assert set(Asset.objects.values_list("status", flat=True)) == {AssetStatus.AWAITING_RETURN}

        ledger.apply([
            AssetsReleased(ids[:1], reference_id="RTN-1", condition=AssetCondition.GOOD),
            AssetsReverted(ids[1:], reference_id="RTN-1"),
        ], logistik)
        kept, back = Asset.objects.get(pk=ids[0]), Asset.objects.get(pk=ids[1])
        assert kept.status == AssetStatus.IN_STORAGE
        assert kept.current_holder is None
        assert kept.location == "Gudang"
        assert back.status == AssetStatus.IN_USE
        assert back.current_holder_user == requester

    def test_register_event(self, logistik):
        assets = CustodyLedger().apply(
            [AssetsRegistered("Laptop", "Lenovo", 2, reference_id="RO-9", fields={"category": "IT"})],
            logistik,
        )
        assert [a.category for a in assets] == ["IT", "IT"]

    def test_failing_event_rolls_back_earlier_ones(self, make_assets, requester, logistik):
        ids = [a.pk for a in make_assets(count=1)]
        with pytest.raises(NotFound):
            CustodyLedger().apply([
                AssetsAssigned(ids, reference_id="RL-1", holder_user=requester),
                AssetsAwaitingReturn(["AST-209901-404"], reference_id="RTN-1"),
            ], logistik)
        assert Asset.objects.get(pk=ids[0]).status == AssetStatus.IN_STORAGE

    def test_availability(self, make_assets):
        make_assets("Router", "Mikrotik", count=3)
        availability = CustodyLedger().check_availability("Router", "Mikrotik", 5)
        assert availability.available == 3
        assert not availability.is_sufficient
        assert availability.deficit == 2


# ============================================================
# ENDPOINTS
# ============================================================


@pytest.mark.django_db
class TestAssetEndpoints:
    def test_get_includes_activity_log(self, logistik_client, make_assets):
        asset = make_assets()[0]
        response = logistik_client.get(f"/assets/{asset.pk}")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "IN_STORAGE"
        assert [entry["action"] for entry in body["activity_log"]] == ["CREATE"]

    def test_patch(self, logistik_client, make_assets):
        asset = make_assets()[0]
        response = logistik_client.patch(
            f"/assets/{asset.pk}",
            data=json.dumps({"status": "IN_REPAIR", "version": asset.version}),
            content_type="application/json",
        )
        assert response.status_code == 200
        assert response.json()["status"] == "IN_REPAIR"

    def test_patch_stale_version(self, logistik_client, make_assets):
        asset = make_assets()[0]
        response = logistik_client.patch(
            f"/assets/{asset.pk}",
            data=json.dumps({"status": "IN_REPAIR", "version": 99}),
            content_type="application/json",
        )
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_batch(self, logistik_client, make_assets):
        ids = [a.pk for a in make_assets(count=2)]
        response = logistik_client.patch(
            "/assets/batch",
            data=json.dumps({"asset_ids": ids, "patch": {"status": "DECOMMISSIONED"}}),
            content_type="application/json",
        )
        assert response.status_code == 200
        assert [a["status"] for a in response.json()["assets"]] == ["DECOMMISSIONED"] * 2

    def test_missing_asset_is_404(self, logistik_client):
        response = logistik_client.get("/assets/AST-209901-001")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_anonymous_is_401(self, client, make_assets):
        asset = make_assets()[0]
        assert client.get(f"/assets/{asset.pk}").status_code == 401


# ============================================================
# MANAGEMENT COMMANDS
# ============================================================


@pytest.mark.django_db
class TestAssetReport:
    def test_counts(self, make_assets):
        make_assets(count=2)
        out = StringIO()
        call_command("asset_report", stdout=out)
        assert "Total Assets: 2" in out.getvalue()
        assert "IN_STORAGE: 2" in out.getvalue()

    def test_export(self, make_assets, tmp_path):
        make_assets(count=1)
        target = tmp_path / "report.csv"
        call_command("asset_report", export=str(target), stdout=StringIO())
        lines = target.read_text().splitlines()
        assert lines[0].startswith("Asset ID,Name")
        assert len(lines) == 2
