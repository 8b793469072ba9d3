"""Tests for the inventory app: stock movement ledger and endpoints."""

import datetime
import json

import pytest
from django.utils import timezone

from core.exceptions import InvalidTransition, NotFound, ValidationError
from inventory.ledger import StockLedger, fold_balances
from inventory.models import MovementType, StockMovement


def at(day, hour=9):
    return timezone.make_aware(datetime.datetime(2025, 1, day, hour))


class TestFoldBalances:
    def test_running_total(self):
        assert fold_balances([5, -2, 3]) == [5, 3, 6]

    def test_clamped_at_zero(self):
        assert fold_balances([2, -5, 4]) == [2, 0, 4]

    def test_opening_balance(self):
        assert fold_balances([-1], opening=3) == [2]


@pytest.mark.django_db
class TestRecord:
    def test_balance_after(self, logistik):
        ledger = StockLedger()
        ledger.record("Kabel UTP", "Belden", MovementType.IN_PURCHASE, 100, logistik)
        movement = ledger.record("Kabel UTP", "Belden", MovementType.OUT_INSTALLATION, 30, logistik)
        assert movement.balance_after == 70
        assert movement.signed_quantity == -30
        assert ledger.current_balance("Kabel UTP", "Belden") == 70

    def test_never_negative(self, logistik):
        ledger = StockLedger()
        ledger.record("Konektor", "", MovementType.IN_PURCHASE, 5, logistik)
        movement = ledger.record("Konektor", "", MovementType.OUT_BROKEN, 8, logistik)
        assert movement.balance_after == 0

    def test_identities_are_separate(self, logistik):
        ledger = StockLedger()
        ledger.record("Router", "Mikrotik", MovementType.IN_PURCHASE, 4, logistik)
        ledger.record("Router", "TP-Link", MovementType.IN_PURCHASE, 1, logistik)
        assert ledger.current_balance("Router", "Mikrotik") == 4
        assert ledger.current_balance("Router", "TP-Link") == 1

    def test_backdated_movement_recomputes_later_balances(self, logistik):
        ledger = StockLedger()
        ledger.record("Kabel", "", MovementType.IN_PURCHASE, 10, logistik, occurred_at=at(1))
        later = ledger.record("Kabel", "", MovementType.OUT_USAGE_CUSTODY, 4, logistik, occurred_at=at(10))
        assert later.balance_after == 6

        backdated = ledger.record("Kabel", "", MovementType.OUT_BROKEN, 3, logistik, occurred_at=at(5))
        assert backdated.balance_after == 7
        later.refresh_from_db()
        assert later.balance_after == 3
        assert [m.balance_after for m in ledger.history("Kabel")] == [10, 7, 3]

    def test_backdated_clamping_follows_order(self, logistik):
        ledger = StockLedger()
        ledger.record("Kabel", "", MovementType.IN_PURCHASE, 2, logistik, occurred_at=at(10))
        ledger.record("Kabel", "", MovementType.OUT_BROKEN, 5, logistik, occurred_at=at(1))
        # The outbound now comes first: clamped at 0, then +2
        assert [m.balance_after for m in ledger.history("Kabel")] == [0, 2]

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, True, "4"])
    def test_bad_quantity(self, logistik, quantity):
        with pytest.raises(ValidationError):
            StockLedger().record("Kabel", "", MovementType.IN_PURCHASE, quantity, logistik)

    def test_unknown_type(self, logistik):
        with pytest.raises(ValidationError):
            StockLedger().record("Kabel", "", "IN_GIFT", 1, logistik)

    def test_movements_are_append_only(self, logistik):
        movement = StockLedger().record("Kabel", "", MovementType.IN_PURCHASE, 1, logistik)
        movement.quantity = 99
        with pytest.raises(TypeError):
            movement.save()
        with pytest.raises(TypeError):
            movement.delete()


@pytest.mark.django_db
class TestReverse:
    def test_reversal_restores_balance(self, logistik):
        ledger = StockLedger()
        purchase = ledger.record("Router", "Mikrotik", MovementType.IN_PURCHASE, 5, logistik)
        reversal = ledger.reverse(purchase.pk, logistik)
        assert reversal.movement_type == MovementType.OUT_ADJUSTMENT
        assert reversal.reverses == purchase
        assert ledger.current_balance("Router", "Mikrotik") == 0

    def test_outbound_reversed_with_inbound(self, logistik):
        ledger = StockLedger()
        ledger.record("Router", "Mikrotik", MovementType.IN_PURCHASE, 5, logistik)
        loan = ledger.record("Router", "Mikrotik", MovementType.OUT_LOAN, 2, logistik)
        assert ledger.reverse(loan.pk, logistik).movement_type == MovementType.IN_ADJUSTMENT
        assert ledger.current_balance("Router", "Mikrotik") == 5

    def test_cannot_reverse_twice(self, logistik):
        ledger = StockLedger()
        purchase = ledger.record("Router", "Mikrotik", MovementType.IN_PURCHASE, 5, logistik)
        ledger.reverse(purchase.pk, logistik)
        with pytest.raises(InvalidTransition):
            ledger.reverse(purchase.pk, logistik)

    def test_missing_movement(self, logistik):
        with pytest.raises(NotFound):
            StockLedger().reverse(424242, logistik)


@pytest.mark.django_db
class TestSummary:
    def test_one_row_per_identity(self, logistik):
        ledger = StockLedger()
        ledger.record("Router", "Mikrotik", MovementType.IN_PURCHASE, 5, logistik)
        ledger.record("Router", "Mikrotik", MovementType.OUT_HANDOVER, 2, logistik)
        ledger.record("Kabel", "Belden", MovementType.IN_PURCHASE, 50, logistik)
        assert ledger.summary() == [
            {"item_name": "Kabel", "brand": "Belden", "balance": 50, "movements": 1},
            {"item_name": "Router", "brand": "Mikrotik", "balance": 3, "movements": 2},
        ]


# ============================================================
# ENDPOINTS
# ============================================================


@pytest.mark.django_db
class TestStockEndpoints:
    def post(self, client, path, body):
        return client.post(path, data=json.dumps(body), content_type="application/json")

    def test_record_movement(self, logistik_client):
        response = self.post(logistik_client, "/stock/movements", {
            "item_name": "Kabel UTP", "brand": "Belden",
            "movement_type": "IN_PURCHASE", "quantity": 20,
        })
        assert response.status_code == 201
        assert response.json()["balance_after"] == 20
        assert response.json()["actor"] == "Admin Logistik"

    def test_backdated_movement(self, logistik_client):
        self.post(logistik_client, "/stock/movements", {
            "item_name": "Kabel", "movement_type": "IN_PURCHASE", "quantity": 5,
            "occurred_at": "2025-01-10T08:00:00",
        })
        response = self.post(logistik_client, "/stock/movements", {
            "item_name": "Kabel", "movement_type": "IN_PURCHASE", "quantity": 1,
            "occurred_at": "2025-01-01T08:00:00",
        })
        assert response.json()["balance_after"] == 1
        assert StockMovement.objects.order_by("occurred_at").last().balance_after == 6

    def test_invalid_quantity_is_400(self, logistik_client):
        response = self.post(logistik_client, "/stock/movements", {
            "item_name": "Kabel", "movement_type": "IN_PURCHASE", "quantity": -1,
        })
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_bad_timestamp_is_400(self, logistik_client):
        response = self.post(logistik_client, "/stock/movements", {
            "item_name": "Kabel", "movement_type": "IN_PURCHASE", "quantity": 1,
            "occurred_at": "yesterday",
        })
        assert response.status_code == 400

    def test_reverse(self, logistik_client, logistik):
        movement = StockLedger().record("Kabel", "", MovementType.IN_PURCHASE, 3, logistik)
        response = self.post(logistik_client, f"/stock/movements/{movement.pk}/reverse", {})
        assert response.status_code == 201
        assert response.json()["reverses"] == movement.pk

    def test_summary(self, logistik_client, logistik):
        StockLedger().record("Kabel", "", MovementType.IN_PURCHASE, 3, logistik)
        response = logistik_client.get("/stock/summary")
        assert response.status_code == 200
        assert response.json() == [{"item_name": "Kabel", "brand": "", "balance": 3, "movements": 1}]

    def test_wrong_method(self, logistik_client):
        assert logistik_client.get("/stock/movements").status_code == 405
