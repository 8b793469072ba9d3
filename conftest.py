"""Shared fixtures: people, places, assets and logged-in API clients."""

import pytest
from django.test import Client

from assets.ledger import CustodyLedger
from core.models import Customer, Division
from users.models import User, UserRole


@pytest.fixture
def division(db):
    return Division.objects.create(code="NOC", name="Network Operations")


@pytest.fixture
def customer(db):
    return Customer.objects.create(code="CUST-001", name="PT Pelanggan Satu")


@pytest.fixture
def make_user(db, division):
    def _make(username, role=UserRole.STAFF, **extra):
        return User.objects.create_user(
            username=username,
            email=f"{username}@ims.local",
            password="pass12345",
            role=role,
            division=division,
            **extra,
        )
    return _make


@pytest.fixture
def requester(make_user):
    return make_user("budi", full_name="Budi Santoso")


@pytest.fixture
def other_user(make_user):
    return make_user("sari", full_name="Sari Dewi")


@pytest.fixture
def logistik(make_user):
    return make_user("logistik", role=UserRole.ADMIN_LOGISTIK, full_name="Admin Logistik")


@pytest.fixture
def purchase(make_user):
    return make_user("purchase", role=UserRole.ADMIN_PURCHASE, full_name="Admin Purchase")


@pytest.fixture
def ceo(make_user):
    return make_user("direktur", role=UserRole.SUPER_ADMIN, full_name="Direktur Utama")


@pytest.fixture
def make_assets(db, logistik):
    """Register in-storage assets the way purchase registration does."""
    def _make(name="Router", brand="Mikrotik", count=1, **fields):
        return CustodyLedger().register(name, brand, count, logistik, reference_id="SEED", **fields)
    return _make


@pytest.fixture
def requester_client(requester):
    client = Client()
    client.force_login(requester)
    return client


@pytest.fixture
def logistik_client(logistik):
    client = Client()
    client.force_login(logistik)
    return client
