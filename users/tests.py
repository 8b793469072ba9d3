"""Tests for the users app."""

from io import StringIO

import pytest
from django.core.management import call_command

from core.models import Division
from users.models import User, UserRole


@pytest.mark.django_db
class TestUserManager:
    def test_create_user(self):
        user = User.objects.create_user("andi", "Andi@IMS.Local", password="pass12345")
        assert user.role == UserRole.STAFF
        assert user.full_name == "andi"
        assert user.email == "Andi@ims.local"
        assert user.check_password("pass12345")
        assert not user.is_staff

    def test_email_required(self):
        with pytest.raises(ValueError):
            User.objects.create_user("andi", "", password="pass12345")

    def test_superuser_is_super_admin(self):
        user = User.objects.create_superuser("root", "root@ims.local", password="pass12345")
        assert user.role == UserRole.SUPER_ADMIN
        assert user.is_staff and user.is_superuser

    def test_has_role(self, logistik, requester):
        assert logistik.has_role(UserRole.ADMIN_LOGISTIK, UserRole.SUPER_ADMIN)
        assert not requester.has_role(UserRole.ADMIN_LOGISTIK)


@pytest.mark.django_db
class TestSeedInitialData:
    def test_one_user_per_role(self):
        out = StringIO()
        call_command("seed_initial_data", stdout=out)
        assert "Data seeding completed" in out.getvalue()
        assert Division.objects.filter(code="LOG").exists()
        assert set(User.objects.values_list("role", flat=True)) == set(UserRole.values)
        assert User.objects.get(username="superadmin").is_superuser

    def test_rerun_keeps_existing_users(self):
        call_command("seed_initial_data", stdout=StringIO())
        out = StringIO()
        call_command("seed_initial_data", "--password", "other12345", stdout=out)
        assert "Created 0 users" in out.getvalue()
        assert User.objects.get(username="staff").check_password("changeme123")
