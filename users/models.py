"""
User Models
===========
This module contains:
1. User - Custom user model extending Django's AbstractBaseUser
2. UserRole - Operational roles that drive approvals and notification inboxes
"""

import uuid
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.validators import RegexValidator

from core.models import Division


# ============================================================================
# USER ROLES
# ============================================================================

class UserRole(models.TextChoices):
    SUPER_ADMIN = 'SUPER_ADMIN', 'Super Admin'
    ADMIN_LOGISTIK = 'ADMIN_LOGISTIK', 'Admin Logistik'
    ADMIN_PURCHASE = 'ADMIN_PURCHASE', 'Admin Purchase'
    LEADER = 'LEADER', 'Leader'
    STAFF = 'STAFF', 'Staff'
    TEKNISI = 'TEKNISI', 'Teknisi'


# ============================================================================
# CUSTOM USER MANAGER
# ============================================================================

class CustomUserManager(BaseUserManager):
    """
    Custom user manager for creating users and superusers.
    """

    def create_user(self, username, email, password=None, **extra_fields):
        """Create and save a regular user."""
        if not username:
            raise ValueError('Users must have a username')
        if not email:
            raise ValueError('Users must have an email address')

        email = self.normalize_email(email)
        extra_fields.setdefault('full_name', username)
        user = self.model(username=username, email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, username, email, password=None, **extra_fields):
        """Create and save a superuser."""
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', UserRole.SUPER_ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(username, email, password, **extra_fields)


# ============================================================================
# USER MODEL
# ============================================================================

class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model for the IMS.

    Users request assets, approve documents, and hold assets in custody.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )

    # Authentication fields
    username = models.CharField(
        max_length=50,
        unique=True,
        validators=[
            RegexValidator(
                regex=r'^[a-zA-Z0-9_]+$',
                message='Username must contain only letters, numbers, and underscores.'
            )
        ],
        help_text="Unique username for login"
    )
    email = models.EmailField(
        unique=True,
        help_text="Email address"
    )

    # Personal information
    full_name = models.CharField(
        max_length=100,
        help_text="Full name of the user"
    )
    phone = models.CharField(
        max_length=20,
        blank=True,
        null=True,
        help_text="Contact phone number"
    )

    # Organizational links
    division = models.ForeignKey(
        Division,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='users',
        help_text="Division assignment"
    )
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.STAFF,
        help_text="Operational role"
    )

    # Status fields
    is_active = models.BooleanField(
        default=True,
        help_text="Is user account active?"
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Can user access admin site?"
    )

    # Audit fields
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Required for Django's authentication
    USERNAME_FIELD = 'username'
    REQUIRED_FIELDS = ['email', 'full_name']

    objects = CustomUserManager()

    class Meta:
        db_table = 'users'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        ordering = ['username']
        indexes = [
            models.Index(fields=['role', 'is_active']),
        ]

    def __str__(self):
        return f"{self.username} - {self.full_name}"

    def get_full_name(self):
        """Return full name."""
        return self.full_name

    def get_short_name(self):
        """Return username."""
        return self.username

    def has_role(self, *roles):
        return self.is_superuser or self.role in roles
