"""
Seed Initial Data Command
=========================
Populates the database with the default divisions and one user per role.

Usage:
    python manage.py seed_initial_data
    python manage.py seed_initial_data --password secret123
"""

from django.core.management.base import BaseCommand
from django.db import transaction

from core.models import Division
from users.models import User, UserRole


DIVISIONS = [
    {'code': 'LOG', 'name': 'Logistik'},
    {'code': 'PUR', 'name': 'Purchase'},
    {'code': 'NOC', 'name': 'Network Operation Center'},
    {'code': 'ENG', 'name': 'Engineering'},
    {'code': 'MGT', 'name': 'Management'},
]

USERS = [
    {'username': 'superadmin', 'name': 'Super Admin', 'role': UserRole.SUPER_ADMIN, 'division': 'MGT'},
    {'username': 'logistik', 'name': 'Admin Logistik', 'role': UserRole.ADMIN_LOGISTIK, 'division': 'LOG'},
    {'username': 'purchase', 'name': 'Admin Purchase', 'role': UserRole.ADMIN_PURCHASE, 'division': 'PUR'},
    {'username': 'leader', 'name': 'Team Leader', 'role': UserRole.LEADER, 'division': 'NOC'},
    {'username': 'staff', 'name': 'NOC Staff', 'role': UserRole.STAFF, 'division': 'NOC'},
    {'username': 'teknisi', 'name': 'Field Technician', 'role': UserRole.TEKNISI, 'division': 'ENG'},
]


class Command(BaseCommand):
    help = 'Seeds initial data (divisions, one user per role)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--password',
            type=str,
            default='changeme123',
            help='Password for the seeded users (default: changeme123)',
        )

    def handle(self, *args, **options):
        self.stdout.write('Starting data seeding...\n')

        with transaction.atomic():
            divisions = self.seed_divisions()
            self.seed_users(divisions, options['password'])

        self.stdout.write(self.style.SUCCESS('\n✓ Data seeding completed successfully!'))

    def seed_divisions(self):
        """Create default divisions."""
        self.stdout.write('Creating divisions...')

        divisions = {}
        for d in DIVISIONS:
            division, _ = Division.objects.get_or_create(
                code=d['code'],
                defaults={'name': d['name'], 'is_active': True}
            )
            divisions[d['code']] = division

        self.stdout.write(f'  ✓ Created {len(DIVISIONS)} divisions')
        return divisions

    def seed_users(self, divisions, password):
        """Create one user for every role."""
        self.stdout.write('Creating users...')

        created = 0
        for u in USERS:
            if User.objects.filter(username=u['username']).exists():
                continue
            if u['role'] == UserRole.SUPER_ADMIN:
                User.objects.create_superuser(
                    username=u['username'],
                    email=f"{u['username']}@ims.local",
                    password=password,
                    full_name=u['name'],
                    division=divisions[u['division']],
                )
            else:
                User.objects.create_user(
                    username=u['username'],
                    email=f"{u['username']}@ims.local",
                    password=password,
                    full_name=u['name'],
                    role=u['role'],
                    division=divisions[u['division']],
                )
            created += 1

        self.stdout.write(f'  ✓ Created {created} users')
