"""
Check Overdue Loans Command
===========================
Lists loans whose requested return date has passed or is coming up.

Usage:
    python manage.py check_overdue_loans
    python manage.py check_overdue_loans --days 7  # Also loans due within 7 days
"""

from dateutil.relativedelta import relativedelta
from django.core.management.base import BaseCommand
from django.db.models import Min
from django.utils import timezone

from loans.models import LoanRequest, LoanStatus


class Command(BaseCommand):
    help = 'Lists loans that are overdue or due soon'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=0,
            help='Also list loans due within X days (default: 0, overdue only)',
        )

    def handle(self, *args, **options):
        days = options.get('days')
        today = timezone.localdate()
        check_until = today + relativedelta(days=days)

        self.stdout.write(f'Checking loans due on or before {check_until}...\n')

        loans = (
            LoanRequest.objects
            .filter(status__in=[LoanStatus.ON_LOAN, LoanStatus.AWAITING_RETURN])
            .annotate(due_date=Min('items__return_date'))
            .filter(due_date__lte=check_until)
            .select_related('requester')
            .order_by('due_date', 'id')
        )

        if not loans.exists():
            self.stdout.write(self.style.SUCCESS('✓ No loans due in this period'))
            return

        self.stdout.write('Loans due:\n')
        for loan in loans:
            days_left = (loan.due_date - today).days

            if days_left < 0:
                status = self.style.ERROR(f'{-days_left} days overdue')
            elif days_left == 0:
                status = self.style.ERROR('DUE TODAY')
            else:
                status = self.style.WARNING(f'{days_left} days left')

            outstanding = len(loan.outstanding_asset_ids)
            self.stdout.write(
                f'  • {loan.id} - {loan.requester.full_name} '
                f'[{status}] - {loan.due_date} '
                f'({outstanding} asset(s) outstanding, {loan.status})'
            )

        self.stdout.write(
            self.style.WARNING(f'\n⚠ Total: {loans.count()} loan(s) due')
        )
