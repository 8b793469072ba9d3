"""
Asset Report Command
====================
Custody report: where every asset is and who holds it.

Usage:
    python manage.py asset_report
    python manage.py asset_report --status IN_USE
    python manage.py asset_report --export report.csv
"""

import csv

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Count

from assets.models import Asset, AssetStatus


class Command(BaseCommand):
    help = 'Generates asset custody report'

    def add_arguments(self, parser):
        parser.add_argument(
            '--status',
            type=str,
            help='Filter by status',
        )
        parser.add_argument(
            '--export',
            type=str,
            help='Export to CSV file',
        )

    def handle(self, *args, **options):
        status_filter = options.get('status')
        export_file = options.get('export')

        assets = Asset.objects.select_related('current_holder_user', 'current_holder_customer')
        if status_filter:
            if status_filter not in AssetStatus.values:
                raise CommandError(f'Unknown status: {status_filter}')
            assets = assets.filter(status=status_filter)

        self.stdout.write('\n=== ASSET CUSTODY REPORT ===\n')
        self.stdout.write(f'Total Assets: {assets.count()}\n')

        self.stdout.write('Status Breakdown:')
        for row in assets.values('status').annotate(total=Count('id')).order_by('status'):
            self.stdout.write(f"  {row['status']}: {row['total']}")

        self.stdout.write('\nCondition Breakdown:')
        for row in assets.values('condition').annotate(total=Count('id')).order_by('condition'):
            self.stdout.write(f"  {row['condition']}: {row['total']}")

        self.stdout.write('\nHeld By:')
        holders = {}
        for asset in assets:
            holder = str(asset.current_holder) if asset.current_holder else 'Storage'
            holders[holder] = holders.get(holder, 0) + 1
        for holder, count in sorted(holders.items()):
            self.stdout.write(f'  {holder}: {count}')

        if export_file:
            with open(export_file, 'w', newline='') as csvfile:
                writer = csv.writer(csvfile)
                writer.writerow([
                    'Asset ID', 'Name', 'Brand', 'Serial No', 'Status',
                    'Condition', 'Holder', 'Location', 'Origin Document', 'Version'
                ])

                for asset in assets:
                    writer.writerow([
                        asset.id,
                        asset.name,
                        asset.brand,
                        asset.serial_number or '',
                        asset.status,
                        asset.condition,
                        str(asset.current_holder) if asset.current_holder else '',
                        asset.location,
                        asset.origin_document or '',
                        asset.version,
                    ])

            self.stdout.write(
                self.style.SUCCESS(f'\n✓ Report exported to {export_file}')
            )
