# Recalculate Ratings Management Command
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db.models import Avg, Count

from core.models import Review, User


class Command(BaseCommand):
    help = 'Recalculates user rating averages and counts from received reviews.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        changed = self.recalculate_users(dry_run, batch_size)

        if dry_run:
            self.stdout.write(self.style.SUCCESS(
                f'Dry run completed. {changed} users would change. No changes saved.'
            ))
        else:
            self.stdout.write(self.style.SUCCESS(
                f'Recalculation completed successfully. {changed} users updated.'
            ))

    def recalculate_users(self, dry_run, batch_size):
        self.stdout.write('Recalculating user ratings...')

        stats = {
            row['reviewee_id']: row
            for row in Review.objects.values('reviewee_id').annotate(
                avg=Avg('rating'),
                total=Count('id'),
            )
        }

        updates = []
        changed = 0
        count = 0

        for user in User.objects.all().iterator(chunk_size=batch_size):
            row = stats.get(user.id)
            if row is None:
                new_avg, new_count = Decimal('0.00'), 0
            else:
                new_avg = Decimal(str(row['avg'])).quantize(Decimal('0.01'))
                new_count = row['total']

            if user.rating_avg != new_avg or user.rating_count != new_count:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] User {user.id}: Rating {user.rating_avg} -> {new_avg}, '
                        f'Count {user.rating_count} -> {new_count}'
                    )
                user.rating_avg = new_avg
                user.rating_count = new_count
                updates.append(user)
                changed += 1

            if len(updates) >= batch_size:
                if not dry_run:
                    User.objects.bulk_update(updates, ['rating_avg', 'rating_count'])
                updates = []

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} users...')

        if updates and not dry_run:
            User.objects.bulk_update(updates, ['rating_avg', 'rating_count'])

        self.stdout.write(f'Processed {count} users total.')
        return changed
