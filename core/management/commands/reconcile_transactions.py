# Reconcile Transactions Management Command
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from core.reconciliation import (
    auto_complete_transactions,
    cleanup_expired_transactions,
    expired_transactions,
    pending_auto_complete,
)


class Command(BaseCommand):
    help = (
        'Cancels initiated transactions past the payment timeout and '
        'auto-completes paid transactions whose pickup was never confirmed.'
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would change without saving anything.',
        )
        parser.add_argument(
            '--timeout-minutes',
            type=int,
            default=None,
            help='Payment window in minutes (defaults to MARKETPLACE setting).',
        )
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Age in days after which pending pickups are auto-confirmed.',
        )
        parser.add_argument(
            '--skip-cleanup',
            action='store_true',
            help='Do not cancel expired initiated transactions.',
        )
        parser.add_argument(
            '--skip-auto-complete',
            action='store_true',
            help='Do not auto-confirm pending pickups.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        timeout = options['timeout_minutes']
        days = options['days']

        if timeout is not None and timeout <= 0:
            raise CommandError('--timeout-minutes must be positive.')
        if days is not None and days <= 0:
            raise CommandError('--days must be positive.')

        now = timezone.now()

        if not options['skip_cleanup']:
            if dry_run:
                stale = expired_transactions(timeout, now)
                for txn_id, listing_id in stale.values_list('id', 'listing_id'):
                    self.stdout.write(
                        f'  [DRY-RUN] Transaction {txn_id} would be cancelled (listing {listing_id})'
                    )
                self.stdout.write(f'{stale.count()} expired transactions found.')
            else:
                result = cleanup_expired_transactions(timeout, now)
                self.stdout.write(f"Cancelled {result['cleaned']} expired transactions.")

        if not options['skip_auto_complete']:
            if dry_run:
                pending = pending_auto_complete(days, now)
                for transaction_id in pending.values_list('transaction_id', flat=True):
                    self.stdout.write(
                        f'  [DRY-RUN] Pickup for transaction {transaction_id} would be confirmed'
                    )
                self.stdout.write(f'{pending.count()} pending pickups found.')
            else:
                result = auto_complete_transactions(days, now)
                self.stdout.write(f"Auto-completed {result['completed']} transactions.")

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Reconciliation completed successfully.'))
