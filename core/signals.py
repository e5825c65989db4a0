"""
Django signals for automatic rating recalculation.

Keeps ``User.rating_avg`` and ``User.rating_count`` in step with the reviews
a user has received, and notifies the reviewee of new reviews.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Avg, Count
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .models import Review, User
from .notifications import notify_review_received

logger = logging.getLogger(__name__)


def update_user_rating(user_id):
    """
    Recompute a user's rating aggregates from the reviews they received.

    The user row is locked for the duration so concurrent review writes
    serialise. A user with no reviews goes back to 0.00 / 0.

    Returns:
        User: The updated user, or None if the user no longer exists
    """
    with transaction.atomic():
        user = User.objects.select_for_update().filter(pk=user_id).first()
        if user is None:
            return None

        stats = Review.objects.filter(reviewee_id=user_id).aggregate(
            avg=Avg('rating'),
            count=Count('id'),
        )

        if stats['avg'] is None:
            user.rating_avg = Decimal('0.00')
        else:
            user.rating_avg = Decimal(str(stats['avg'])).quantize(Decimal('0.01'))
        user.rating_count = stats['count']
        user.save(update_fields=['rating_avg', 'rating_count'])

    return user


@receiver(post_save, sender=Review)
def update_ratings_on_review_save(sender, instance, created, **kwargs):
    """
    Update the reviewee's rating when a review is created or updated.

    Runs inside the caller's transaction: if the recalculation fails, the
    review write is rolled back with it.
    """
    try:
        user = update_user_rating(instance.reviewee_id)

        action = "created" if created else "updated"
        logger.info(
            f"Updated ratings for review {instance.id} ({action}): "
            f"reviewee={instance.reviewee_id}, rating={instance.rating}, "
            f"average={user.rating_avg if user else 'n/a'}"
        )
    except Exception as e:
        logger.error(
            f"Error updating ratings for review {instance.id}: {e}",
            exc_info=True
        )
        # Re-raise to ensure transaction rollback and maintain data integrity
        raise

    if created:
        notify_review_received(instance)


@receiver(post_delete, sender=Review)
def update_ratings_on_review_delete(sender, instance, **kwargs):
    """Recalculate the reviewee's rating without the deleted review."""
    try:
        update_user_rating(instance.reviewee_id)
        logger.info(
            f"Updated ratings after deleting review {instance.id}: "
            f"reviewee={instance.reviewee_id}"
        )
    except Exception as e:
        logger.error(
            f"Error updating ratings after deleting review {instance.id}: {e}",
            exc_info=True
        )
        raise
