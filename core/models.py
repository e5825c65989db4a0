"""
Data models for the Campus Marketplace.
"""

import secrets
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .validators import (
    validate_evidence_urls,
    validate_listing_images,
    validate_phone_number,
    validate_pickup_code,
    validate_profile_image,
)


def max_price():
    """Upper bound for any listing price, offer or transaction amount."""
    return Decimal(str(settings.MARKETPLACE['MAX_PRICE']))


def user_profile_image_upload_path(instance, filename):
    """
    Generate upload path for user profile images.

    Path format: profile_images/{user_id}/{filename}
    If user_id is not yet available (user not saved), uses 'temp' as placeholder.
    """
    user_id = instance.id if instance.id else 'temp'
    return f'profile_images/{user_id}/{filename}'


class User(AbstractUser):
    """
    Marketplace account.

    Additional fields:
    - email: Required, unique, stored lower-case
    - name, phone_number, department, year, bio, avatar_url: Profile details
    - profile_image: Optional uploaded avatar
    - role: 'user' or 'admin'
    - is_verified: E-mail verification status (college e-mails verify automatically)
    - rating_avg / rating_count: Aggregates of reviews received
    """

    ROLE_CHOICES = [
        ('user', 'User'),
        ('admin', 'Administrator'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    name = models.CharField(
        _('name'),
        max_length=100,
        blank=True,
        default='',
        help_text=_('Display name.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
        help_text=_('Optional. Enter phone number with country code.')
    )

    department = models.CharField(
        _('department'),
        max_length=100,
        blank=True,
        default='',
        help_text=_('Academic department.')
    )

    year = models.CharField(
        _('year'),
        max_length=20,
        blank=True,
        default='',
        help_text=_('Year of study.')
    )

    bio = models.TextField(
        _('bio'),
        max_length=500,
        blank=True,
        default='',
        help_text=_('Short profile description (max 500 characters).')
    )

    avatar_url = models.URLField(
        _('avatar URL'),
        max_length=500,
        blank=True,
        default='',
        help_text=_('Externally hosted avatar image.')
    )

    profile_image = models.ImageField(
        _('profile image'),
        upload_to=user_profile_image_upload_path,
        blank=True,
        null=True,
        validators=[validate_profile_image],
        help_text=_('Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).')
    )

    role = models.CharField(
        _('role'),
        max_length=10,
        choices=ROLE_CHOICES,
        default='user',
        help_text=_('Account role.')
    )

    is_verified = models.BooleanField(
        _('verified status'),
        default=False,
        help_text=_('Indicates whether the e-mail address has been verified.')
    )

    rating_avg = models.DecimalField(
        _('average rating'),
        max_digits=3,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[
            MinValueValidator(Decimal('0.00'), message=_('Rating cannot be negative.')),
            MaxValueValidator(Decimal('5.00'), message=_('Rating cannot exceed 5.00.'))
        ],
        help_text=_('Average rating received from trade partners.')
    )

    rating_count = models.PositiveIntegerField(
        _('rating count'),
        default=0,
        help_text=_('Number of reviews received.')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the account was created.')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the account was last updated.')
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email']),
            models.Index(fields=['role']),
            models.Index(fields=['is_verified']),
        ]

    def __str__(self):
        """Return email as string representation."""
        return self.email or self.username

    def is_admin(self):
        """
        Check if user has administrative rights.

        Returns:
            bool: True for role 'admin', staff or superusers
        """
        return self.role == 'admin' or self.is_staff or self.is_superuser

    @property
    def display_name(self):
        return self.name or self.username

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Email is provided
        - Email is lowercase for case-insensitive uniqueness

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

    def save(self, *args, **kwargs):
        """
        Save with validation on update and e-mail normalisation.

        Creation skips full_clean so concurrent duplicate registrations reach
        the database unique index and surface as IntegrityError.
        """
        if self.email:
            self.email = self.email.lower()

        if self.pk is not None and not kwargs.get('update_fields'):
            self.full_clean()

        # New users need an ID before the upload path can be built
        if self.profile_image and not self.pk:
            profile_image_temp = self.profile_image
            self.profile_image = None
            super().save(*args, **kwargs)
            self.profile_image = profile_image_temp
            super().save(update_fields=['profile_image'])
        else:
            super().save(*args, **kwargs)


# ============================================================================
# Catalogue
# ============================================================================

class Category(models.Model):
    """
    Listing category. Categories form a two level tree through ``parent``.
    """

    name = models.CharField(
        _('name'),
        max_length=100,
        help_text=_('Category name')
    )

    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='children',
        help_text=_('Parent category, empty for top level categories')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('category')
        verbose_name_plural = _('categories')
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                fields=['name', 'parent'],
                name='unique_category_name_per_parent'
            ),
        ]

    def __str__(self):
        if self.parent_id:
            return f'{self.parent.name} / {self.name}'
        return self.name

    def clean(self):
        super().clean()
        if self.pk and self.parent_id == self.pk:
            raise ValidationError({'parent': _('A category cannot be its own parent.')})


class Listing(models.Model):
    """
    Product or service offered for sale.

    Fields:
    - seller: Owner of the listing
    - title, description: Free text (max 200 / 2000 characters)
    - price: Asking price in rupees (0 < price <= MAX_PRICE)
    - category: Category from the catalogue tree
    - listing_type: 'product' or 'service'
    - images: List of image URLs (at least one)
    - is_active: Whether the listing is visible and purchasable
    """

    TYPE_CHOICES = [
        ('product', 'Product'),
        ('service', 'Service'),
    ]

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='listings',
        help_text=_('User selling this item')
    )

    title = models.CharField(
        _('title'),
        max_length=200,
        help_text=_('Title of the listing')
    )

    description = models.TextField(
        _('description'),
        max_length=2000,
        help_text=_('Detailed description of the listing')
    )

    price = models.DecimalField(
        _('price'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Price in INR (must be greater than 0)')
    )

    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        related_name='listings',
        help_text=_('Category of the listing')
    )

    listing_type = models.CharField(
        _('type'),
        max_length=10,
        choices=TYPE_CHOICES,
        default='product',
        help_text=_('Whether this is a product or a service')
    )

    images = models.JSONField(
        _('images'),
        default=list,
        validators=[validate_listing_images],
        help_text=_('List of image URLs')
    )

    is_active = models.BooleanField(
        _('is active'),
        default=True,
        help_text=_('Inactive listings are hidden and cannot be purchased')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('listing')
        verbose_name_plural = _('listings')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['seller']),
            models.Index(fields=['is_active']),
            models.Index(fields=['category']),
            models.Index(fields=['listing_type']),
            models.Index(fields=['price']),
        ]

    def __str__(self):
        return self.title

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Title and description are not blank
        - Price is greater than 0 and does not exceed the configured maximum
        """
        super().clean()

        if not self.title or not self.title.strip():
            raise ValidationError({'title': _('Title cannot be empty.')})

        if not self.description or not self.description.strip():
            raise ValidationError({'description': _('Description cannot be empty.')})

        if self.price is not None:
            if self.price <= 0:
                raise ValidationError({'price': _('Price must be greater than 0.')})
            if self.price > max_price():
                raise ValidationError({'price': _('Price too high.')})

    def save(self, *args, **kwargs):
        if not kwargs.get('update_fields'):
            self.full_clean()
        super().save(*args, **kwargs)

    def has_open_transaction(self):
        """True while an initiated or paid transaction references this listing."""
        return self.transactions.filter(status__in=Transaction.ACTIVE_STATUSES).exists()

    def set_active(self, active):
        """Flip visibility without re-running full validation."""
        self.is_active = active
        self.save(update_fields=['is_active', 'updated_at'])


# ============================================================================
# Chat and negotiation
# ============================================================================

class Chat(models.Model):
    """
    Conversation between a buyer and the seller about one listing.
    """

    listing = models.ForeignKey(
        Listing,
        on_delete=models.CASCADE,
        related_name='chats',
    )

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='chats_as_buyer',
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='chats_as_seller',
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Time of the latest activity in this chat')
    )

    class Meta:
        verbose_name = _('chat')
        verbose_name_plural = _('chats')
        ordering = ['-updated_at']
        constraints = [
            models.UniqueConstraint(
                fields=['listing', 'buyer', 'seller'],
                name='unique_chat_per_listing_pair'
            ),
        ]

    def __str__(self):
        return f'Chat #{self.pk} on {self.listing_id}'

    def clean(self):
        super().clean()
        if self.buyer_id and self.seller_id and self.buyer_id == self.seller_id:
            raise ValidationError({'buyer': _('Cannot chat with yourself.')})

    def save(self, *args, **kwargs):
        # Uniqueness is left to the database so get_or_create can recover from races
        if not kwargs.get('update_fields'):
            self.full_clean(validate_unique=False, validate_constraints=False)
        super().save(*args, **kwargs)

    def is_participant(self, user):
        return user.id in (self.buyer_id, self.seller_id)

    def other_party(self, user):
        """Return the participant that is not ``user``."""
        return self.seller if user.id == self.buyer_id else self.buyer


class Message(models.Model):
    """A single chat message."""

    READ_STATUS_CHOICES = [
        ('sent', 'Sent'),
        ('delivered', 'Delivered'),
        ('read', 'Read'),
    ]

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name='messages',
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='messages_sent',
    )

    text = models.TextField(_('text'), max_length=1000)

    read_status = models.CharField(
        _('read status'),
        max_length=10,
        choices=READ_STATUS_CHOICES,
        default='sent',
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['chat', 'created_at']),
        ]

    def __str__(self):
        return f'Message #{self.pk} in chat {self.chat_id}'

    def clean(self):
        super().clean()

        if not self.text or not self.text.strip():
            raise ValidationError({'text': _('Message cannot be empty.')})

        if self.chat_id and self.sender_id and not self.chat.is_participant(self.sender):
            raise ValidationError({'sender': _('Sender is not part of this chat.')})

    def save(self, *args, **kwargs):
        if not kwargs.get('update_fields'):
            self.full_clean()
        super().save(*args, **kwargs)


class Offer(models.Model):
    """
    Price proposal inside a chat.

    Only one offer per chat can be active (proposed or countered) at a time.
    """

    STATUS_CHOICES = [
        ('proposed', 'Proposed'),
        ('countered', 'Countered'),
        ('accepted', 'Accepted'),
        ('declined', 'Declined'),
        ('cancelled', 'Cancelled'),
        ('expired', 'Expired'),
    ]

    ACTIVE_STATUSES = ('proposed', 'countered')

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name='offers',
    )

    proposer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='offers_made',
    )

    price = models.DecimalField(_('price'), max_digits=10, decimal_places=2)

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default='proposed',
    )

    expires_at = models.DateTimeField(_('expires at'))

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('offer')
        verbose_name_plural = _('offers')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['chat', 'status']),
        ]

    def __str__(self):
        return f'Offer #{self.pk}: {self.price} ({self.status})'

    def clean(self):
        super().clean()

        if self.price is not None:
            if self.price <= 0:
                raise ValidationError({'price': _('Price must be greater than 0.')})
            if self.price > max_price():
                raise ValidationError({'price': _('Price too high.')})

        if self.chat_id and self.proposer_id and not self.chat.is_participant(self.proposer):
            raise ValidationError({'proposer': _('Proposer is not part of this chat.')})

    def save(self, *args, **kwargs):
        if not kwargs.get('update_fields'):
            self.full_clean()
        super().save(*args, **kwargs)

    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    def is_expired(self, now=None):
        now = now or timezone.now()
        return self.expires_at is not None and self.expires_at < now


# ============================================================================
# Transactions and pickups
# ============================================================================

class Transaction(models.Model):
    """
    Purchase of a listing, tracked through the payment lifecycle.

    Status lifecycle:
        initiated -> paid -> (pickup generated -> confirmed)
        initiated -> cancelled
        paid -> cancelled | refunded

    Cancelled and refunded are terminal.
    """

    STATUS_CHOICES = [
        ('initiated', 'Initiated'),
        ('paid', 'Paid'),
        ('cancelled', 'Cancelled'),
        ('refunded', 'Refunded'),
    ]

    ACTIVE_STATUSES = ('initiated', 'paid')

    VALID_TRANSITIONS = {
        'initiated': ['paid', 'cancelled'],
        'paid': ['cancelled', 'refunded'],
        'cancelled': [],  # Terminal state
        'refunded': [],  # Terminal state
    }

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='purchases',
        help_text=_('User purchasing the listing')
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sales',
        help_text=_('User selling the listing')
    )

    listing = models.ForeignKey(
        Listing,
        on_delete=models.CASCADE,
        related_name='transactions',
        help_text=_('Listing being purchased')
    )

    amount = models.DecimalField(
        _('amount'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Amount charged in INR')
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default='initiated',
        help_text=_('Current payment status')
    )

    gateway_order_id = models.CharField(
        _('gateway order id'),
        max_length=64,
        blank=True,
        default='',
        db_index=True,
        help_text=_('Order id issued by the payment gateway')
    )

    gateway_payment_id = models.CharField(
        _('gateway payment id'),
        max_length=64,
        blank=True,
        default='',
        help_text=_('Payment id reported by the payment gateway')
    )

    refund_id = models.CharField(
        _('refund id'),
        max_length=64,
        blank=True,
        default='',
    )

    refunded_amount = models.DecimalField(
        _('refunded amount'),
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
    )

    paid_at = models.DateTimeField(_('paid at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('transaction')
        verbose_name_plural = _('transactions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['buyer']),
            models.Index(fields=['seller']),
            models.Index(fields=['listing']),
            models.Index(fields=['status', 'created_at']),
        ]

    def __str__(self):
        return f'Transaction #{self.pk} ({self.status})'

    def clean(self):
        """
        Validate model fields and state transitions.

        Ensures:
        - Buyer and seller are different users
        - Seller matches the listing seller
        - Amount is within bounds
        - Status transitions follow VALID_TRANSITIONS

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.buyer_id and self.seller_id and self.buyer_id == self.seller_id:
            raise ValidationError({
                'buyer': _('Buyer and seller cannot be the same user.')
            })

        if self.seller_id and self.listing_id and self.seller_id != self.listing.seller_id:
            raise ValidationError({
                'seller': _('Transaction seller must match listing seller.')
            })

        if self.amount is not None:
            if self.amount < 1:
                raise ValidationError({'amount': _('Amount must be at least 1.')})
            if self.amount > max_price():
                raise ValidationError({'amount': _('Amount too high.')})

        if self.pk is not None:
            try:
                old_status = Transaction.objects.values_list('status', flat=True).get(pk=self.pk)
            except Transaction.DoesNotExist:
                old_status = None

            if old_status and old_status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid status transition from {old_status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status):
        """
        Check if transition to new status is valid.

        Returns:
            bool: True if transition is valid, False otherwise
        """
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    def _transition(self, new_status):
        if not self.can_transition_to(new_status):
            raise ValidationError(
                _(f'Cannot change transaction status from {self.status} to {new_status}.')
            )
        self.status = new_status

    def mark_paid(self, payment_id=''):
        """Move an initiated transaction to paid."""
        self._transition('paid')
        if payment_id:
            self.gateway_payment_id = payment_id
        self.paid_at = timezone.now()
        self.save()

    def cancel(self):
        self._transition('cancelled')
        self.save()

    def mark_refunded(self, refund_id, amount, final_status='refunded'):
        """
        Record a gateway refund.

        A refund issued while cancelling ends in 'cancelled' instead of
        'refunded'.
        """
        self._transition(final_status)
        self.refund_id = refund_id or ''
        self.refunded_amount = amount
        self.save()

    def is_participant(self, user):
        return user.id in (self.buyer_id, self.seller_id)

    def get_pickup(self):
        """Return the related pickup or None."""
        try:
            return self.pickup
        except Pickup.DoesNotExist:
            return None

    def is_completed(self):
        """A paid transaction whose pickup has been confirmed."""
        pickup = self.get_pickup()
        return self.status == 'paid' and pickup is not None and pickup.status == 'confirmed'


class Pickup(models.Model):
    """
    Hand-off record for a paid transaction.

    The buyer shows the six digit code to the seller, who confirms it.
    """

    STATUS_CHOICES = [
        ('generated', 'Generated'),
        ('confirmed', 'Confirmed'),
    ]

    transaction = models.OneToOneField(
        Transaction,
        on_delete=models.CASCADE,
        related_name='pickup',
        help_text=_('Transaction this pickup belongs to (one pickup per transaction)')
    )

    pickup_code = models.CharField(
        _('pickup code'),
        max_length=6,
        validators=[validate_pickup_code],
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default='generated',
    )

    confirmed_at = models.DateTimeField(_('confirmed at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('pickup')
        verbose_name_plural = _('pickups')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f'Pickup for transaction {self.transaction_id} ({self.status})'

    @staticmethod
    def generate_code():
        """Random code in the range 100000-999999."""
        return str(100000 + secrets.randbelow(900000))

    def clean(self):
        super().clean()
        if self.pk is None and self.transaction_id and self.transaction.status != 'paid':
            raise ValidationError({
                'transaction': _('Pickups can only be created for paid transactions.')
            })

    def save(self, *args, **kwargs):
        if not self.pickup_code:
            self.pickup_code = self.generate_code()
        if not kwargs.get('update_fields'):
            self.full_clean()
        super().save(*args, **kwargs)

    def confirm(self):
        """Mark the hand-off as done."""
        if self.status == 'confirmed':
            raise ValidationError(_('Pickup already confirmed.'))
        self.status = 'confirmed'
        self.confirmed_at = timezone.now()
        self.save(update_fields=['status', 'confirmed_at', 'updated_at'])


# ============================================================================
# Disputes and administration
# ============================================================================

class Dispute(models.Model):
    """
    Escalation raised by a transaction participant and resolved by an admin.
    """

    REASON_CHOICES = [
        ('not_as_described', 'Not as described'),
        ('not_received', 'Not received'),
        ('damaged', 'Damaged'),
        ('fake', 'Fake'),
        ('seller_unresponsive', 'Seller unresponsive'),
        ('buyer_unresponsive', 'Buyer unresponsive'),
        ('payment_issue', 'Payment issue'),
        ('other', 'Other'),
    ]

    STATUS_CHOICES = [
        ('open', 'Open'),
        ('in_review', 'In review'),
        ('resolved', 'Resolved'),
        ('rejected', 'Rejected'),
    ]

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
    ]

    ACTIVE_STATUSES = ('open', 'in_review')

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.CASCADE,
        related_name='disputes',
    )

    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='disputes_filed',
    )

    subject = models.CharField(_('subject'), max_length=200)

    description = models.TextField(_('description'), max_length=2000)

    reason = models.CharField(
        _('reason'),
        max_length=25,
        choices=REASON_CHOICES,
        default='other',
    )

    evidence = models.JSONField(
        _('evidence'),
        default=list,
        blank=True,
        validators=[validate_evidence_urls],
        help_text=_('Up to five image URLs')
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default='open',
    )

    priority = models.CharField(
        _('priority'),
        max_length=10,
        choices=PRIORITY_CHOICES,
        default='medium',
    )

    resolution = models.TextField(_('resolution'), blank=True, default='')

    refund_amount = models.DecimalField(
        _('refund amount'),
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
    )

    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='disputes_resolved',
    )

    resolved_at = models.DateTimeField(_('resolved at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('dispute')
        verbose_name_plural = _('disputes')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['transaction']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['transaction'],
                condition=Q(status__in=['open', 'in_review']),
                name='unique_active_dispute_per_transaction'
            ),
        ]

    def __str__(self):
        return f'Dispute #{self.pk}: {self.subject}'

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Subject has 5-200 characters, description 10-2000
        - Reporter is the buyer or seller of the transaction
        """
        super().clean()

        subject = (self.subject or '').strip()
        if len(subject) < 5:
            raise ValidationError({'subject': _('Subject must be at least 5 characters.')})

        description = (self.description or '').strip()
        if len(description) < 10:
            raise ValidationError({'description': _('Description must be at least 10 characters.')})

        if self.transaction_id and self.reporter_id and not self.transaction.is_participant(self.reporter):
            raise ValidationError({
                'reporter': _('Only transaction participants can open a dispute.')
            })

    def save(self, *args, **kwargs):
        if not kwargs.get('update_fields'):
            self.full_clean()
        super().save(*args, **kwargs)

    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    def other_party(self):
        """The transaction participant who did not file the dispute."""
        txn = self.transaction
        return txn.seller if self.reporter_id == txn.buyer_id else txn.buyer


class AdminAction(models.Model):
    """Audit log entry for administrative actions."""

    admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='admin_actions',
    )

    dispute = models.ForeignKey(
        Dispute,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='admin_actions',
    )

    target_type = models.CharField(_('target type'), max_length=20, blank=True, default='')

    target_id = models.PositiveBigIntegerField(_('target id'), null=True, blank=True)

    action = models.CharField(_('action'), max_length=100)

    notes = models.TextField(_('notes'), blank=True, default='')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('admin action')
        verbose_name_plural = _('admin actions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['admin', 'created_at']),
        ]

    def __str__(self):
        return f'{self.action} by {self.admin_id}'

    @classmethod
    def log(cls, admin, action, dispute=None, target=None, notes=''):
        """
        Record an admin action.

        ``target`` may be any model instance; its lower-cased model name and
        primary key are stored.
        """
        target_type = ''
        target_id = None
        if target is not None:
            target_type = target._meta.model_name
            target_id = target.pk
        return cls.objects.create(
            admin=admin,
            dispute=dispute,
            target_type=target_type,
            target_id=target_id,
            action=action,
            notes=notes or '',
        )


# ============================================================================
# Review Model
# ============================================================================

class Review(models.Model):
    """
    Review left by one party of a completed transaction for the other.

    Fields:
    - transaction: The completed transaction being reviewed
    - reviewer: Person giving the review
    - reviewee: The other participant of the transaction
    - rating: Integer rating from 1 to 5
    - comment: Optional written feedback (max 1000 characters)
    """

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.CASCADE,
        related_name='reviews',
    )

    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='reviews_given',
        help_text=_('User writing the review')
    )

    reviewee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='reviews_received',
        help_text=_('User receiving the review')
    )

    rating = models.PositiveSmallIntegerField(
        _('rating'),
        validators=[
            MinValueValidator(1, message=_('Rating must be at least 1.')),
            MaxValueValidator(5, message=_('Rating must be at most 5.'))
        ],
        help_text=_('Rating from 1 to 5 stars')
    )

    comment = models.TextField(
        _('comment'),
        max_length=1000,
        blank=True,
        default='',
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('review')
        verbose_name_plural = _('reviews')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['reviewer']),
            models.Index(fields=['reviewee']),
            models.Index(fields=['rating']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['transaction', 'reviewer'],
                name='unique_review_per_transaction_reviewer'
            ),
        ]

    def __str__(self):
        return f"Review by {self.reviewer.email} for {self.reviewee.email} - {self.rating}★"

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Reviewer and reviewee are different users
        - Transaction is completed (paid with a confirmed pickup)
        - Reviewer took part in the transaction
        - Reviewee is the other party

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.reviewer_id and self.reviewee_id and self.reviewer_id == self.reviewee_id:
            raise ValidationError({
                'reviewee': _('Reviewer and reviewee cannot be the same user.')
            })

        if self.transaction_id:
            txn = self.transaction

            if not txn.is_completed():
                raise ValidationError({
                    'transaction': _('Only completed transactions can be reviewed.')
                })

            if self.reviewer_id and self.reviewer_id not in (txn.buyer_id, txn.seller_id):
                raise ValidationError({
                    'reviewer': _('Reviewer must be the buyer or seller of the transaction.')
                })

            if self.reviewer_id and self.reviewee_id:
                expected = txn.seller_id if self.reviewer_id == txn.buyer_id else txn.buyer_id
                if self.reviewee_id != expected:
                    raise ValidationError({
                        'reviewee': _('Reviewee must be the other party of the transaction.')
                    })

    def save(self, *args, **kwargs):
        """
        Validate business rules on creation.

        full_clean() is not used so the database unique constraint raises
        IntegrityError for concurrent duplicates.
        """
        if not self.pk:
            self.clean()
        super().save(*args, **kwargs)


# ============================================================================
# Notifications and reports
# ============================================================================

class Notification(models.Model):
    """In-app notification for a single user."""

    TYPE_CHOICES = [
        ('transaction', 'Transaction'),
        ('dispute', 'Dispute'),
        ('review', 'Review'),
        ('chat', 'Chat'),
        ('admin', 'Admin'),
        ('system', 'System'),
    ]

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('normal', 'Normal'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    # Used for "most important first" ordering
    PRIORITY_RANK = {
        'low': 0,
        'normal': 1,
        'high': 2,
        'urgent': 3,
    }

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
    )

    notification_type = models.CharField(
        _('type'),
        max_length=15,
        choices=TYPE_CHOICES,
        default='system',
    )

    title = models.CharField(_('title'), max_length=200)

    message = models.TextField(_('message'))

    data = models.JSONField(_('data'), default=dict, blank=True)

    action_url = models.CharField(_('action URL'), max_length=500, blank=True, default='')

    is_read = models.BooleanField(_('is read'), default=False)

    priority = models.CharField(
        _('priority'),
        max_length=10,
        choices=PRIORITY_CHOICES,
        default='normal',
    )

    dedup_key = models.CharField(
        _('dedup key'),
        max_length=255,
        blank=True,
        default='',
        help_text=_('Identical unread notifications with this key are not repeated')
    )

    expires_at = models.DateTimeField(_('expires at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'is_read']),
            models.Index(fields=['user', 'created_at']),
            models.Index(fields=['user', 'dedup_key']),
        ]

    def __str__(self):
        return f'{self.notification_type}: {self.title}'

    def is_expired(self, now=None):
        now = now or timezone.now()
        return self.expires_at is not None and self.expires_at < now


class Report(models.Model):
    """User report about a profile, listing, message or review."""

    TARGET_TYPE_CHOICES = [
        ('user', 'User'),
        ('listing', 'Listing'),
        ('message', 'Message'),
        ('review', 'Review'),
    ]

    REASON_CHOICES = [
        ('spam', 'Spam'),
        ('harassment', 'Harassment'),
        ('inappropriate_content', 'Inappropriate content'),
        ('fraud', 'Fraud'),
        ('fake_listing', 'Fake listing'),
        ('scam', 'Scam'),
        ('violence', 'Violence'),
        ('hate_speech', 'Hate speech'),
        ('copyright', 'Copyright'),
        ('other', 'Other'),
    ]

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('critical', 'Critical'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('reviewing', 'Reviewing'),
        ('resolved', 'Resolved'),
        ('dismissed', 'Dismissed'),
    ]

    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='reports_filed',
    )

    target_type = models.CharField(_('target type'), max_length=10, choices=TARGET_TYPE_CHOICES)

    target_id = models.PositiveBigIntegerField(_('target id'))

    target_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reports_received',
    )

    reason = models.CharField(_('reason'), max_length=25, choices=REASON_CHOICES)

    description = models.TextField(_('description'), max_length=2000, blank=True, default='')

    priority = models.CharField(
        _('priority'),
        max_length=10,
        choices=PRIORITY_CHOICES,
        default='medium',
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default='pending',
    )

    admin_notes = models.TextField(_('admin notes'), blank=True, default='')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('report')
        verbose_name_plural = _('reports')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['target_type', 'target_id']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['reporter', 'target_type', 'target_id'],
                name='unique_report_per_target'
            ),
        ]

    def __str__(self):
        return f'Report #{self.pk}: {self.reason} on {self.target_type} {self.target_id}'
