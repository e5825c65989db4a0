"""
Serializers for the Campus Marketplace API.
"""

import re
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers

from .models import (
    AdminAction,
    Category,
    Chat,
    Dispute,
    Listing,
    Message,
    Notification,
    Offer,
    Pickup,
    Report,
    Review,
    Transaction,
)
from .validators import (
    PICKUP_CODE_RE,
    is_college_email,
    sanitize_text,
    validate_image_urls,
    validate_phone_number,
)

User = get_user_model()

USERNAME_RE = re.compile(r'^[A-Za-z0-9_.-]+$')


def _max_price():
    return Decimal(str(settings.MARKETPLACE['MAX_PRICE']))


def _run_django_validator(validator, value, *args, **kwargs):
    """Re-raise a Django ValidationError as a DRF one."""
    try:
        validator(value, *args, **kwargs)
    except DjangoValidationError as e:
        raise serializers.ValidationError(list(e.messages))


def _clean_required_text(value, label, min_length=1):
    stripped = (value or '').strip()
    if len(stripped) < min_length:
        if min_length == 1:
            raise serializers.ValidationError(f'{label} cannot be empty.')
        raise serializers.ValidationError(f'{label} must be at least {min_length} characters.')
    return stripped


class EscapedTextMixin:
    """
    HTML-escape free-text fields when rendering.

    Text is stored as the user typed it (stripped), so length limits apply
    to the input rather than to its escaped form.
    """

    escaped_fields = ()

    def to_representation(self, instance):
        data = super().to_representation(instance)
        for field in self.escaped_fields:
            if data.get(field) is not None:
                data[field] = sanitize_text(data[field])
        return data


# ============================================================================
# Authentication and profiles
# ============================================================================

class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration with comprehensive validation.

    Fields:
    - email: Required, unique (case-insensitive)
    - username: Optional, derived from the e-mail when omitted
    - password / confirm_password: Required, must match and pass Django's validators
    - name, phone_number, department, year: Optional profile details

    Accounts registered with a college e-mail address are verified
    immediately.
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    username = serializers.CharField(required=False, max_length=30)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'username', 'password', 'confirm_password', 'name',
            'phone_number', 'department', 'year', 'is_verified', 'created_at',
        ]
        read_only_fields = ['id', 'is_verified', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
        }

    def validate_email(self, value):
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(
                "A user with that email already exists."
            )

        return value

    def validate_username(self, value):
        value = value.strip()

        if len(value) < 3:
            raise serializers.ValidationError("Username must be at least 3 characters.")

        if not USERNAME_RE.match(value):
            raise serializers.ValidationError(
                "Username may only contain letters, digits, dots, dashes and underscores."
            )

        if User.objects.filter(username__iexact=value).exists():
            raise serializers.ValidationError("That username is already taken.")

        return value

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def validate_phone_number(self, value):
        _run_django_validator(validate_phone_number, value)
        return value

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })

        return attrs

    def _unique_username(self, email):
        base = re.sub(r'[^A-Za-z0-9_.-]', '', email.split('@')[0])[:24] or 'user'
        candidate = base
        suffix = 1
        while User.objects.filter(username__iexact=candidate).exists():
            suffix += 1
            candidate = f'{base}{suffix}'
        return candidate

    def create(self, validated_data):
        """
        Create the account with a hashed password.

        Privileged flags are never taken from input; ``is_verified`` is set
        only for recognised college e-mail domains.
        """
        validated_data.pop('confirm_password', None)
        password = validated_data.pop('password')

        email = validated_data['email']
        if not validated_data.get('username'):
            validated_data['username'] = self._unique_username(email)

        validated_data['is_verified'] = is_college_email(email)
        validated_data['role'] = 'user'

        with transaction.atomic():
            user = User(**validated_data)
            user.set_password(password)
            user.save()

        return user


class LoginSerializer(serializers.Serializer):
    """
    Serializer for user login with email and password.

    Minimal validation to prevent user enumeration attacks.
    Actual authentication happens in the view.
    """
    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )


class TokenRefreshSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=True)


class UserSummarySerializer(EscapedTextMixin, serializers.ModelSerializer):
    """Public subset of a user, nested in other resources."""

    escaped_fields = ('name',)

    class Meta:
        model = User
        fields = ['id', 'username', 'name', 'avatar_url', 'is_verified', 'rating_avg', 'rating_count']
        read_only_fields = fields


class UserProfileSerializer(EscapedTextMixin, serializers.ModelSerializer):
    """
    The authenticated user's own profile.

    Excludes password and permission flags.
    """

    escaped_fields = ('name', 'department', 'year', 'bio')

    profile_image_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'email', 'username', 'name', 'phone_number', 'department',
            'year', 'bio', 'avatar_url', 'profile_image_url', 'role',
            'is_verified', 'rating_avg', 'rating_count', 'created_at',
        ]
        read_only_fields = fields

    def get_profile_image_url(self, obj):
        if obj.profile_image:
            request = self.context.get('request')
            if request is not None:
                return request.build_absolute_uri(obj.profile_image.url)
            return obj.profile_image.url
        return None


class PublicProfileSerializer(EscapedTextMixin, serializers.ModelSerializer):
    """Profile as seen by other users."""

    escaped_fields = ('name', 'department', 'year', 'bio')
    active_listings_count = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'username', 'name', 'department', 'year', 'bio', 'avatar_url',
            'is_verified', 'rating_avg', 'rating_count', 'active_listings_count',
            'created_at',
        ]
        read_only_fields = fields

    def get_active_listings_count(self, obj):
        return obj.listings.filter(is_active=True).count()


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for profile updates (PUT/PATCH).

    Updatable fields: name, username, phone_number, department, year, bio,
    avatar_url, profile_image. E-mail, role, verification and permission
    flags cannot be changed here.
    """

    class Meta:
        model = User
        fields = [
            'name', 'username', 'phone_number', 'department', 'year', 'bio',
            'avatar_url', 'profile_image',
        ]
        extra_kwargs = {field: {'required': False} for field in fields}

    def validate_username(self, value):
        value = value.strip()
        if not 3 <= len(value) <= 30:
            raise serializers.ValidationError("Username must be 3-30 characters.")
        if not USERNAME_RE.match(value):
            raise serializers.ValidationError(
                "Username may only contain letters, digits, dots, dashes and underscores."
            )
        taken = User.objects.filter(username__iexact=value)
        if self.instance is not None:
            taken = taken.exclude(pk=self.instance.pk)
        if taken.exists():
            raise serializers.ValidationError("That username is already taken.")
        return value

    def validate_phone_number(self, value):
        _run_django_validator(validate_phone_number, value)
        return value

    def validate_bio(self, value):
        if value and len(value) > 500:
            raise serializers.ValidationError("Bio too long.")
        return value.strip()

    def update(self, instance, validated_data):
        """
        Update the profile.

        A replaced profile image is removed from storage.
        """
        new_image = validated_data.get('profile_image')
        if new_image and instance.profile_image:
            instance.profile_image.delete(save=False)

        fields_to_update = []
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
            fields_to_update.append(attr)

        if fields_to_update:
            fields_to_update.append('updated_at')
            instance.save(update_fields=fields_to_update)

        return instance


# ============================================================================
# Categories and listings
# ============================================================================

class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name', 'parent']
        read_only_fields = fields


class ListingBriefSerializer(EscapedTextMixin, serializers.ModelSerializer):
    """Listing fields nested in chats and transactions."""

    escaped_fields = ('title',)

    class Meta:
        model = Listing
        fields = ['id', 'title', 'price', 'images', 'listing_type', 'is_active']
        read_only_fields = fields


class ListingSerializer(EscapedTextMixin, serializers.ModelSerializer):
    escaped_fields = ('title', 'description')

    seller = UserSummarySerializer(read_only=True)
    category = CategorySerializer(read_only=True)
    type = serializers.CharField(source='listing_type', read_only=True)

    class Meta:
        model = Listing
        fields = [
            'id', 'title', 'description', 'price', 'type', 'images', 'is_active',
            'category', 'seller', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ListingWriteSerializer(serializers.ModelSerializer):
    """
    Create or update a listing.

    Fields:
    - title: 1-200 characters
    - description: 1-2000 characters
    - price: Greater than 0, at most MARKETPLACE['MAX_PRICE']
    - category: Category id
    - type: 'product' or 'service'
    - images: At least one http(s) image URL
    """

    type = serializers.ChoiceField(
        source='listing_type',
        choices=Listing.TYPE_CHOICES,
        required=False,
    )
    images = serializers.ListField(child=serializers.CharField(), allow_empty=True)
    category = serializers.PrimaryKeyRelatedField(queryset=Category.objects.all())

    class Meta:
        model = Listing
        fields = ['title', 'description', 'price', 'category', 'type', 'images']

    def validate_title(self, value):
        if len(value) > 200:
            raise serializers.ValidationError("Title too long.")
        return _clean_required_text(value, 'Title')

    def validate_description(self, value):
        if len(value) > 2000:
            raise serializers.ValidationError("Description too long.")
        return _clean_required_text(value, 'Description')

    def validate_price(self, value):
        if value <= 0:
            raise serializers.ValidationError("Price must be positive.")
        if value > _max_price():
            raise serializers.ValidationError("Price too high.")
        return value

    def validate_images(self, value):
        _run_django_validator(validate_image_urls, value, min_count=1)
        return value

    def create(self, validated_data):
        validated_data['seller'] = self.context['request'].user
        return Listing.objects.create(**validated_data)

    def update(self, instance, validated_data):
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()
        return instance


# ============================================================================
# Chats, messages and offers
# ============================================================================

class ChatStartSerializer(serializers.Serializer):
    listing_id = serializers.IntegerField(min_value=1)


class MessageSerializer(EscapedTextMixin, serializers.ModelSerializer):
    escaped_fields = ('text',)

    sender = UserSummarySerializer(read_only=True)

    class Meta:
        model = Message
        fields = ['id', 'chat', 'sender', 'text', 'read_status', 'created_at']
        read_only_fields = fields


class ChatSerializer(serializers.ModelSerializer):
    listing = ListingBriefSerializer(read_only=True)
    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)
    last_message = serializers.SerializerMethodField()

    class Meta:
        model = Chat
        fields = ['id', 'listing', 'buyer', 'seller', 'last_message', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_last_message(self, obj):
        message = obj.messages.order_by('-created_at', '-id').first()
        if message is None:
            return None
        return {
            'id': message.id,
            'sender_id': message.sender_id,
            'text': sanitize_text(message.text),
            'created_at': message.created_at,
        }


class MessageCreateSerializer(serializers.Serializer):
    chat_id = serializers.IntegerField(min_value=1)
    text = serializers.CharField(max_length=1000, trim_whitespace=False, allow_blank=True)

    def validate_text(self, value):
        return _clean_required_text(value, 'Message')


class OfferSerializer(serializers.ModelSerializer):
    proposer = UserSummarySerializer(read_only=True)

    class Meta:
        model = Offer
        fields = ['id', 'chat', 'proposer', 'price', 'status', 'expires_at', 'created_at', 'updated_at']
        read_only_fields = fields


class OfferCreateSerializer(serializers.Serializer):
    chat_id = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=10, decimal_places=2)

    def validate_price(self, value):
        if value <= 0:
            raise serializers.ValidationError("Price must be positive.")
        if value > _max_price():
            raise serializers.ValidationError("Price too high.")
        return value


class OfferUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['accepted', 'declined', 'cancelled'])


# ============================================================================
# Transactions, payments and pickups
# ============================================================================

class PickupSerializer(serializers.ModelSerializer):
    """
    Pickup details.

    The code is only revealed to the buyer (who hands it over) and admins.
    """

    pickup_code = serializers.SerializerMethodField()

    class Meta:
        model = Pickup
        fields = ['id', 'transaction', 'pickup_code', 'status', 'confirmed_at', 'created_at']
        read_only_fields = fields

    def get_pickup_code(self, obj):
        request = self.context.get('request')
        if request is None:
            return None
        user = request.user
        if user.is_authenticated and (user.id == obj.transaction.buyer_id or user.is_admin()):
            return obj.pickup_code
        return None


class TransactionSerializer(serializers.ModelSerializer):
    listing = ListingBriefSerializer(read_only=True)
    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)
    pickup = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            'id', 'listing', 'buyer', 'seller', 'amount', 'status',
            'gateway_order_id', 'gateway_payment_id', 'refunded_amount',
            'paid_at', 'pickup', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_pickup(self, obj):
        pickup = obj.get_pickup()
        if pickup is None:
            return None
        return PickupSerializer(pickup, context=self.context).data


class TransactionCreateSerializer(serializers.Serializer):
    listing_id = serializers.IntegerField(min_value=1)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)

    def validate_amount(self, value):
        if value < 1:
            raise serializers.ValidationError("Amount must be at least 1.")
        if value > _max_price():
            raise serializers.ValidationError("Amount too high.")
        return value


class RefundRequestSerializer(serializers.Serializer):
    """
    Admin refund request.

    ``percentage`` (0-1] takes precedence over ``amount``; with neither the
    full amount is refunded.
    """

    amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    percentage = serializers.DecimalField(max_digits=5, decimal_places=4, required=False)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Refund amount must be positive.")
        return value

    def validate_percentage(self, value):
        if value <= 0 or value > 1:
            raise serializers.ValidationError("Percentage must be between 0 and 1.")
        return value


class PaymentVerifySerializer(serializers.Serializer):
    transaction_id = serializers.IntegerField(min_value=1)
    razorpay_order_id = serializers.CharField(max_length=64)
    razorpay_payment_id = serializers.CharField(max_length=64)
    razorpay_signature = serializers.CharField(max_length=256)


class PickupGenerateSerializer(serializers.Serializer):
    transaction_id = serializers.IntegerField(min_value=1)


class PickupConfirmSerializer(serializers.Serializer):
    transaction_id = serializers.IntegerField(min_value=1)
    pickup_code = serializers.CharField()

    def validate_pickup_code(self, value):
        value = value.strip()
        if not PICKUP_CODE_RE.match(value):
            raise serializers.ValidationError("Pickup code must be 6 digits.")
        return value


# ============================================================================
# Disputes
# ============================================================================

class DisputeCreateSerializer(serializers.Serializer):
    """
    Fields:
    - transaction_id: Disputed transaction
    - subject: 5-200 characters
    - description: 10-2000 characters
    - reason: One of Dispute.REASON_CHOICES
    - evidence: Up to five image URLs
    """

    transaction_id = serializers.IntegerField(min_value=1)
    subject = serializers.CharField(max_length=200)
    description = serializers.CharField(max_length=2000)
    reason = serializers.ChoiceField(choices=Dispute.REASON_CHOICES)
    evidence = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        default=list,
    )

    def validate_subject(self, value):
        return _clean_required_text(value, 'Subject', min_length=5)

    def validate_description(self, value):
        return _clean_required_text(value, 'Description', min_length=10)

    def validate_evidence(self, value):
        _run_django_validator(validate_image_urls, value, max_count=5, field_label='evidence')
        return value


class DisputeSerializer(EscapedTextMixin, serializers.ModelSerializer):
    escaped_fields = ('subject', 'description', 'resolution')

    reporter = UserSummarySerializer(read_only=True)
    resolved_by = UserSummarySerializer(read_only=True)
    transaction = serializers.SerializerMethodField()

    class Meta:
        model = Dispute
        fields = [
            'id', 'transaction', 'reporter', 'subject', 'description', 'reason',
            'evidence', 'status', 'priority', 'resolution', 'refund_amount',
            'resolved_by', 'resolved_at', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_transaction(self, obj):
        txn = obj.transaction
        return {
            'id': txn.id,
            'status': txn.status,
            'amount': str(txn.amount),
            'listing_id': txn.listing_id,
            'listing_title': sanitize_text(txn.listing.title),
            'buyer_id': txn.buyer_id,
            'seller_id': txn.seller_id,
        }


class DisputeStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['in_review', 'resolved', 'rejected'])
    resolution = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class DisputeResolveSerializer(serializers.Serializer):
    """
    Resolve or reject a dispute, optionally refunding the buyer.

    Fields:
    - resolution: 10-1000 characters
    - action: 'resolved' or 'rejected'
    - refund_percentage: Fraction in (0, 1]
    - refund_amount: Rupee amount, capped at the transaction amount
    """

    resolution = serializers.CharField(max_length=1000)
    action = serializers.ChoiceField(choices=['resolved', 'rejected'])
    refund_percentage = serializers.DecimalField(
        max_digits=5, decimal_places=4, required=False
    )
    refund_amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False
    )

    def validate_resolution(self, value):
        return _clean_required_text(value, 'Resolution', min_length=10)

    def validate_refund_percentage(self, value):
        if value <= 0 or value > 1:
            raise serializers.ValidationError("Refund percentage must be between 0 and 1.")
        return value

    def validate_refund_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Refund amount must be positive.")
        return value

    def validate(self, attrs):
        has_refund = 'refund_percentage' in attrs or 'refund_amount' in attrs

        if 'refund_percentage' in attrs and 'refund_amount' in attrs:
            raise serializers.ValidationError(
                "Provide either refund_percentage or refund_amount, not both."
            )

        if has_refund and attrs['action'] != 'resolved':
            raise serializers.ValidationError(
                "Refunds can only be issued when resolving a dispute."
            )

        return attrs


# ============================================================================
# Reviews
# ============================================================================

class ReviewCreateSerializer(serializers.Serializer):
    transaction_id = serializers.IntegerField(min_value=1)
    reviewee_id = serializers.IntegerField(min_value=1)
    rating = serializers.IntegerField()
    comment = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')

    def validate_rating(self, value):
        if value < 1 or value > 5:
            raise serializers.ValidationError("Rating must be between 1 and 5.")
        return value


class ReviewSerializer(EscapedTextMixin, serializers.ModelSerializer):
    escaped_fields = ('comment', 'listing_title')

    reviewer = UserSummarySerializer(read_only=True)
    reviewee = UserSummarySerializer(read_only=True)
    listing_title = serializers.CharField(source='transaction.listing.title', read_only=True)

    class Meta:
        model = Review
        fields = [
            'id', 'transaction', 'listing_title', 'reviewer', 'reviewee',
            'rating', 'comment', 'created_at',
        ]
        read_only_fields = fields


# ============================================================================
# Notifications
# ============================================================================

class NotificationSerializer(EscapedTextMixin, serializers.ModelSerializer):
    escaped_fields = ('title', 'message')

    type = serializers.CharField(source='notification_type', read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id', 'type', 'title', 'message', 'data', 'action_url', 'is_read',
            'priority', 'expires_at', 'created_at',
        ]
        read_only_fields = fields


class NotificationUpdateSerializer(serializers.Serializer):
    notification_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        allow_empty=False,
    )
    mark_all = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if not attrs.get('mark_all') and not attrs.get('notification_ids'):
            raise serializers.ValidationError(
                "Provide notification_ids or set mark_all to true."
            )
        return attrs


# ============================================================================
# Reports and moderation
# ============================================================================

REPORT_TARGET_MODELS = {
    'user': (User, lambda obj: obj),
    'listing': (Listing, lambda obj: obj.seller),
    'message': (Message, lambda obj: obj.sender),
    'review': (Review, lambda obj: obj.reviewer),
}


class ReportCreateSerializer(serializers.ModelSerializer):
    """
    File a report about a user, listing, message or review.

    The reported user is derived from the target.
    """

    class Meta:
        model = Report
        fields = ['id', 'target_type', 'target_id', 'reason', 'description', 'priority', 'status', 'created_at']
        read_only_fields = ['id', 'status', 'created_at']
        # Duplicate reports are answered with 409 by the view
        validators = []

    def validate(self, attrs):
        model, owner_of = REPORT_TARGET_MODELS[attrs['target_type']]
        try:
            target = model.objects.get(pk=attrs['target_id'])
        except model.DoesNotExist:
            raise serializers.ValidationError({'target_id': 'Reported item does not exist.'})

        target_user = owner_of(target)
        request = self.context.get('request')
        if request is not None and target_user is not None and target_user.pk == request.user.pk:
            raise serializers.ValidationError("You cannot report yourself or your own content.")

        attrs['target_user'] = target_user
        return attrs


class ReportSerializer(EscapedTextMixin, serializers.ModelSerializer):
    escaped_fields = ('description', 'admin_notes')

    reporter = UserSummarySerializer(read_only=True)
    target_user = UserSummarySerializer(read_only=True)

    class Meta:
        model = Report
        fields = [
            'id', 'reporter', 'target_type', 'target_id', 'target_user', 'reason',
            'description', 'priority', 'status', 'admin_notes', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ReportUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Report.STATUS_CHOICES)
    admin_notes = serializers.CharField(max_length=2000, required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=Report.PRIORITY_CHOICES, required=False)


class AdminListingUpdateSerializer(serializers.Serializer):
    is_active = serializers.BooleanField()
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class AdminUserSerializer(UserProfileSerializer):
    """User row in the admin user directory, with account state."""

    class Meta(UserProfileSerializer.Meta):
        fields = UserProfileSerializer.Meta.fields + ['is_active', 'last_login', 'updated_at']
        read_only_fields = fields


class AdminActionSerializer(EscapedTextMixin, serializers.ModelSerializer):
    escaped_fields = ('notes',)

    admin = UserSummarySerializer(read_only=True)

    class Meta:
        model = AdminAction
        fields = ['id', 'admin', 'action', 'dispute', 'target_type', 'target_id', 'notes', 'created_at']
        read_only_fields = fields
