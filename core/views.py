"""
API views for the Campus Marketplace.
"""

import hmac
import json
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError
from django.db import transaction as db_transaction
from django.db.models import Case, IntegerField, Q, Value, When
from django.utils import timezone
from rest_framework import generics, status
from rest_framework.exceptions import ValidationError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from . import payments
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
from .notifications import (
    create_notification,
    notify_account_verified,
    notify_admins,
    notify_dispute_created,
    notify_dispute_resolved,
    notify_new_message,
    notify_payment_received,
    notify_pickup_code_generated,
    notify_pickup_confirmed,
    notify_transaction_created,
)
from .pagination import EnvelopeLimitOffsetPagination, EnvelopePagination
from .payments import PaymentGatewayError
from .permissions import IsAdminRole, IsVerifiedUser
from .reconciliation import auto_complete_transactions, cleanup_expired_transactions
from .refunds import (
    RefundError,
    RefundNotAllowed,
    process_partial_refund,
    process_refund,
    refund_cancelled_transaction,
    refund_for_dispute,
)
from .responses import (
    conflict_response,
    error_response,
    forbidden_response,
    not_found_response,
    success_response,
    unauthorized_response,
    validation_error_response,
)
from .serializers import (
    AdminActionSerializer,
    AdminListingUpdateSerializer,
    AdminUserSerializer,
    CategorySerializer,
    ChatSerializer,
    ChatStartSerializer,
    DisputeCreateSerializer,
    DisputeResolveSerializer,
    DisputeSerializer,
    DisputeStatusUpdateSerializer,
    ListingSerializer,
    ListingWriteSerializer,
    LoginSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    NotificationSerializer,
    NotificationUpdateSerializer,
    OfferCreateSerializer,
    OfferSerializer,
    OfferUpdateSerializer,
    PaymentVerifySerializer,
    PickupConfirmSerializer,
    PickupGenerateSerializer,
    PickupSerializer,
    PublicProfileSerializer,
    RefundRequestSerializer,
    ReportCreateSerializer,
    ReportSerializer,
    ReportUpdateSerializer,
    ReviewCreateSerializer,
    ReviewSerializer,
    TokenRefreshSerializer,
    TransactionCreateSerializer,
    TransactionSerializer,
    UserProfileSerializer,
    UserProfileUpdateSerializer,
    UserRegistrationSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


class ClientIPMixin:

    def get_client_ip(self, request):
        """
        Get client IP address from request.
        Handles proxy headers for accurate IP detection.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0].strip()
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip


class PostThrottleMixin:
    """Apply the view's scoped throttle to POST requests only."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        if self.request.method == 'POST':
            return super().get_throttles()
        return []


class VerifiedPostMixin:
    """Reads need a login; creating something needs a verified account."""

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated(), IsVerifiedUser()]
        return [IsAuthenticated()]


def _query_int(request, name, required=False):
    value = request.query_params.get(name)
    if value in (None, ''):
        if required:
            raise ValidationError({name: f'{name} is required.'})
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({name: f'{name} must be an integer.'})


def _query_decimal(request, name):
    value = request.query_params.get(name)
    if value in (None, ''):
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        raise ValidationError({name: f'{name} must be a number.'})


def _query_bool(request, name):
    value = request.query_params.get(name)
    if value in (None, ''):
        return None
    lowered = value.lower()
    if lowered in ('true', '1'):
        return True
    if lowered in ('false', '0'):
        return False
    raise ValidationError({name: f'{name} must be true or false.'})


def _reactivate_listing(listing_id):
    """Put a listing back on sale unless another order still holds it."""
    busy = Transaction.objects.filter(
        listing_id=listing_id,
        status__in=Transaction.ACTIVE_STATUSES,
    ).exists()
    if not busy:
        Listing.objects.filter(pk=listing_id, is_active=False).update(
            is_active=True, updated_at=timezone.now()
        )


def _deactivate_listing(listing_id):
    Listing.objects.filter(pk=listing_id).update(is_active=False, updated_at=timezone.now())


# ============================================================================
# Authentication and profiles
# ============================================================================

class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for user registration.

    POST /api/auth/register/
    Request body: {
        "email": "student@iitb.ac.in",
        "username": "student",
        "password": "...",
        "confirm_password": "...",
        "name": "Student Name"
    }

    Success response (201): {"success": true, "data": {<profile>}}

    Accounts registered with a college e-mail address are verified
    immediately and receive an "Account Verified" notification.
    Handles concurrent registration attempts with database-level uniqueness.
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]
    authentication_classes = []

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            user = serializer.save()
        except IntegrityError:
            # Concurrent registration with the same e-mail or username
            return validation_error_response(
                'A user with that email already exists.',
                details={'email': ['A user with that email already exists.']}
            )

        if user.is_verified:
            notify_account_verified(user)

        logger.info(f"User registered. Email: {user.email}, Verified: {user.is_verified}")

        return success_response(
            UserProfileSerializer(user, context={'request': request}).data,
            status_code=status.HTTP_201_CREATED,
        )


class LoginView(ClientIPMixin, APIView):
    """
    API endpoint for user login with JWT token generation.

    Security features:
    - Rate limiting: 5 attempts per minute per IP
    - Generic error messages to prevent user enumeration
    - Failed login attempt logging for security monitoring
    - Case-insensitive email lookup

    POST /api/auth/login/
    Request body: {"email": "user@example.com", "password": "password123"}

    Success response (200):
    {
        "success": true,
        "data": {"access": "...", "refresh": "...", "user": {<profile>}}
    }

    Error response (401): {"success": false, "error": {"code": "UNAUTHORIZED", "message": "Invalid credentials"}}
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'

    def post(self, request, *args, **kwargs):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        email = serializer.validated_data['email'].lower().strip()
        password = serializer.validated_data['password']
        client_ip = self.get_client_ip(request)

        try:
            user = User.objects.get(email__iexact=email)
        except User.DoesNotExist:
            # Run the hasher anyway so timing does not reveal unknown accounts
            User().set_password(password)
            logger.warning(
                f"Failed login attempt for non-existent user. "
                f"Email: {email}, IP: {client_ip}"
            )
            return unauthorized_response('Invalid credentials')

        if not user.check_password(password):
            logger.warning(
                f"Failed login attempt with incorrect password. "
                f"Email: {email}, IP: {client_ip}"
            )
            return unauthorized_response('Invalid credentials')

        if not user.is_active:
            logger.warning(
                f"Failed login attempt for inactive account. "
                f"Email: {email}, IP: {client_ip}"
            )
            return unauthorized_response('Invalid credentials')

        refresh = RefreshToken.for_user(user)

        logger.info(f"Successful login. Email: {email}, IP: {client_ip}")

        return success_response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': UserProfileSerializer(user, context={'request': request}).data,
        })


class CustomTokenRefreshView(ClientIPMixin, APIView):
    """
    API endpoint for refreshing JWT access tokens.

    - Rate limiting: 10 requests per minute per IP
    - Blacklisted tokens (after logout or rotation) are rejected
    - Token rotation: a new refresh token is issued and the old one blacklisted

    POST /api/auth/refresh/
    Request body: {"refresh": "<jwt_refresh_token>"}

    Success response (200): {"success": true, "data": {"access": "...", "refresh": "..."}}

    Error responses:
    - 400: Missing refresh field
    - 401: Invalid, expired, or blacklisted refresh token
    - 429: Rate limit exceeded
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'refresh'

    def post(self, request, *args, **kwargs):
        serializer = TokenRefreshSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        client_ip = self.get_client_ip(request)

        try:
            refresh_token = RefreshToken(serializer.validated_data['refresh'])
        except TokenError as e:
            logger.warning(f"Failed token refresh attempt. Error: {e}, IP: {client_ip}")
            return unauthorized_response(str(e))

        data = {'access': str(refresh_token.access_token)}

        jwt_settings = settings.SIMPLE_JWT
        if jwt_settings.get('ROTATE_REFRESH_TOKENS', False):
            try:
                user = User.objects.get(pk=refresh_token.get('user_id'), is_active=True)
            except User.DoesNotExist:
                return unauthorized_response('User not found')

            if jwt_settings.get('BLACKLIST_AFTER_ROTATION', False):
                refresh_token.blacklist()

            data['refresh'] = str(RefreshToken.for_user(user))

        logger.info(f"Successful token refresh. IP: {client_ip}")
        return success_response(data)


class LogoutView(ClientIPMixin, APIView):
    """
    Blacklist a refresh token.

    POST /api/auth/logout/
    Request body: {"refresh": "<jwt_refresh_token>"}
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        serializer = TokenRefreshSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            token = RefreshToken(serializer.validated_data['refresh'])
            token.blacklist()
        except TokenError as e:
            return unauthorized_response(str(e))

        logger.info(
            f"User logged out. User ID: {token.get('user_id')}, IP: {self.get_client_ip(request)}"
        )
        return success_response({'message': 'Logged out successfully.'})


class UserProfileView(APIView):
    """
    Retrieve and update the authenticated user's profile.

    GET /api/profile/
    PATCH /api/profile/  (PUT is accepted as a partial update)
    Body: {"name": "...", "username": "...", "bio": "...", "profile_image": <file>}

    Error responses:
    - 400: Invalid data
    - 401: Missing, invalid, or expired JWT token
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def get(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user, context={'request': request})
        return success_response(serializer.data)

    def patch(self, request, *args, **kwargs):
        serializer = UserProfileUpdateSerializer(
            request.user,
            data=request.data,
            partial=True,
            context={'request': request}
        )
        serializer.is_valid(raise_exception=True)

        try:
            user = serializer.save()
        except IntegrityError:
            return conflict_response('That username is already taken.')

        logger.info(
            f"Profile updated. User: {user.email} (ID: {user.id}), "
            f"Fields: {', '.join(serializer.validated_data.keys())}"
        )
        return success_response(UserProfileSerializer(user, context={'request': request}).data)

    def put(self, request, *args, **kwargs):
        return self.patch(request, *args, **kwargs)


class PublicProfileView(APIView):
    """
    GET /api/profile/<username>/

    Public profile with rating and number of active listings.
    """
    permission_classes = [AllowAny]

    def get(self, request, username, *args, **kwargs):
        try:
            user = User.objects.get(username__iexact=username, is_active=True)
        except User.DoesNotExist:
            return not_found_response('User not found.')

        return success_response(PublicProfileSerializer(user).data)


# ============================================================================
# Categories and listings
# ============================================================================

class CategoryListView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        categories = Category.objects.all().order_by('name')
        return success_response(CategorySerializer(categories, many=True).data)


class ListingListCreateView(ClientIPMixin, APIView):
    """
    Browse active listings or create a new one.

    GET /api/listings/
    Query parameters:
    - category: Category id (includes its sub-categories)
    - type: 'product' or 'service'
    - search: Case-insensitive match on title or description
    - seller: Seller user id
    - min_price / max_price: Price range (inclusive)
    - page / limit: Pagination (limit default 20, max 100)

    POST /api/listings/  (verified users)
    Body: {"title", "description", "price", "category", "type", "images": [...]}
    """

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated(), IsVerifiedUser()]
        return [AllowAny()]

    def get(self, request, *args, **kwargs):
        queryset = Listing.objects.filter(is_active=True).select_related('seller', 'category')

        category_id = _query_int(request, 'category')
        if category_id is not None:
            queryset = queryset.filter(Q(category_id=category_id) | Q(category__parent_id=category_id))

        listing_type = request.query_params.get('type')
        if listing_type:
            if listing_type not in dict(Listing.TYPE_CHOICES):
                return validation_error_response(
                    "type must be 'product' or 'service'.",
                    details={'type': ['Invalid listing type.']}
                )
            queryset = queryset.filter(listing_type=listing_type)

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(title__icontains=search) | Q(description__icontains=search))

        seller_id = _query_int(request, 'seller')
        if seller_id is not None:
            queryset = queryset.filter(seller_id=seller_id)

        min_price = _query_decimal(request, 'min_price')
        if min_price is not None:
            queryset = queryset.filter(price__gte=min_price)

        max_price = _query_decimal(request, 'max_price')
        if max_price is not None:
            queryset = queryset.filter(price__lte=max_price)

        paginator = EnvelopePagination()
        page = paginator.paginate_queryset(queryset.order_by('-created_at'), request, view=self)
        return paginator.get_paginated_response(ListingSerializer(page, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = ListingWriteSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        listing = serializer.save()

        logger.info(
            f"Listing created. Listing ID: {listing.id}, "
            f"Seller: {request.user.email} (ID: {request.user.id}), "
            f"IP: {self.get_client_ip(request)}"
        )

        return success_response(ListingSerializer(listing).data, status_code=status.HTTP_201_CREATED)


class ListingDetailView(ClientIPMixin, APIView):
    """
    GET /api/listings/<id>/     Anyone for active listings, owner or admin otherwise
    PATCH /api/listings/<id>/   Owner only
    DELETE /api/listings/<id>/  Owner or admin; deactivates the listing.
                                Refused (409) while an order is open.
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def _get_listing(self, pk):
        try:
            return Listing.objects.select_related('seller', 'category').get(pk=pk)
        except Listing.DoesNotExist:
            return None

    def get(self, request, pk, *args, **kwargs):
        listing = self._get_listing(pk)
        user = request.user
        can_see_inactive = user.is_authenticated and (user.id == getattr(listing, 'seller_id', None) or user.is_admin())
        if listing is None or (not listing.is_active and not can_see_inactive):
            return not_found_response('Listing not found.')

        return success_response(ListingSerializer(listing).data)

    def patch(self, request, pk, *args, **kwargs):
        listing = self._get_listing(pk)
        if listing is None:
            return not_found_response('Listing not found.')

        if listing.seller_id != request.user.id:
            logger.warning(
                f"Unauthorized listing update attempt. Listing ID: {pk}, "
                f"User: {request.user.email} (ID: {request.user.id}), "
                f"IP: {self.get_client_ip(request)}"
            )
            return forbidden_response('You can only edit your own listings.')

        serializer = ListingWriteSerializer(
            listing, data=request.data, partial=True, context={'request': request}
        )
        serializer.is_valid(raise_exception=True)
        listing = serializer.save()

        return success_response(ListingSerializer(listing).data)

    def delete(self, request, pk, *args, **kwargs):
        listing = self._get_listing(pk)
        if listing is None:
            return not_found_response('Listing not found.')

        if listing.seller_id != request.user.id and not request.user.is_admin():
            return forbidden_response('You can only delete your own listings.')

        if listing.has_open_transaction():
            return conflict_response('Listing has an active transaction and cannot be removed.')

        listing.set_active(False)

        logger.info(
            f"Listing deactivated. Listing ID: {pk}, "
            f"User: {request.user.email} (ID: {request.user.id})"
        )
        return success_response({'id': listing.id, 'is_active': False})


# ============================================================================
# Chats, messages and offers
# ============================================================================

class ChatListView(APIView):
    """GET /api/chats/: the caller's chats, most recent activity first."""
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        user = request.user
        chats = (
            Chat.objects.filter(Q(buyer=user) | Q(seller=user))
            .select_related('listing', 'buyer', 'seller')
            .order_by('-updated_at')
        )
        paginator = EnvelopePagination()
        page = paginator.paginate_queryset(chats, request, view=self)
        return paginator.get_paginated_response(ChatSerializer(page, many=True).data)


class ChatStartView(APIView):
    """
    POST /api/chats/start/  (verified users)
    Body: {"listing_id": 1}

    Returns the existing chat for (listing, buyer, seller) or creates it.
    """
    permission_classes = [IsAuthenticated, IsVerifiedUser]

    def post(self, request, *args, **kwargs):
        serializer = ChatStartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            listing = Listing.objects.get(pk=serializer.validated_data['listing_id'])
        except Listing.DoesNotExist:
            return not_found_response('Listing not found.')

        if listing.seller_id == request.user.id:
            return validation_error_response('You cannot start a chat on your own listing.')

        lookup = {'listing': listing, 'buyer': request.user, 'seller': listing.seller}
        try:
            with db_transaction.atomic():
                chat, created = Chat.objects.get_or_create(**lookup)
        except IntegrityError:
            # Another request created the chat first
            chat, created = Chat.objects.get(**lookup), False

        return success_response(
            {'chat_id': chat.id, 'chat': ChatSerializer(chat).data},
            status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class MessageListCreateView(ClientIPMixin, PostThrottleMixin, APIView):
    """
    GET /api/messages/?chat=<id>&page=<n>&limit=<size>
        Newest messages first per page, returned in chronological order.
        Messages from the other participant are marked as read.

    POST /api/messages/
        Body: {"chat_id": 1, "text": "Is this still available?"}
        Touches the chat's updated_at and notifies the other participant.

    Only chat participants may read or write (403).
    """
    permission_classes = [IsAuthenticated]
    throttle_scope = 'messages'

    def _get_chat(self, request, chat_id):
        try:
            chat = Chat.objects.select_related('listing', 'buyer', 'seller').get(pk=chat_id)
        except Chat.DoesNotExist:
            return None, not_found_response('Chat not found.')

        if not chat.is_participant(request.user):
            logger.warning(
                f"Unauthorized chat access attempt. Chat ID: {chat_id}, "
                f"User: {request.user.email} (ID: {request.user.id}), "
                f"IP: {self.get_client_ip(request)}"
            )
            return None, forbidden_response('You are not a participant in this chat.')

        return chat, None

    def get(self, request, *args, **kwargs):
        chat_id = _query_int(request, 'chat', required=True)
        chat, error = self._get_chat(request, chat_id)
        if error:
            return error

        chat.messages.exclude(sender=request.user).exclude(read_status='read').update(read_status='read')

        paginator = EnvelopePagination(page_size=50)
        queryset = chat.messages.select_related('sender').order_by('-created_at', '-id')
        page = paginator.paginate_queryset(queryset, request, view=self)
        data = MessageSerializer(list(reversed(page)), many=True).data
        return paginator.get_paginated_response(data)

    def post(self, request, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        chat, error = self._get_chat(request, serializer.validated_data['chat_id'])
        if error:
            return error

        with db_transaction.atomic():
            message = Message.objects.create(
                chat=chat,
                sender=request.user,
                text=serializer.validated_data['text'],
            )
            Chat.objects.filter(pk=chat.pk).update(updated_at=timezone.now())

        notify_new_message(message)

        return success_response(MessageSerializer(message).data, status_code=status.HTTP_201_CREATED)


class OfferCreateView(APIView):
    """
    POST /api/offers/
    Body: {"chat_id": 1, "price": "450.00"}

    Only one proposed/countered offer may be open per chat (409). When the
    other participant answers an open offer with a new price, the open offer
    is declined and the new one is stored as 'countered'. Offers expire after
    MARKETPLACE['OFFER_EXPIRY_HOURS'].
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = OfferCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        chat_id = serializer.validated_data['chat_id']
        now = timezone.now()

        with db_transaction.atomic():
            try:
                chat = Chat.objects.select_for_update().select_related('listing').get(pk=chat_id)
            except Chat.DoesNotExist:
                return not_found_response('Chat not found.')

            if not chat.is_participant(request.user):
                return forbidden_response('You are not a participant in this chat.')

            chat.offers.filter(
                status__in=Offer.ACTIVE_STATUSES, expires_at__lt=now
            ).update(status='expired', updated_at=now)

            open_offer = chat.offers.filter(status__in=Offer.ACTIVE_STATUSES).first()
            offer_status = 'proposed'
            if open_offer is not None:
                if open_offer.proposer_id == request.user.id:
                    return conflict_response('An active offer already exists for this chat.')
                open_offer.status = 'declined'
                open_offer.save(update_fields=['status', 'updated_at'])
                offer_status = 'countered'

            offer = Offer.objects.create(
                chat=chat,
                proposer=request.user,
                price=serializer.validated_data['price'],
                status=offer_status,
                expires_at=now + timedelta(hours=settings.MARKETPLACE['OFFER_EXPIRY_HOURS']),
            )
            Chat.objects.filter(pk=chat.pk).update(updated_at=now)

        create_notification(
            chat.other_party(request.user),
            'chat',
            'Counter Offer' if offer_status == 'countered' else 'New Offer',
            f'{request.user.display_name} offered {offer.price} for "{chat.listing.title}"',
            data={'chat_id': chat.pk, 'offer_id': offer.pk},
            action_url=f'/chats/{chat.pk}',
            dedup_key=f'offer:{offer.pk}',
        )

        return success_response(OfferSerializer(offer).data, status_code=status.HTTP_201_CREATED)


class OfferUpdateView(APIView):
    """
    PUT /api/offers/<id>/
    Body: {"status": "accepted" | "declined" | "cancelled"}

    The recipient accepts or declines, the proposer cancels. Closed offers
    give 400; an offer past its expiry is marked expired and gives 400.
    """
    permission_classes = [IsAuthenticated]

    def put(self, request, pk, *args, **kwargs):
        serializer = OfferUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data['status']

        with db_transaction.atomic():
            try:
                offer = Offer.objects.select_for_update().select_related('chat', 'chat__listing').get(pk=pk)
            except Offer.DoesNotExist:
                return not_found_response('Offer not found.')

            chat = offer.chat
            if not chat.is_participant(request.user):
                return forbidden_response('You are not a participant in this chat.')

            if not offer.is_active():
                return validation_error_response(f'Offer is already {offer.status}.')

            if offer.is_expired():
                offer.status = 'expired'
                offer.save(update_fields=['status', 'updated_at'])
                return validation_error_response('Offer has expired.')

            is_proposer = offer.proposer_id == request.user.id
            if new_status == 'cancelled' and not is_proposer:
                return forbidden_response('Only the proposer can cancel an offer.')
            if new_status in ('accepted', 'declined') and is_proposer:
                return forbidden_response('You cannot respond to your own offer.')

            offer.status = new_status
            offer.save(update_fields=['status', 'updated_at'])

        create_notification(
            chat.other_party(request.user),
            'chat',
            f'Offer {new_status.capitalize()}',
            f'Your offer of {offer.price} for "{chat.listing.title}" was {new_status}.'
            if not is_proposer else
            f'The offer of {offer.price} for "{chat.listing.title}" was withdrawn.',
            data={'chat_id': chat.pk, 'offer_id': offer.pk, 'status': new_status},
            action_url=f'/chats/{chat.pk}',
            dedup_key=f'offer_{new_status}:{offer.pk}',
        )

        return success_response(OfferSerializer(offer).data)


# ============================================================================
# Transactions and payments
# ============================================================================

class TransactionListCreateView(ClientIPMixin, PostThrottleMixin, VerifiedPostMixin, APIView):
    """
    GET /api/transactions/
    Query parameters:
    - status: initiated | paid | cancelled | refunded
    - role: buyer | seller (restrict to one side)
    - user: User id (admins only)
    - page / limit

    Users see transactions they take part in; admins see all.

    POST /api/transactions/  (verified users, throttled)
    Body: {"listing_id": 1, "amount": "450.00"}  (amount defaults to the listing price)

    Success response (201):
    {
        "success": true,
        "data": {
            "transaction": {...},
            "order": {"id": "order_...", "amount": 45000, "currency": "INR", "key_id": "..."}
        }
    }

    Error responses:
    - 400: Listing inactive, own listing, invalid amount
    - 404: Listing not found
    - 409: Listing already has an initiated or paid transaction
    - 429: Daily transaction limit reached
    - 502: Payment gateway failure (nothing is stored and the listing is released)
    """
    throttle_scope = 'transactions'

    def get(self, request, *args, **kwargs):
        user = request.user
        queryset = Transaction.objects.select_related('listing', 'buyer', 'seller', 'pickup')

        if user.is_admin():
            user_id = _query_int(request, 'user')
            if user_id is not None:
                queryset = queryset.filter(Q(buyer_id=user_id) | Q(seller_id=user_id))
        else:
            queryset = queryset.filter(Q(buyer=user) | Q(seller=user))

        status_filter = request.query_params.get('status')
        if status_filter:
            if status_filter not in dict(Transaction.STATUS_CHOICES):
                return validation_error_response(
                    'Invalid status filter.', details={'status': [f'Unknown status {status_filter}.']}
                )
            queryset = queryset.filter(status=status_filter)

        role = request.query_params.get('role')
        if role == 'buyer':
            queryset = queryset.filter(buyer=user)
        elif role == 'seller':
            queryset = queryset.filter(seller=user)
        elif role:
            return validation_error_response("role must be 'buyer' or 'seller'.")

        paginator = EnvelopePagination()
        page = paginator.paginate_queryset(queryset.order_by('-created_at'), request, view=self)
        data = TransactionSerializer(page, many=True, context={'request': request}).data
        return paginator.get_paginated_response(data)

    def post(self, request, *args, **kwargs):
        serializer = TransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        buyer = request.user
        client_ip = self.get_client_ip(request)
        marketplace = settings.MARKETPLACE

        since = timezone.now() - timedelta(hours=24)
        recent = Transaction.objects.filter(buyer=buyer, created_at__gte=since).count()
        if recent >= marketplace['DAILY_TRANSACTION_LIMIT']:
            logger.warning(
                f"Daily transaction limit reached. User: {buyer.email} (ID: {buyer.id}), IP: {client_ip}"
            )
            return error_response(
                'Daily transaction limit reached. Try again tomorrow.',
                status.HTTP_429_TOO_MANY_REQUESTS,
            )

        with db_transaction.atomic():
            try:
                # Lock the listing so two buyers cannot open orders at once
                listing = Listing.objects.select_for_update().get(pk=serializer.validated_data['listing_id'])
            except Listing.DoesNotExist:
                return not_found_response('Listing not found.')

            if listing.seller_id == buyer.id:
                return validation_error_response('You cannot buy your own listing.')

            if listing.has_open_transaction():
                return conflict_response('This listing already has a transaction in progress.')

            if not listing.is_active:
                return validation_error_response('Listing is not available.')

            amount = serializer.validated_data.get('amount', listing.price)
            if amount < 1:
                return validation_error_response('Amount must be at least 1.')

            # Reserve the listing; the gateway is called after the lock is released
            listing.set_active(False)

        try:
            order = payments.get_gateway().create_order(
                amount,
                notes={
                    'listing_id': listing.id,
                    'buyer_id': buyer.id,
                    'seller_id': listing.seller_id,
                },
            )
        except PaymentGatewayError as e:
            _reactivate_listing(listing.id)
            logger.error(
                f"Order creation failed. Listing ID: {listing.id}, "
                f"User: {buyer.email} (ID: {buyer.id}), Error: {e}"
            )
            return error_response('Payment gateway error. Please try again.', status.HTTP_502_BAD_GATEWAY)

        try:
            txn = Transaction.objects.create(
                buyer=buyer,
                seller=listing.seller,
                listing=listing,
                amount=amount,
                gateway_order_id=order['id'],
            )
        except Exception:
            _reactivate_listing(listing.id)
            raise

        notify_transaction_created(txn)

        logger.info(
            f"Transaction created. Transaction ID: {txn.id}, Listing ID: {listing.id}, "
            f"Buyer: {buyer.email} (ID: {buyer.id}), Amount: {amount}, IP: {client_ip}"
        )

        return success_response(
            {
                'transaction': TransactionSerializer(txn, context={'request': request}).data,
                'order': {
                    'id': order['id'],
                    'amount': order.get('amount', payments.to_paise(amount)),
                    'currency': order.get('currency', settings.PAYMENT_GATEWAY.get('CURRENCY', 'INR')),
                    'key_id': settings.PAYMENT_GATEWAY.get('KEY_ID'),
                },
            },
            status_code=status.HTTP_201_CREATED,
        )


def _load_transaction(pk, lock=False):
    queryset = Transaction.objects.select_related('listing', 'buyer', 'seller')
    if lock:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=pk)
    except Transaction.DoesNotExist:
        return None


class TransactionDetailView(ClientIPMixin, APIView):
    """GET /api/transactions/<id>/: participants and admins."""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        txn = _load_transaction(pk)
        if txn is None:
            return not_found_response('Transaction not found.')

        if not txn.is_participant(request.user) and not request.user.is_admin():
            logger.warning(
                f"Unauthorized transaction access attempt. Transaction ID: {pk}, "
                f"User: {request.user.email} (ID: {request.user.id}), "
                f"IP: {self.get_client_ip(request)}"
            )
            return forbidden_response('You are not a participant in this transaction.')

        return success_response(TransactionSerializer(txn, context={'request': request}).data)


class TransactionCancelView(ClientIPMixin, APIView):
    """
    POST /api/transactions/<id>/cancel/

    Buyer, seller or admin. An initiated order is simply cancelled; a paid
    order with a gateway payment is refunded in full first. The listing goes
    back on sale.

    Error responses:
    - 400: Already cancelled or refunded, or pickup already confirmed
    - 403: Not a participant
    - 404: Transaction not found
    - 502: Refund failed (nothing changes)
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        user = request.user
        needs_refund = False

        with db_transaction.atomic():
            txn = _load_transaction(pk, lock=True)
            if txn is None:
                return not_found_response('Transaction not found.')

            if not txn.is_participant(user) and not user.is_admin():
                return forbidden_response('You are not a participant in this transaction.')

            if txn.status in ('cancelled', 'refunded'):
                return validation_error_response(f'Transaction is already {txn.status}.')

            pickup = txn.get_pickup()
            if pickup is not None and pickup.status == 'confirmed':
                return validation_error_response('Completed transactions cannot be cancelled.')

            if txn.status == 'paid' and txn.gateway_payment_id:
                needs_refund = True
                try:
                    refund_cancelled_transaction(txn)
                except RefundError as e:
                    logger.error(f"Refund on cancel failed. Transaction ID: {txn.id}, Error: {e}")
                    return error_response(str(e), status.HTTP_502_BAD_GATEWAY)
            else:
                txn.cancel()
                _reactivate_listing(txn.listing_id)

        other = txn.seller if user.id == txn.buyer_id else txn.buyer
        create_notification(
            other,
            'transaction',
            'Transaction Cancelled',
            f'The transaction for "{txn.listing.title}" was cancelled.',
            data={'transaction_id': txn.id, 'refunded': needs_refund},
            action_url=f'/transactions/{txn.id}',
            dedup_key=f'transaction_cancelled:{txn.id}',
        )

        logger.info(
            f"Transaction cancelled. Transaction ID: {txn.id}, Refunded: {needs_refund}, "
            f"User: {user.email} (ID: {user.id}), IP: {self.get_client_ip(request)}"
        )

        txn.refresh_from_db()
        return success_response(TransactionSerializer(txn, context={'request': request}).data)


class GeneratePickupView(APIView):
    """
    POST /api/transactions/<id>/generate-pickup/

    Seller or admin. The transaction must be paid and have no pickup yet
    (409). Deactivates the listing and sends the code to the buyer.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        with db_transaction.atomic():
            txn = _load_transaction(pk, lock=True)
            if txn is None:
                return not_found_response('Transaction not found.')

            if request.user.id != txn.seller_id and not request.user.is_admin():
                return forbidden_response('Only the seller can generate a pickup code.')

            if txn.status != 'paid':
                return validation_error_response('Pickup codes can only be generated for paid transactions.')

            if txn.get_pickup() is not None:
                return conflict_response('A pickup code already exists for this transaction.')

            pickup = Pickup.objects.create(transaction=txn)
            _deactivate_listing(txn.listing_id)

        notify_pickup_code_generated(txn, pickup)

        logger.info(f"Pickup generated. Transaction ID: {txn.id}, User ID: {request.user.id}")

        return success_response(
            PickupSerializer(pickup, context={'request': request}).data,
            status_code=status.HTTP_201_CREATED,
        )


class AdminRefundView(ClientIPMixin, APIView):
    """
    POST /api/transactions/<id>/refund/  (admins)
    Body: {"amount": "100.00"} or {"percentage": "0.5"}, optional "reason"

    Without amount or percentage the full amount is refunded.

    Error responses:
    - 400: Transaction not paid or has no payment id
    - 409: Transaction was refunded or cancelled by a concurrent request
    - 502: Refund failed at the gateway
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def post(self, request, pk, *args, **kwargs):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        txn = _load_transaction(pk)
        if txn is None:
            return not_found_response('Transaction not found.')

        if txn.status != 'paid':
            return validation_error_response('Only paid transactions can be refunded.')

        if not txn.gateway_payment_id:
            return validation_error_response('No payment ID found for transaction.')

        reason = data.get('reason', '')
        try:
            if 'percentage' in data:
                result = process_partial_refund(txn, data['percentage'], reason=reason)
            else:
                result = process_refund(txn, amount=data.get('amount'), reason=reason)
        except RefundNotAllowed as e:
            return conflict_response(str(e))
        except RefundError as e:
            return error_response(str(e), status.HTTP_502_BAD_GATEWAY)

        AdminAction.log(
            request.user,
            'refund_issued',
            target=txn,
            notes=f'Amount: {result.amount}. {reason}'.strip(),
        )
        create_notification(
            txn.buyer,
            'transaction',
            'Refund Issued',
            f'A refund of {result.amount} was issued for "{txn.listing.title}".',
            data={'transaction_id': txn.id, 'refund_id': result.refund_id},
            action_url=f'/transactions/{txn.id}',
            priority='high',
            dedup_key=f'refund_issued:{txn.id}',
        )

        logger.info(
            f"Admin refund issued. Transaction ID: {txn.id}, Amount: {result.amount}, "
            f"Admin: {request.user.email} (ID: {request.user.id}), IP: {self.get_client_ip(request)}"
        )

        return success_response({
            'refund_id': result.refund_id,
            'amount': str(result.amount),
            'transaction': TransactionSerializer(txn, context={'request': request}).data,
        })


def _mark_transaction_paid(txn, payment_id):
    """
    Move a locked transaction to paid.

    Returns:
        bool: True when the status changed, False if it was already paid
    """
    if txn.status == 'paid':
        return False
    txn.mark_paid(payment_id)
    return True


class PaymentVerifyView(ClientIPMixin, APIView):
    """
    Client-side confirmation after checkout.

    POST /api/payments/verify/
    Body: {
        "transaction_id": 1,
        "razorpay_order_id": "order_...",
        "razorpay_payment_id": "pay_...",
        "razorpay_signature": "<hex hmac>"
    }

    The signature is HMAC-SHA256("<order_id>|<payment_id>", key secret).
    Re-posting the same payment for a paid transaction is a no-op.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PaymentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        client_ip = self.get_client_ip(request)

        order_id = data['razorpay_order_id']
        payment_id = data['razorpay_payment_id']

        with db_transaction.atomic():
            txn = _load_transaction(data['transaction_id'], lock=True)
            if txn is None:
                return not_found_response('Transaction not found.')

            if txn.buyer_id != request.user.id:
                return forbidden_response('Only the buyer can verify this payment.')

            if txn.gateway_order_id != order_id:
                return validation_error_response('Order ID does not match this transaction.')

            if not payments.verify_payment_signature(order_id, payment_id, data['razorpay_signature']):
                logger.warning(
                    f"Payment signature mismatch. Transaction ID: {txn.id}, "
                    f"User: {request.user.email} (ID: {request.user.id}), IP: {client_ip}"
                )
                return validation_error_response('Invalid payment signature.')

            if txn.status == 'paid':
                if txn.gateway_payment_id == payment_id:
                    return success_response(TransactionSerializer(txn, context={'request': request}).data)
                return conflict_response('Transaction has already been paid.')

            if txn.status != 'initiated':
                return conflict_response(f'Transaction is {txn.status} and cannot be paid.')

            txn.mark_paid(payment_id)

        notify_payment_received(txn)

        logger.info(
            f"Payment verified. Transaction ID: {txn.id}, Payment ID: {payment_id}, "
            f"User: {request.user.email} (ID: {request.user.id}), IP: {client_ip}"
        )
        return success_response(TransactionSerializer(txn, context={'request': request}).data)


class RazorpayWebhookView(ClientIPMixin, APIView):
    """
    POST /api/webhooks/razorpay/

    Unauthenticated; the X-Razorpay-Signature header must equal
    HMAC-SHA256(raw body, webhook secret).

    Events:
    - order.paid: mark paid and make sure a pickup code exists
    - payment.captured: mark paid
    - payment.failed: cancel an initiated transaction, re-list the item
    Other events are acknowledged and ignored.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        body = request.body
        signature = request.META.get('HTTP_X_RAZORPAY_SIGNATURE', '')
        client_ip = self.get_client_ip(request)

        try:
            valid = payments.verify_webhook_signature(body, signature)
        except ImproperlyConfigured:
            logger.error("Webhook received but PAYMENT_GATEWAY['WEBHOOK_SECRET'] is not set.")
            return error_response('Webhook secret not configured.', status.HTTP_500_INTERNAL_SERVER_ERROR)

        if not valid:
            logger.warning(f"Webhook signature mismatch. IP: {client_ip}")
            return unauthorized_response('Invalid webhook signature.')

        try:
            event = json.loads(body)
        except ValueError:
            return validation_error_response('Invalid JSON payload.')

        event_type = event.get('event', '')
        entities = event.get('payload', {})
        payment = entities.get('payment', {}).get('entity', {})
        order = entities.get('order', {}).get('entity', {})

        if event_type == 'order.paid':
            self._handle_paid(order.get('id'), payment.get('id', ''), ensure_pickup=True)
        elif event_type == 'payment.captured':
            self._handle_paid(payment.get('order_id'), payment.get('id', ''))
        elif event_type == 'payment.failed':
            self._handle_failed(payment.get('order_id'))
        else:
            logger.info(f"Ignoring webhook event: {event_type}")

        return success_response({'status': 'ok'})

    def _handle_paid(self, order_id, payment_id, ensure_pickup=False):
        if not order_id:
            return

        pickup = None
        with db_transaction.atomic():
            txn = Transaction.objects.select_for_update().select_related('listing').filter(
                gateway_order_id=order_id
            ).first()
            if txn is None:
                logger.warning(f"Webhook for unknown order. Order ID: {order_id}")
                return

            if txn.status not in ('initiated', 'paid'):
                logger.warning(
                    f"Webhook payment for {txn.status} transaction. Transaction ID: {txn.id}"
                )
                return

            newly_paid = _mark_transaction_paid(txn, payment_id)

            if ensure_pickup and txn.get_pickup() is None:
                pickup = Pickup.objects.create(transaction=txn)
                _deactivate_listing(txn.listing_id)

        if newly_paid:
            notify_payment_received(txn)
            logger.info(f"Transaction paid via webhook. Transaction ID: {txn.id}")
        if pickup is not None:
            notify_pickup_code_generated(txn, pickup)

    def _handle_failed(self, order_id):
        if not order_id:
            return

        with db_transaction.atomic():
            txn = Transaction.objects.select_for_update().filter(
                gateway_order_id=order_id, status='initiated'
            ).first()
            if txn is None:
                return
            txn.cancel()
            _reactivate_listing(txn.listing_id)

        logger.info(f"Transaction cancelled after failed payment. Transaction ID: {txn.id}")


# ============================================================================
# Pickups
# ============================================================================

class PickupGenerateView(APIView):
    """
    POST /api/pickups/generate/  (buyer)
    Body: {"transaction_id": 1}

    Returns the existing pickup (200) or creates one (201).
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PickupGenerateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with db_transaction.atomic():
            txn = _load_transaction(serializer.validated_data['transaction_id'], lock=True)
            if txn is None:
                return not_found_response('Transaction not found.')

            if txn.buyer_id != request.user.id:
                return forbidden_response('Only the buyer can request a pickup code.')

            if txn.status != 'paid':
                return validation_error_response('Transaction must be paid before pickup.')

            pickup = txn.get_pickup()
            created = pickup is None
            if created:
                pickup = Pickup.objects.create(transaction=txn)
                _deactivate_listing(txn.listing_id)

        return success_response(
            PickupSerializer(pickup, context={'request': request}).data,
            status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class PickupConfirmView(ClientIPMixin, APIView):
    """
    POST /api/pickups/confirm/  (seller)
    Body: {"transaction_id": 1, "pickup_code": "123456"}

    Confirms the hand-off and takes the listing off the market.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PickupConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        code = serializer.validated_data['pickup_code']

        with db_transaction.atomic():
            txn = _load_transaction(serializer.validated_data['transaction_id'], lock=True)
            if txn is None:
                return not_found_response('Transaction not found.')

            if txn.seller_id != request.user.id:
                return forbidden_response('Only the seller can confirm the pickup.')

            if txn.status != 'paid':
                return validation_error_response('Transaction is not paid.')

            pickup = Pickup.objects.select_for_update().filter(transaction=txn).first()
            if pickup is None:
                return validation_error_response('No pickup code has been generated.')

            if pickup.status == 'confirmed':
                return validation_error_response('Pickup already confirmed.')

            if not hmac.compare_digest(pickup.pickup_code, code):
                logger.warning(
                    f"Invalid pickup code. Transaction ID: {txn.id}, "
                    f"User: {request.user.email} (ID: {request.user.id}), "
                    f"IP: {self.get_client_ip(request)}"
                )
                return validation_error_response('Invalid pickup code.')

            pickup.confirm()
            _deactivate_listing(txn.listing_id)

        notify_pickup_confirmed(txn)

        logger.info(f"Pickup confirmed. Transaction ID: {txn.id}, Seller ID: {request.user.id}")

        return success_response({
            'transaction_id': txn.id,
            'pickup': PickupSerializer(pickup, context={'request': request}).data,
        })


# ============================================================================
# Disputes
# ============================================================================

class DisputeListCreateView(ClientIPMixin, VerifiedPostMixin, APIView):
    """
    GET /api/disputes/: disputes the caller filed or is a party to.

    POST /api/disputes/  (verified users)
    Body: {
        "transaction_id": 1,
        "subject": "Item not received",
        "description": "Paid two days ago and the seller stopped replying.",
        "reason": "not_received",
        "evidence": ["https://example.com/proof.png"]
    }

    Error responses:
    - 403: Not a participant of the transaction
    - 404: Transaction not found
    - 409: The transaction already has an open or in-review dispute
    """

    def get(self, request, *args, **kwargs):
        user = request.user
        queryset = (
            Dispute.objects.filter(
                Q(reporter=user) | Q(transaction__buyer=user) | Q(transaction__seller=user)
            )
            .select_related('transaction', 'transaction__listing', 'reporter', 'resolved_by')
            .distinct()
            .order_by('-created_at')
        )
        paginator = EnvelopePagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        return paginator.get_paginated_response(DisputeSerializer(page, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = DisputeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            with db_transaction.atomic():
                txn = _load_transaction(data['transaction_id'], lock=True)
                if txn is None:
                    return not_found_response('Transaction not found.')

                if not txn.is_participant(request.user):
                    logger.warning(
                        f"Dispute attempt by non-participant. Transaction ID: {txn.id}, "
                        f"User: {request.user.email} (ID: {request.user.id}), "
                        f"IP: {self.get_client_ip(request)}"
                    )
                    return forbidden_response('Only transaction participants can open a dispute.')

                if txn.disputes.filter(status__in=Dispute.ACTIVE_STATUSES).exists():
                    return conflict_response('An active dispute already exists for this transaction.')

                dispute = Dispute.objects.create(
                    transaction=txn,
                    reporter=request.user,
                    subject=data['subject'],
                    description=data['description'],
                    reason=data['reason'],
                    evidence=data.get('evidence', []),
                )
        except IntegrityError:
            return conflict_response('An active dispute already exists for this transaction.')

        notify_dispute_created(dispute)

        logger.info(
            f"Dispute opened. Dispute ID: {dispute.id}, Transaction ID: {txn.id}, "
            f"Reporter: {request.user.email} (ID: {request.user.id})"
        )

        return success_response(DisputeSerializer(dispute).data, status_code=status.HTTP_201_CREATED)


class AdminDisputeListView(APIView):
    """
    GET /api/admin/disputes/?status=<status>&limit=<n>&offset=<m>  (admins)

    limit defaults to 50 (max 100); the pagination block carries has_more.
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get(self, request, *args, **kwargs):
        queryset = Dispute.objects.select_related(
            'transaction', 'transaction__listing', 'reporter', 'resolved_by'
        ).order_by('-created_at')

        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        paginator = EnvelopeLimitOffsetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        return paginator.get_paginated_response(DisputeSerializer(page, many=True).data)


def _load_dispute(pk, lock=False):
    queryset = Dispute.objects.select_related(
        'transaction', 'transaction__listing', 'transaction__buyer', 'transaction__seller', 'reporter'
    )
    if lock:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=pk)
    except Dispute.DoesNotExist:
        return None


class AdminDisputeUpdateView(ClientIPMixin, APIView):
    """
    PUT /api/admin/disputes/<id>/  (admins)
    Body: {"status": "in_review" | "resolved" | "rejected", "resolution": "..."}
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def put(self, request, pk, *args, **kwargs):
        serializer = DisputeStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data['status']
        resolution = serializer.validated_data.get('resolution', '')

        with db_transaction.atomic():
            dispute = _load_dispute(pk, lock=True)
            if dispute is None:
                return not_found_response('Dispute not found.')

            if not dispute.is_active():
                return validation_error_response(f'Dispute is already {dispute.status}.')

            dispute.status = new_status
            if resolution:
                dispute.resolution = resolution
            if new_status in ('resolved', 'rejected'):
                dispute.resolved_by = request.user
                dispute.resolved_at = timezone.now()
            dispute.save()

            AdminAction.log(request.user, f'dispute_{new_status}', dispute=dispute, notes=resolution)

        notify_dispute_resolved(dispute)

        logger.info(
            f"Dispute status updated. Dispute ID: {dispute.id}, Status: {new_status}, "
            f"Admin: {request.user.email} (ID: {request.user.id}), IP: {self.get_client_ip(request)}"
        )
        return success_response(DisputeSerializer(dispute).data)


class AdminDisputeResolveView(ClientIPMixin, APIView):
    """
    POST /api/admin/disputes/<id>/resolve/  (admins)
    Body: {
        "resolution": "Seller confirmed the item was damaged.",
        "action": "resolved" | "rejected",
        "refund_percentage": "0.5"      (optional, 0-1]
        "refund_amount": "200.00"       (optional, capped at the transaction amount)
    }

    Error responses:
    - 400: Dispute already closed, or refund on an unpaid transaction
    - 404: Dispute not found
    - 409: Transaction was refunded or cancelled by a concurrent request
    - 502: Refund failed at the gateway
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def post(self, request, pk, *args, **kwargs):
        serializer = DisputeResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        action = data['action']

        with db_transaction.atomic():
            dispute = _load_dispute(pk, lock=True)
            if dispute is None:
                return not_found_response('Dispute not found.')

            if not dispute.is_active():
                return validation_error_response(f'Dispute is already {dispute.status}.')

            txn = dispute.transaction
            refund = None
            wants_refund = 'refund_percentage' in data or 'refund_amount' in data

            if wants_refund:
                if txn.status != 'paid' or not txn.gateway_payment_id:
                    return validation_error_response('Refunds require a paid transaction.')
                try:
                    if 'refund_amount' in data:
                        refund = refund_for_dispute(dispute, amount=data['refund_amount'])
                    else:
                        refund = refund_for_dispute(dispute, percentage=data['refund_percentage'])
                except RefundNotAllowed as e:
                    return conflict_response(str(e))
                except RefundError as e:
                    logger.error(f"Dispute refund failed. Dispute ID: {dispute.id}, Error: {e}")
                    return error_response(str(e), status.HTTP_502_BAD_GATEWAY)

            dispute.status = action
            dispute.resolution = data['resolution']
            dispute.resolved_by = request.user
            dispute.resolved_at = dispute.resolved_at or timezone.now()
            dispute.save()

            notes = data['resolution']
            if refund is not None:
                notes = f'{notes} (refund {refund.amount})'
            AdminAction.log(request.user, f'dispute_{action}', dispute=dispute, notes=notes)

        notify_dispute_resolved(dispute)

        logger.info(
            f"Dispute {action}. Dispute ID: {dispute.id}, "
            f"Refund: {refund.amount if refund else 'none'}, "
            f"Admin: {request.user.email} (ID: {request.user.id}), IP: {self.get_client_ip(request)}"
        )

        response = DisputeSerializer(dispute).data
        if refund is not None:
            response['refund'] = {'refund_id': refund.refund_id, 'amount': str(refund.amount)}
        return success_response(response)


# ============================================================================
# Reviews
# ============================================================================

class ReviewListCreateView(VerifiedPostMixin, APIView):
    """
    GET /api/reviews/?type=given|received&user=<id>
        Reviews given or received by a user (default: received by the caller).

    POST /api/reviews/  (verified users)
    Body: {"transaction_id": 1, "reviewee_id": 2, "rating": 5, "comment": "Smooth hand-off"}

    Error responses:
    - 400: Transaction not completed, wrong reviewee, invalid rating
    - 403: Not a participant
    - 404: Transaction not found
    - 409: Already reviewed
    """

    def get(self, request, *args, **kwargs):
        review_type = request.query_params.get('type', 'received')
        if review_type not in ('given', 'received'):
            return validation_error_response("type must be 'given' or 'received'.")

        user_id = _query_int(request, 'user') or request.user.id
        field = 'reviewer_id' if review_type == 'given' else 'reviewee_id'

        queryset = Review.objects.filter(**{field: user_id}).select_related(
            'transaction', 'transaction__listing', 'reviewer', 'reviewee'
        ).order_by('-created_at')

        paginator = EnvelopePagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        return paginator.get_paginated_response(ReviewSerializer(page, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        txn = _load_transaction(data['transaction_id'])
        if txn is None:
            return not_found_response('Transaction not found.')

        if not txn.is_participant(request.user):
            return forbidden_response('Only transaction participants can leave a review.')

        if Review.objects.filter(transaction=txn, reviewer=request.user).exists():
            return conflict_response('You have already reviewed this transaction.')

        try:
            with db_transaction.atomic():
                review = Review.objects.create(
                    transaction=txn,
                    reviewer=request.user,
                    reviewee_id=data['reviewee_id'],
                    rating=data['rating'],
                    comment=data.get('comment', ''),
                )
        except IntegrityError:
            return conflict_response('You have already reviewed this transaction.')

        logger.info(
            f"Review created. Review ID: {review.id}, Transaction ID: {txn.id}, "
            f"Reviewer ID: {request.user.id}, Rating: {review.rating}"
        )

        return success_response(ReviewSerializer(review).data, status_code=status.HTTP_201_CREATED)


# ============================================================================
# Notifications
# ============================================================================

class NotificationView(APIView):
    """
    GET /api/notifications/?type=<type>&unread_only=true&page=<n>&limit=<size>
        Purges the caller's expired notifications, then lists the rest by
        priority (highest first) and recency, with the unread count.

    PUT /api/notifications/
        Body: {"notification_ids": [1, 2]} or {"mark_all": true}

    DELETE /api/notifications/?id=<id>
    DELETE /api/notifications/?delete_all=true
        delete_all removes read notifications older than
        MARKETPLACE['NOTIFICATION_RETENTION_DAYS'].
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        user = request.user
        now = timezone.now()

        Notification.objects.filter(user=user, expires_at__lt=now).delete()

        queryset = Notification.objects.filter(user=user)

        notification_type = request.query_params.get('type')
        if notification_type:
            queryset = queryset.filter(notification_type=notification_type)

        if request.query_params.get('unread_only', '').lower() in ('1', 'true', 'yes'):
            queryset = queryset.filter(is_read=False)

        rank = Case(
            *[When(priority=name, then=Value(value)) for name, value in Notification.PRIORITY_RANK.items()],
            default=Value(Notification.PRIORITY_RANK['normal']),
            output_field=IntegerField(),
        )
        queryset = queryset.annotate(priority_rank=rank).order_by('-priority_rank', '-created_at')

        paginator = EnvelopePagination()
        page = paginator.paginate_queryset(queryset, request, view=self)

        return success_response(
            {
                'notifications': NotificationSerializer(page, many=True).data,
                'unread_count': Notification.objects.filter(user=user, is_read=False).count(),
            },
            pagination=paginator.get_pagination_meta(),
        )

    def put(self, request, *args, **kwargs):
        serializer = NotificationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        queryset = Notification.objects.filter(user=request.user, is_read=False)
        if not serializer.validated_data.get('mark_all'):
            queryset = queryset.filter(pk__in=serializer.validated_data['notification_ids'])

        updated = queryset.update(is_read=True)
        return success_response({'updated': updated})

    def delete(self, request, *args, **kwargs):
        user = request.user
        notification_id = _query_int(request, 'id')

        if notification_id is not None:
            deleted, _ = Notification.objects.filter(user=user, pk=notification_id).delete()
            if not deleted:
                return not_found_response('Notification not found.')
            return success_response({'deleted': deleted})

        if request.query_params.get('delete_all', '').lower() == 'true':
            days = settings.MARKETPLACE['NOTIFICATION_RETENTION_DAYS']
            cutoff = timezone.now() - timedelta(days=days)
            deleted, _ = Notification.objects.filter(
                user=user, is_read=True, created_at__lt=cutoff
            ).delete()
            return success_response({'deleted': deleted})

        return validation_error_response('Provide id or delete_all=true.')


# ============================================================================
# Reports and moderation
# ============================================================================

class ReportCreateView(ClientIPMixin, APIView):
    """
    POST /api/reports/  (verified users, throttled)
    Body: {"target_type": "listing", "target_id": 4, "reason": "scam", "description": "..."}

    A user can report the same target once (409). Admins are notified.
    """
    permission_classes = [IsAuthenticated, IsVerifiedUser]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'reports'

    def post(self, request, *args, **kwargs):
        serializer = ReportCreateSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        duplicate = Report.objects.filter(
            reporter=request.user, target_type=data['target_type'], target_id=data['target_id']
        ).exists()
        if duplicate:
            return conflict_response('You have already reported this item.')

        try:
            with db_transaction.atomic():
                report = serializer.save(reporter=request.user)
        except IntegrityError:
            return conflict_response('You have already reported this item.')

        notify_admins(
            'New Report',
            f'{report.get_reason_display()} report on {report.target_type} #{report.target_id}',
            data={'report_id': report.id},
            action_url=f'/admin/reports/{report.id}',
            priority='high' if report.priority in ('high', 'critical') else 'normal',
            dedup_key=f'report:{report.id}',
        )

        logger.info(
            f"Report filed. Report ID: {report.id}, Target: {report.target_type} {report.target_id}, "
            f"Reporter: {request.user.email} (ID: {request.user.id}), IP: {self.get_client_ip(request)}"
        )

        return success_response(ReportSerializer(report).data, status_code=status.HTTP_201_CREATED)


class AdminReportListView(APIView):
    """GET /api/admin/reports/?status=&target_type=&limit=&offset=  (admins)"""
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get(self, request, *args, **kwargs):
        queryset = Report.objects.select_related('reporter', 'target_user').order_by('-created_at')

        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        target_type = request.query_params.get('target_type')
        if target_type:
            queryset = queryset.filter(target_type=target_type)

        paginator = EnvelopeLimitOffsetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        return paginator.get_paginated_response(ReportSerializer(page, many=True).data)


class AdminReportUpdateView(APIView):
    """
    PATCH /api/admin/reports/<id>/  (admins)
    Body: {"status": "resolved", "admin_notes": "Listing removed", "priority": "high"}
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def patch(self, request, pk, *args, **kwargs):
        serializer = ReportUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            report = Report.objects.select_related('reporter', 'target_user').get(pk=pk)
        except Report.DoesNotExist:
            return not_found_response('Report not found.')

        fields = ['status', 'updated_at']
        report.status = data['status']
        if 'admin_notes' in data:
            report.admin_notes = data['admin_notes']
            fields.append('admin_notes')
        if 'priority' in data:
            report.priority = data['priority']
            fields.append('priority')
        report.save(update_fields=fields)

        AdminAction.log(
            request.user,
            f'report_{report.status}',
            target=report,
            notes=data.get('admin_notes', ''),
        )

        return success_response(ReportSerializer(report).data)


class AdminUserListView(APIView):
    """
    GET /api/admin/users/?search=&role=&is_verified=&is_active=&limit=&offset=  (admins)

    ``search`` matches username, e-mail or display name.
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get(self, request, *args, **kwargs):
        queryset = User.objects.order_by('-created_at')

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(username__icontains=search) | Q(email__icontains=search) | Q(name__icontains=search)
            )

        role = request.query_params.get('role')
        if role:
            if role not in dict(User.ROLE_CHOICES):
                return validation_error_response(
                    "role must be 'user' or 'admin'.",
                    details={'role': ['Invalid role.']}
                )
            queryset = queryset.filter(role=role)

        is_verified = _query_bool(request, 'is_verified')
        if is_verified is not None:
            queryset = queryset.filter(is_verified=is_verified)

        is_active = _query_bool(request, 'is_active')
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)

        paginator = EnvelopeLimitOffsetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        return paginator.get_paginated_response(
            AdminUserSerializer(page, many=True, context={'request': request}).data
        )


def _load_user(pk):
    try:
        return User.objects.get(pk=pk)
    except User.DoesNotExist:
        return None


class AdminUserVerifyView(APIView):
    """POST /api/admin/users/<id>/verify/  (admins)"""
    permission_classes = [IsAuthenticated, IsAdminRole]

    def post(self, request, pk, *args, **kwargs):
        user = _load_user(pk)
        if user is None:
            return not_found_response('User not found.')

        if not user.is_verified:
            user.is_verified = True
            user.save(update_fields=['is_verified', 'updated_at'])
            AdminAction.log(request.user, 'user_verified', target=user)
            notify_account_verified(user)
            logger.info(f"User verified by admin. User ID: {user.id}, Admin ID: {request.user.id}")

        return success_response(UserProfileSerializer(user, context={'request': request}).data)


class AdminUserDisableView(APIView):
    """
    POST /api/admin/users/<id>/disable/  (admins)
    Body: {"reason": "..."} (optional)

    Deactivates the account, revokes its refresh tokens and hides its
    listings.
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def post(self, request, pk, *args, **kwargs):
        from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken

        user = _load_user(pk)
        if user is None:
            return not_found_response('User not found.')

        if user.id == request.user.id:
            return validation_error_response('You cannot disable your own account.')

        reason = str(request.data.get('reason', ''))[:500]

        with db_transaction.atomic():
            user.is_active = False
            user.save(update_fields=['is_active', 'updated_at'])

            for token in OutstandingToken.objects.filter(user=user):
                BlacklistedToken.objects.get_or_create(token=token)

            hidden = Listing.objects.filter(seller=user, is_active=True).update(
                is_active=False, updated_at=timezone.now()
            )

            AdminAction.log(request.user, 'user_disabled', target=user, notes=reason)

        logger.info(
            f"User disabled. User ID: {user.id}, Listings hidden: {hidden}, Admin ID: {request.user.id}"
        )
        return success_response({'id': user.id, 'is_active': False, 'listings_hidden': hidden})


class AdminListingUpdateView(APIView):
    """
    PATCH /api/admin/listings/<id>/  (admins)
    Body: {"is_active": false, "reason": "Prohibited item"}
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def patch(self, request, pk, *args, **kwargs):
        serializer = AdminListingUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        is_active = serializer.validated_data['is_active']
        reason = serializer.validated_data.get('reason', '')

        try:
            listing = Listing.objects.select_related('seller', 'category').get(pk=pk)
        except Listing.DoesNotExist:
            return not_found_response('Listing not found.')

        listing.set_active(is_active)
        AdminAction.log(
            request.user,
            'listing_activated' if is_active else 'listing_deactivated',
            target=listing,
            notes=reason,
        )

        if not is_active:
            create_notification(
                listing.seller,
                'admin',
                'Listing Removed',
                f'Your listing "{listing.title}" was removed by a moderator.'
                + (f' Reason: {reason}' if reason else ''),
                data={'listing_id': listing.id},
                priority='high',
                dedup_key=f'listing_removed:{listing.id}',
            )

        return success_response(ListingSerializer(listing).data)


class AdminAuditLogListView(APIView):
    """
    GET /api/admin/audit-logs/?admin=&action=&target_type=&target_id=&limit=&offset=  (admins)

    Newest entries first. ``target_id`` is only meaningful together with
    ``target_type``.
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get(self, request, *args, **kwargs):
        queryset = AdminAction.objects.select_related('admin').order_by('-created_at', '-id')

        admin_id = _query_int(request, 'admin')
        if admin_id is not None:
            queryset = queryset.filter(admin_id=admin_id)

        action = request.query_params.get('action')
        if action:
            queryset = queryset.filter(action=action)

        target_type = request.query_params.get('target_type')
        if target_type:
            queryset = queryset.filter(target_type=target_type)

        target_id = _query_int(request, 'target_id')
        if target_id is not None:
            queryset = queryset.filter(target_id=target_id)

        paginator = EnvelopeLimitOffsetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        return paginator.get_paginated_response(AdminActionSerializer(page, many=True).data)


# ============================================================================
# Operations
# ============================================================================

class CronCleanupView(APIView):
    """
    GET|POST /api/cron/cleanup/
    Headers: Authorization: Bearer <CRON_SECRET>

    Runs the expired-order sweep and the pickup auto-complete sweep.

    Success response (200):
    {"success": true, "data": {"cleaned": 2, "completed": 1, "timestamp": "..."}}
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def _authorized(self, request):
        secret = getattr(settings, 'CRON_SECRET', '')
        if not secret:
            return False
        header = request.META.get('HTTP_AUTHORIZATION', '')
        return hmac.compare_digest(header, f'Bearer {secret}')

    def get(self, request, *args, **kwargs):
        if not self._authorized(request):
            return unauthorized_response('Invalid cron secret.')

        cleaned = cleanup_expired_transactions()
        completed = auto_complete_transactions()

        return success_response({
            'cleaned': cleaned['cleaned'],
            'completed': completed['completed'],
            'timestamp': timezone.now().isoformat(),
        })

    def post(self, request, *args, **kwargs):
        return self.get(request, *args, **kwargs)


class HealthView(APIView):
    """GET /api/health/: database round-trip check."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, *args, **kwargs):
        from django.db import DatabaseError, connection

        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
                cursor.fetchone()
        except DatabaseError as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            return error_response('Database unavailable.', status.HTTP_503_SERVICE_UNAVAILABLE)

        return success_response({'status': 'ok', 'timestamp': timezone.now().isoformat()})
