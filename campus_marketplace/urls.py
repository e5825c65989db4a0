"""
URL configuration for the campus_marketplace project.
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenVerifyView

from core.views import (
    AdminAuditLogListView,
    AdminDisputeListView,
    AdminDisputeResolveView,
    AdminDisputeUpdateView,
    AdminListingUpdateView,
    AdminRefundView,
    AdminReportListView,
    AdminReportUpdateView,
    AdminUserDisableView,
    AdminUserListView,
    AdminUserVerifyView,
    CategoryListView,
    ChatListView,
    ChatStartView,
    CronCleanupView,
    CustomTokenRefreshView,
    DisputeListCreateView,
    GeneratePickupView,
    HealthView,
    ListingDetailView,
    ListingListCreateView,
    LoginView,
    LogoutView,
    MessageListCreateView,
    NotificationView,
    OfferCreateView,
    OfferUpdateView,
    PaymentVerifyView,
    PickupConfirmView,
    PickupGenerateView,
    PublicProfileView,
    RazorpayWebhookView,
    ReportCreateView,
    ReviewListCreateView,
    TransactionCancelView,
    TransactionDetailView,
    TransactionListCreateView,
    UserProfileView,
    UserRegistrationView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/login/', LoginView.as_view(), name='user_login'),
    path('api/auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('api/auth/logout/', LogoutView.as_view(), name='user_logout'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),

    # Profiles
    path('api/profile/', UserProfileView.as_view(), name='user_profile'),
    path('api/profile/<str:username>/', PublicProfileView.as_view(), name='public_profile'),

    # Catalogue
    path('api/categories/', CategoryListView.as_view(), name='category_list'),
    path('api/listings/', ListingListCreateView.as_view(), name='listing_list'),
    path('api/listings/<int:pk>/', ListingDetailView.as_view(), name='listing_detail'),

    # Chat and negotiation
    path('api/chats/', ChatListView.as_view(), name='chat_list'),
    path('api/chats/start/', ChatStartView.as_view(), name='chat_start'),
    path('api/messages/', MessageListCreateView.as_view(), name='message_list'),
    path('api/offers/', OfferCreateView.as_view(), name='offer_create'),
    path('api/offers/<int:pk>/', OfferUpdateView.as_view(), name='offer_update'),

    # Transactions and payments
    path('api/transactions/', TransactionListCreateView.as_view(), name='transaction_list'),
    path('api/transactions/<int:pk>/', TransactionDetailView.as_view(), name='transaction_detail'),
    path('api/transactions/<int:pk>/cancel/', TransactionCancelView.as_view(), name='transaction_cancel'),
    path('api/transactions/<int:pk>/generate-pickup/', GeneratePickupView.as_view(), name='transaction_generate_pickup'),
    path('api/transactions/<int:pk>/refund/', AdminRefundView.as_view(), name='transaction_refund'),
    path('api/payments/verify/', PaymentVerifyView.as_view(), name='payment_verify'),
    path('api/webhooks/razorpay/', RazorpayWebhookView.as_view(), name='razorpay_webhook'),

    # Pickups
    path('api/pickups/generate/', PickupGenerateView.as_view(), name='pickup_generate'),
    path('api/pickups/confirm/', PickupConfirmView.as_view(), name='pickup_confirm'),

    # Disputes
    path('api/disputes/', DisputeListCreateView.as_view(), name='dispute_list'),
    path('api/admin/disputes/', AdminDisputeListView.as_view(), name='admin_dispute_list'),
    path('api/admin/disputes/<int:pk>/', AdminDisputeUpdateView.as_view(), name='admin_dispute_update'),
    path('api/admin/disputes/<int:pk>/resolve/', AdminDisputeResolveView.as_view(), name='admin_dispute_resolve'),

    # Reviews and notifications
    path('api/reviews/', ReviewListCreateView.as_view(), name='review_list'),
    path('api/notifications/', NotificationView.as_view(), name='notifications'),

    # Reports and moderation
    path('api/reports/', ReportCreateView.as_view(), name='report_create'),
    path('api/admin/reports/', AdminReportListView.as_view(), name='admin_report_list'),
    path('api/admin/reports/<int:pk>/', AdminReportUpdateView.as_view(), name='admin_report_update'),
    path('api/admin/users/', AdminUserListView.as_view(), name='admin_user_list'),
    path('api/admin/users/<int:pk>/verify/', AdminUserVerifyView.as_view(), name='admin_user_verify'),
    path('api/admin/users/<int:pk>/disable/', AdminUserDisableView.as_view(), name='admin_user_disable'),
    path('api/admin/listings/<int:pk>/', AdminListingUpdateView.as_view(), name='admin_listing_update'),
    path('api/admin/audit-logs/', AdminAuditLogListView.as_view(), name='admin_audit_log_list'),

    # Operations
    path('api/cron/cleanup/', CronCleanupView.as_view(), name='cron_cleanup'),
    path('api/health/', HealthView.as_view(), name='health'),
]
