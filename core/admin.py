"""
Django admin configuration for the Campus Marketplace models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

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
    User,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin with profile, role and rating fields.
    """

    list_display = [
        'email',
        'username',
        'name',
        'role',
        'is_verified',
        'rating_avg',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'role',
        'is_verified',
        'is_staff',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'name',
        'department',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Profile'), {
            'fields': (
                'name',
                'email',
                'phone_number',
                'department',
                'year',
                'bio',
                'avatar_url',
                'profile_image',
            )
        }),
        (_('Role & Verification'), {
            'fields': ('role', 'is_verified', 'rating_avg', 'rating_count')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
                'role',
            ),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login', 'date_joined', 'rating_avg', 'rating_count']

    date_hierarchy = 'created_at'

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:  # Editing an existing object
            return self.readonly_fields
        return []


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'parent', 'created_at']
    list_filter = ['parent']
    search_fields = ['name']
    ordering = ['name']


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    """Admin interface for Listing model."""

    list_display = [
        'title',
        'seller',
        'price',
        'listing_type',
        'category',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'is_active',
        'listing_type',
        'category',
        'created_at',
    ]

    search_fields = [
        'title',
        'description',
        'seller__email',
        'seller__username',
    ]

    readonly_fields = ['created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('seller', 'title', 'description', 'images')
        }),
        (_('Pricing & Details'), {
            'fields': ('price', 'listing_type', 'category', 'is_active')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    fields = ['sender', 'text', 'read_status', 'created_at']
    readonly_fields = ['created_at']


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    list_display = ['id', 'listing', 'buyer', 'seller', 'updated_at']
    search_fields = ['listing__title', 'buyer__email', 'seller__email']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [MessageInline]


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    list_display = ['id', 'chat', 'proposer', 'price', 'status', 'expires_at']
    list_filter = ['status']


class PickupInline(admin.StackedInline):
    model = Pickup
    extra = 0
    fields = ['pickup_code', 'status', 'confirmed_at']
    readonly_fields = ['pickup_code', 'confirmed_at']


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Admin interface for Transaction model."""

    list_display = [
        'id',
        'buyer',
        'seller',
        'listing',
        'amount',
        'status',
        'created_at',
        'paid_at',
    ]

    list_filter = [
        'status',
        'created_at',
        'paid_at',
    ]

    search_fields = [
        'buyer__email',
        'seller__email',
        'listing__title',
        'gateway_order_id',
        'gateway_payment_id',
    ]

    readonly_fields = [
        'gateway_order_id',
        'gateway_payment_id',
        'refund_id',
        'refunded_amount',
        'paid_at',
        'created_at',
        'updated_at',
    ]

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [PickupInline]

    fieldsets = (
        (None, {
            'fields': ('buyer', 'seller', 'listing', 'amount', 'status')
        }),
        (_('Payment Gateway'), {
            'fields': ('gateway_order_id', 'gateway_payment_id', 'paid_at', 'refund_id', 'refunded_amount')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ['id', 'transaction', 'reporter', 'reason', 'status', 'priority', 'created_at']
    list_filter = ['status', 'priority', 'reason']
    search_fields = ['subject', 'description', 'reporter__email']
    readonly_fields = ['created_at', 'updated_at', 'resolved_at', 'resolved_by', 'refund_amount']
    ordering = ['-created_at']


@admin.register(AdminAction)
class AdminActionAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'admin', 'action', 'target_type', 'target_id', 'dispute']
    list_filter = ['action', 'target_type']
    search_fields = ['admin__email', 'notes']
    readonly_fields = ['admin', 'dispute', 'target_type', 'target_id', 'action', 'notes', 'created_at']


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """Admin interface for Review model."""

    list_display = [
        'id',
        'reviewer',
        'reviewee',
        'transaction',
        'rating',
        'created_at',
    ]

    list_filter = [
        'rating',
        'created_at',
    ]

    search_fields = [
        'reviewer__email',
        'reviewee__email',
        'comment',
    ]

    readonly_fields = ['created_at']

    ordering = ['-created_at']

    list_per_page = 25


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['user', 'notification_type', 'title', 'priority', 'is_read', 'created_at']
    list_filter = ['notification_type', 'priority', 'is_read']
    search_fields = ['user__email', 'title']


@admin.register(Report)
class ReportAdmin(admin.ModelAdmin):
    list_display = ['id', 'reporter', 'target_type', 'target_id', 'reason', 'priority', 'status', 'created_at']
    list_filter = ['status', 'priority', 'target_type', 'reason']
    search_fields = ['reporter__email', 'description']
