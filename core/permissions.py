"""
Custom permission classes for the Campus Marketplace.
"""

from rest_framework import permissions


class IsAdminRole(permissions.BasePermission):
    """
    Allows access only to administrators (role 'admin', staff or superuser).

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsAdminRole]
    """

    message = 'Admin access required'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_admin()


class IsVerifiedUser(permissions.BasePermission):
    """
    Allows access only to users whose e-mail address has been verified.

    Administrators always pass.
    """

    message = 'Email verification required'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        if request.user.is_admin():
            return True

        return bool(getattr(request.user, 'is_verified', False))
