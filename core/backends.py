"""
Authentication backend that identifies accounts by e-mail address.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend


class EmailBackend(ModelBackend):
    """
    Log in with e-mail and password.

    Used by the Django admin login form and ``authenticate()`` calls. The
    username argument carries the e-mail for compatibility with the admin
    form; an explicit ``email`` keyword takes precedence.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        User = get_user_model()
        email = kwargs.get('email') or username

        if not email or password is None:
            return None

        try:
            user = User.objects.get(email__iexact=email.strip())
        except User.DoesNotExist:
            # Run the hasher once so response time does not reveal whether the account exists
            User().set_password(password)
            return None
        except User.MultipleObjectsReturned:
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None
