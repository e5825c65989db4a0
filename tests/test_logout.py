"""
Logout Tests

Logging out blacklists the refresh token so it can no longer be refreshed.
"""

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken
from rest_framework_simplejwt.tokens import RefreshToken


@pytest.fixture
def student_user(make_user):
    return make_user('logout_student', email='logout@iitb.ac.in')


@pytest.fixture
def valid_tokens(student_user):
    refresh = RefreshToken.for_user(student_user)
    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }


# ============================================================================
# 1. SUCCESSFUL LOGOUT TESTS
# ============================================================================

@pytest.mark.django_db
class TestSuccessfulLogout:

    def test_logout_with_valid_refresh_token_succeeds(self, api_client, valid_tokens):
        url = reverse('user_logout')
        response = api_client.post(url, {'refresh': valid_tokens['refresh']}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['success'] is True
        assert response.data['data']['message'] == 'Logged out successfully.'

    def test_logout_blacklists_token(self, api_client, valid_tokens):
        api_client.post(reverse('user_logout'), {'refresh': valid_tokens['refresh']}, format='json')

        assert BlacklistedToken.objects.filter(token__token=valid_tokens['refresh']).exists()

    def test_refresh_fails_after_logout(self, api_client, valid_tokens):
        api_client.post(reverse('user_logout'), {'refresh': valid_tokens['refresh']}, format='json')

        response = api_client.post(reverse('token_refresh'), {'refresh': valid_tokens['refresh']}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# ============================================================================
# 2. FAILED LOGOUT TESTS
# ============================================================================

@pytest.mark.django_db
class TestFailedLogout:

    def test_logout_twice_is_rejected(self, api_client, valid_tokens):
        url = reverse('user_logout')
        api_client.post(url, {'refresh': valid_tokens['refresh']}, format='json')

        response = api_client.post(url, {'refresh': valid_tokens['refresh']}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_logout_without_token_is_validation_error(self, api_client):
        response = api_client.post(reverse('user_logout'), {}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_logout_with_invalid_token(self, api_client):
        response = api_client.post(reverse('user_logout'), {'refresh': 'invalid'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['error']['code'] == 'UNAUTHORIZED'
