"""
Login Security Tests

Covers credential checks, token generation, generic error messages for
user enumeration protection and login rate limiting.
"""

import jwt
import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status

User = get_user_model()


@pytest.fixture
def active_student(make_user):
    return make_user('active_student', email='student@iitb.ac.in', password='SecurePass123!')


@pytest.fixture
def inactive_student(make_user):
    return make_user('inactive_student', email='inactive@iitb.ac.in', password='SecurePass123!', is_active=False)


# ============================================================================
# 1. SUCCESSFUL LOGIN TESTS
# ============================================================================

@pytest.mark.django_db
class TestSuccessfulLogin:

    def test_login_returns_token_pair_and_user(self, api_client, active_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': 'student@iitb.ac.in', 'password': 'SecurePass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['success'] is True
        data = response.data['data']
        assert data['access']
        assert data['refresh']
        assert data['user']['email'] == 'student@iitb.ac.in'
        assert 'password' not in data['user']

    def test_access_token_carries_user_id(self, api_client, active_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': 'student@iitb.ac.in', 'password': 'SecurePass123!'},
            format='json'
        )

        payload = jwt.decode(
            response.data['data']['access'],
            settings.SECRET_KEY,
            algorithms=['HS256']
        )
        assert str(payload['user_id']) == str(active_student.id)
        assert payload['token_type'] == 'access'

    def test_login_email_is_case_insensitive(self, api_client, active_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': 'STUDENT@IITB.AC.IN', 'password': 'SecurePass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK

    def test_access_token_authenticates_requests(self, api_client, active_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': 'student@iitb.ac.in', 'password': 'SecurePass123!'},
            format='json'
        )

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['data']['access']}")
        profile = api_client.get(reverse('user_profile'))

        assert profile.status_code == status.HTTP_200_OK
        assert profile.data['data']['username'] == 'active_student'


# ============================================================================
# 2. FAILED LOGIN TESTS
# ============================================================================

@pytest.mark.django_db
class TestFailedLogin:

    def test_wrong_password_returns_generic_error(self, api_client, active_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': 'student@iitb.ac.in', 'password': 'WrongPass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['success'] is False
        assert response.data['error']['code'] == 'UNAUTHORIZED'
        assert response.data['error']['message'] == 'Invalid credentials'

    def test_unknown_email_returns_same_error(self, api_client, active_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': 'nobody@iitb.ac.in', 'password': 'SecurePass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['error']['message'] == 'Invalid credentials'

    def test_inactive_account_cannot_login(self, api_client, inactive_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': 'inactive@iitb.ac.in', 'password': 'SecurePass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['error']['message'] == 'Invalid credentials'

    def test_missing_password_is_validation_error(self, api_client, active_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': 'student@iitb.ac.in'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['code'] == 'VALIDATION_ERROR'

    def test_sql_injection_in_email_is_rejected(self, api_client, active_student):
        response = api_client.post(
            reverse('user_login'),
            {'email': "student@iitb.ac.in' OR '1'='1", 'password': 'anything'},
            format='json'
        )

        assert response.status_code in (status.HTTP_400_BAD_REQUEST, status.HTTP_401_UNAUTHORIZED)
        assert 'access' not in str(response.data)


# ============================================================================
# 3. RATE LIMITING TESTS
# ============================================================================

@pytest.mark.django_db
class TestLoginRateLimiting:

    def test_sixth_attempt_within_a_minute_is_throttled(self, api_client, active_student):
        url = reverse('user_login')
        for _ in range(5):
            response = api_client.post(
                url, {'email': 'student@iitb.ac.in', 'password': 'WrongPass123!'}, format='json'
            )
            assert response.status_code == status.HTTP_401_UNAUTHORIZED

        response = api_client.post(
            url, {'email': 'student@iitb.ac.in', 'password': 'SecurePass123!'}, format='json'
        )

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.data['error']['code'] == 'RATE_LIMIT_EXCEEDED'
