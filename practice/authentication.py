"""
Bearer token authentication.

Subclass of simplejwt's ``JWTAuthentication`` kept in its own module so the
settings have a stable import path and views never import it directly,
which would create import cycles while DRF initialises.
"""
from __future__ import annotations

from rest_framework_simplejwt import authentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed


class JWTAuthentication(authentication.JWTAuthentication):
    """``Authorization: Bearer <access>``.  Inactive accounts are refused."""

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        if not user.is_active:
            raise AuthenticationFailed('User account is deactivated', code='user_inactive')
        return user
