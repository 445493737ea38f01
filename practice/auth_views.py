"""
Authentication views.

Register, login, token refresh/logout and the current user's profile.
Kept apart from ``practice.authentication`` so DRF can import the
authentication class without pulling in the views.
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate
from django.contrib.auth.models import update_last_login
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from practice.exceptions import Conflict
from practice.models import User, UserClinic
from practice.responses import created, ok
from practice.serializers.auth import ChangePasswordSerializer, LoginSerializer, RegisterSerializer, UserSerializer
from practice.serializers.clinic import MembershipSerializer
from practice.services.audit import log_action

logger = logging.getLogger(__name__)


class LoginRateThrottle(AnonRateThrottle):
    scope = 'login'


def token_pair(user: User, membership: UserClinic | None = None) -> dict:
    refresh = RefreshToken.for_user(user)
    refresh['role'] = user.role
    if membership is not None:
        refresh['clinic_id'] = str(membership.clinic_id)
        refresh['clinic_role'] = membership.role
    access = refresh.access_token
    return {'access': str(access), 'refresh': str(refresh)}


def user_memberships(user: User):
    return UserClinic.objects.filter(user=user, is_active=True, clinic__is_active=True).select_related('clinic')


@api_view(['POST'])
@permission_classes([AllowAny])
def register_view(request):
    s = RegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if User.objects.filter(email=vd['email']).exists():
        raise Conflict('User already exists with this email.')
    user = User.objects.create_user(
        email=vd['email'],
        password=vd['password'],
        first_name=vd['first_name'],
        last_name=vd['last_name'],
        role=vd['role'],
        phone=vd.get('phone', ''),
    )
    log_action(user=user, action='register', object_type='user', object_id=user.pk)
    logger.info('Registered user %s role=%s', user.pk, user.role)
    return created(
        {'user': UserSerializer(user).data, **token_pair(user)},
        message='User registered successfully',
    )


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def login_view(request):
    """E-mail/password login.  Returns a token pair and the user's clinics."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    email = s.validated_data['email']

    user = authenticate(request, email=email, password=s.validated_data['password'])
    if user is None:
        inactive = User.objects.filter(email=email, is_active=False).exists()
        log_action(user=None, action='login', object_type='user',
                   detail={'result': 'fail', 'email': email, 'ip': request.META.get('REMOTE_ADDR')})
        message = 'Account is deactivated' if inactive else 'Invalid credentials'
        return Response({'success': False, 'message': message, 'code': 'INVALID_CREDENTIALS'},
                        status=status.HTTP_401_UNAUTHORIZED)

    log_action(user=user, action='login', object_type='user', object_id=user.pk,
               detail={'result': 'ok', 'ip': request.META.get('REMOTE_ADDR')})
    update_last_login(None, user)

    memberships = user_memberships(user)
    return ok({
        'user': UserSerializer(user).data,
        'clinics': MembershipSerializer(memberships, many=True).data,
        **token_pair(user),
    }, message='Login successful')


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_view(request):
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as e:
        return Response({'success': False, 'message': str(e), 'code': 'TOKEN_INVALID'},
                        status=status.HTTP_401_UNAUTHORIZED)
    return ok(s.validated_data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """Blacklist the given refresh token, or all of the user's tokens."""
    refresh = request.data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
            count = 1
        except TokenError:
            logger.info('Logout with invalid refresh token user=%s', request.user.pk)
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, was_created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(was_created)
    return ok({'blacklisted': count}, message='Logged out')


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def me_view(request):
    if request.method == 'GET':
        return ok({
            'user': UserSerializer(request.user).data,
            'clinics': MembershipSerializer(user_memberships(request.user), many=True).data,
        })
    s = UserSerializer(request.user, data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    s.save()
    return ok({'user': s.data}, message='Profile updated')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    s = ChangePasswordSerializer(data=request.data, context={'request': request})
    s.is_valid(raise_exception=True)
    user = request.user
    if not user.check_password(s.validated_data['current_password']):
        return Response({'success': False, 'message': 'Current password is incorrect', 'code': 'INVALID_PASSWORD'},
                        status=status.HTTP_400_BAD_REQUEST)
    user.set_password(s.validated_data['new_password'])
    user.save(update_fields=['password'])
    log_action(user=user, action='change_password', object_type='user', object_id=user.pk)
    return ok(message='Password changed successfully')
