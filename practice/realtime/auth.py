from urllib.parse import parse_qs

from asgiref.sync import sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken

from practice.authentication import JWTAuthentication


def user_for_token(raw: str):
    auth = JWTAuthentication()
    try:
        return auth.get_user(auth.get_validated_token(raw))
    except (InvalidToken, AuthenticationFailed):
        return AnonymousUser()


class JWTAuthMiddleware(BaseMiddleware):
    """Sets ``scope["user"]`` from a ``?token=<access>`` query parameter.

    Browsers cannot send an ``Authorization`` header on a WebSocket
    handshake; without a token the session user from the outer stack stays.
    """

    async def __call__(self, scope, receive, send):
        query = parse_qs(scope.get("query_string", b"").decode())
        token = (query.get("token") or [None])[0]
        if token:
            scope = dict(scope, user=await sync_to_async(user_for_token)(token))
        return await super().__call__(scope, receive, send)
