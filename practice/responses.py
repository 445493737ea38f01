from rest_framework import status as http_status
from rest_framework.response import Response


def ok(data=None, *, message=None, status=http_status.HTTP_200_OK, **extra) -> Response:
    """Success envelope: ``{"success": true, "data": ...}``."""
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    body.update(extra)
    return Response(body, status=status)


def created(data=None, *, message=None, **extra) -> Response:
    return ok(data, message=message, status=http_status.HTTP_201_CREATED, **extra)
