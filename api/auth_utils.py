"""
Authentication Utilities for JWT Token Validation
Ensures that:
1. JWT token is valid
2. User still exists in database
3. User has correct permissions
"""
import datetime
import logging
from functools import wraps

import jwt
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

from .db import get_db, to_object_id

logger = logging.getLogger(__name__)


class AuthError(Exception):
    def __init__(self, message, code, http_status=status.HTTP_401_UNAUTHORIZED):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status


def issue_token(user):
    """Signed session token carrying the caller's id, role and email."""
    issued = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "id": str(user['_id']),
        "role": user.get('role'),
        "email": user.get('email'),
        "iat": issued,
        "exp": issued + datetime.timedelta(days=settings.JWT_EXPIRY_DAYS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _resolve_caller(request):
    """Return the user document behind the request's bearer token, or None if no token."""
    auth_header = request.headers.get('Authorization')
    if not auth_header or not auth_header.startswith('Bearer '):
        return None

    token = auth_header.split(' ', 1)[1]
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired", "TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token", "INVALID_TOKEN")

    user_id = payload.get('id')
    if not user_id:
        raise AuthError("Invalid token payload", "INVALID_PAYLOAD")

    oid = to_object_id(user_id)
    if oid is None:
        raise AuthError("Invalid user identifier", "INVALID_USER_ID")

    user = get_db().users.find_one({"_id": oid})
    if not user:
        raise AuthError("User no longer exists", "USER_NOT_FOUND")
    return user


def _attach(request, user):
    # Role is read from the stored user so admin role changes apply at once
    request.user_id = str(user['_id']) if user else None
    request.user_role = user.get('role') if user else None
    request.user_data = user


def authenticate_request(view_func):
    """
    Decorator to validate JWT token and verify user exists in database.
    Extracts user info and injects it into request.

    Usage:
        @authenticate_request
        def get(self, request):
            user_id = request.user_id  # Validated user ID
            user_role = request.user_role  # donor/recipient/hospital/admin
    """
    @wraps(view_func)
    def wrapper(self, request, *args, **kwargs):
        try:
            user = _resolve_caller(request)
        except AuthError as e:
            return Response({"error": e.message, "code": e.code}, status=e.http_status)

        if user is None:
            return Response(
                {"error": "Authorization token required", "code": "AUTH_REQUIRED"},
                status=status.HTTP_401_UNAUTHORIZED
            )

        _attach(request, user)
        return view_func(self, request, *args, **kwargs)

    return wrapper


def optional_authentication(view_func):
    """Like authenticate_request, but anonymous callers pass through with user_id None."""
    @wraps(view_func)
    def wrapper(self, request, *args, **kwargs):
        try:
            user = _resolve_caller(request)
        except AuthError as e:
            logger.info("Ignoring bad token on public endpoint: %s", e.code)
            user = None
        _attach(request, user)
        return view_func(self, request, *args, **kwargs)

    return wrapper


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific user roles.
    Must be used AFTER @authenticate_request.

    Usage:
        @authenticate_request
        @require_role('admin')
        def post(self, request):
            # Only admins can access
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            user_role = getattr(request, 'user_role', None)

            if not user_role:
                return Response(
                    {"error": "Authentication required", "code": "AUTH_REQUIRED"},
                    status=status.HTTP_401_UNAUTHORIZED
                )

            if user_role not in allowed_roles:
                return Response(
                    {"error": "Insufficient permissions", "code": "FORBIDDEN"},
                    status=status.HTTP_403_FORBIDDEN
                )

            return view_func(self, request, *args, **kwargs)
        return wrapper
    return decorator


def linked_bank_ids(user):
    """Blood bank ids a hospital account manages (new list field, else the legacy single id)."""
    if not user:
        return []
    ids = [str(i) for i in (user.get('hospitalIds') or []) if i]
    if not ids and user.get('hospitalId'):
        ids = [str(user['hospitalId'])]
    return ids
