# services/journal/intel/auth.py
"""Request authentication for the journal service.

Identity is established upstream. Two ways in:

1. Gateway proxy headers (primary): the gateway validates the session and
   forwards X-User-Id / X-User-Email / X-User-Name.
2. Bearer token: an app session JWT signed with APP_SESSION_SECRET (HS256)
   whose payload carries the user id:

   {
       "id": "user id",
       "email": "user@example.com",
       "name": "Display Name",
       "iat": 1234567890,
       "exp": 1234567890
   }

Users seen for the first time are created with the default initial balance.
"""

import jwt
from typing import Optional, Dict, Any
from functools import wraps
from aiohttp import web

from .db import JournalDB
from .models import User


class JournalAuth:
    """Resolves the journal user behind a request."""

    def __init__(self, config: Dict[str, Any], db: JournalDB):
        self.app_session_secret = config.get('APP_SESSION_SECRET', '')
        self.db = db

    def decode_app_session(self, token: str) -> Optional[Dict[str, Any]]:
        """Decode and validate an app session JWT. None if invalid or expired."""
        if not token or not self.app_session_secret:
            return None

        try:
            return jwt.decode(
                token,
                self.app_session_secret,
                algorithms=['HS256']
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    def extract_token(self, request: web.Request) -> Optional[str]:
        """Bearer token from the Authorization header, bare tokens accepted."""
        auth_header = request.headers.get('Authorization', '').strip()
        if not auth_header:
            return None
        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None
        return auth_header

    def get_user_from_proxy_headers(self, request: web.Request) -> Optional[User]:
        user_id = request.headers.get('X-User-Id', '').strip()
        if not user_id:
            return None

        return self.db.ensure_user(
            user_id,
            email=request.headers.get('X-User-Email', '').strip() or None,
            name=request.headers.get('X-User-Name', '').strip() or None,
        )

    def get_user_from_token(self, request: web.Request) -> Optional[User]:
        payload = self.decode_app_session(self.extract_token(request))
        if not payload:
            return None

        user_id = str(payload.get('id') or '').strip()
        if not user_id:
            return None

        return self.db.ensure_user(user_id, email=payload.get('email'), name=payload.get('name'))

    async def get_request_user(self, request: web.Request) -> Optional[User]:
        """Gateway headers first, then the bearer token."""
        return self.get_user_from_proxy_headers(request) or self.get_user_from_token(request)


def require_auth(handler):
    """
    Decorator to require authentication on a route handler.

    Adds request['user'] with the authenticated user.
    Returns 401 if not authenticated, 500 if the user store is unreachable.
    """
    @wraps(handler)
    async def wrapper(self, request: web.Request) -> web.Response:
        try:
            user = await self.auth.get_request_user(request)
        except Exception as e:
            self.logger.error(f"auth lookup error: {e}")
            return self._error_response('Server error', 500, request)

        if not user:
            return self._error_response('Authentication required', 401, request)

        request['user'] = user
        return await handler(self, request)

    return wrapper
