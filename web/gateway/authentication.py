"""Bearer token authentication for the API.

Access tokens are issued by the external auth service as HS256 JWTs with the
claims ``{"sub", "role", "exp", "type": "access"}``. The ``sub`` claim is
mapped to a local Django user (created on first sight) so orders can
reference their owner; ``role == "admin"`` grants staff access to the admin
endpoints.
"""

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework import authentication, exceptions


class BearerTokenAuthentication(authentication.BaseAuthentication):
    keyword = "bearer"

    def authenticate(self, request):
        header = authentication.get_authorization_header(request).decode("latin-1")
        if not header or not header.lower().startswith(f"{self.keyword} "):
            return None
        token = header.split(" ", 1)[1].strip()
        try:
            payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.PyJWTError:
            raise exceptions.AuthenticationFailed("Invalid token")
        if payload.get("type") != "access" or not payload.get("sub"):
            raise exceptions.AuthenticationFailed("Invalid access token")
        return self._user_for(payload), payload

    def _user_for(self, payload: dict):
        is_admin = payload.get("role") == "admin"
        user, created = get_user_model().objects.get_or_create(
            username=str(payload["sub"])[:150],
            defaults={"email": payload.get("email", ""), "is_staff": is_admin},
        )
        if not created and user.is_staff != is_admin:
            user.is_staff = is_admin
            user.save(update_fields=["is_staff"])
        if not user.is_active:
            raise exceptions.AuthenticationFailed("User inactive")
        return user

    def authenticate_header(self, request):
        return "Bearer"
