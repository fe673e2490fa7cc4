"""
Token authentication for the API.

Kept apart from the login views so that DRF can import the
authentication class during initialisation without pulling in views.
JWT bearer tokens are handled by simplejwt's ``JWTAuthentication``,
configured next to this class in ``REST_FRAMEWORK``.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """Legacy ``Authorization: Token <key>`` header issued at login."""

    keyword = 'Token'
