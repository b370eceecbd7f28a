# backend/app/services/auth/__init__.py
"""
Caller identification.

Credentials, sessions and token issuance live in the authentication
service. This package only verifies the bearer tokens it issues.

Usage:
    from app.services.auth import JWTHandler

    claims = JWTHandler.validate_access_token(token)
"""

from app.services.auth.jwt_handler import AccessTokenClaims, JWTHandler

__all__ = [
    "AccessTokenClaims",
    "JWTHandler",
]
