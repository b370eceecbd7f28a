# backend/app/services/auth/jwt_handler.py
"""
Bearer token verification.

Tokens are issued by the authentication service; this module only
verifies them and extracts the caller's identity. Nothing here creates
or stores tokens.

Expected claims:
- sub: User ID (string)
- email: User's email (informational)
- exp: Expiration timestamp
- type: "access"
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.services.exceptions import InvalidTokenError, TokenExpiredError


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: int
    email: str | None
    expires_at: datetime | None


class JWTHandler:
    """Verifies access tokens signed with JWT_SECRET_KEY / JWT_ALGORITHM."""

    @staticmethod
    def validate_access_token(token: str) -> AccessTokenClaims:
        """
        Verify signature, expiry and token type.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidTokenError: If the token is invalid, malformed or not an access token

        Example:
            claims = JWTHandler.validate_access_token(token)
            user = db.get(User, claims.user_id)
        """
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
            )
        except ExpiredSignatureError:
            raise TokenExpiredError("Access token has expired")
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

        if payload.get("type") != "access":
            raise InvalidTokenError("Invalid token type")

        try:
            user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise InvalidTokenError("Token has no valid subject")

        exp = payload.get("exp")
        return AccessTokenClaims(
            user_id=user_id,
            email=payload.get("email"),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
        )
