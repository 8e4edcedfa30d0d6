"""
JWT access token creation and validation.

Tokens are issued by the identity provider in front of this API and only
verified here. create_access_token exists for operators and tests that need
to mint a token with the shared secret.

Access tokens contain:
- sub: User ID (string)
- email: User's email
- exp / iat: Expiration and issue timestamps
- type: "access"
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from repfi.config import settings
from repfi.services.exceptions import TokenExpiredError, InvalidCredentialsError


class JWTHandler:
    """Handles JWT access token creation and validation."""

    @staticmethod
    def create_access_token(
        user_id: str,
        email: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        """
        Create a new access token.

        Args:
            user_id: The user's database ID
            email: The user's email address
            expires_delta: Optional custom expiration time

        Returns:
            Encoded JWT string
        """
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

        now = datetime.now(timezone.utc)

        payload = {
            "sub": str(user_id),
            "email": email,
            "exp": now + expires_delta,
            "iat": now,
            "type": "access",
        }

        return jwt.encode(
            payload,
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )

    @staticmethod
    def validate_access_token(token: str) -> dict[str, Any]:
        """
        Validate an access token and return its payload.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidCredentialsError: If the token is invalid or malformed
        """
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Access token has expired")
        except JWTError as e:
            raise InvalidCredentialsError(f"Invalid token: {str(e)}")

        if payload.get("type") != "access":
            raise InvalidCredentialsError("Invalid token type")
        if not payload.get("sub"):
            raise InvalidCredentialsError("Token has no subject")

        return payload
