"""
Authentication services.

Usage:
    from repfi.services.auth import JWTHandler

    payload = JWTHandler.validate_access_token(token)
"""

from repfi.services.auth.jwt_handler import JWTHandler

__all__ = [
    "JWTHandler",
]
