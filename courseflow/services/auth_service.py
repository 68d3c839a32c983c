"""
Bearer token verification.

Tokens are issued by the identity provider; this service only checks the
signature and expiry and reads the caller's identity from the claims.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from courseflow.logger import logger
from courseflow.services.tree_store import is_valid_key

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 40320  # 28 days


class AuthService:
    """Verifies (and, for local tooling, signs) JWT access tokens."""

    def __init__(self, secret_key: Optional[str] = None, algorithm: str = ALGORITHM):
        """
        Initializes the AuthService.

        Args:
            secret_key: Shared signing secret; defaults to SECRET_KEY from the environment.
            algorithm: JWT signing algorithm.
        """
        self.secret_key = secret_key if secret_key is not None else os.environ.get("SECRET_KEY")
        self.algorithm = algorithm
        if not self.secret_key:
            logger.error("SECRET_KEY environment variable not set. All tokens will be rejected.")

    def create_access_token(
        self, data: Dict[str, Any], expires_delta: Optional[timedelta] = None
    ) -> str:
        """
        Creates a JWT access token.

        Args:
            data: The claims to encode (``sub`` is the user id).
            expires_delta: Token lifetime. Defaults to ACCESS_TOKEN_EXPIRE_MINUTES.

        Returns:
            The encoded token.
        """
        if not self.secret_key:
            raise ValueError("SECRET_KEY is not configured")
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verifies a JWT token and returns its payload if valid.

        Args:
            token: The JWT token string.

        Returns:
            The decoded payload of the token as a dictionary.

        Raises:
            ValueError: If the token is invalid or expired, or its ``sub`` claim
                is missing or cannot be used as a user key.
        """
        if not self.secret_key:
            raise ValueError("Token verification is not configured")
        try:
            payload: Dict[str, Any] = jwt.decode(
                token, self.secret_key, algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError as e:
            logger.info(f"Token expired: {e}")
            raise ValueError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            logger.info(f"Invalid token: {e}")
            raise ValueError(f"Invalid token: {e}") from e

        if not payload.get("sub"):
            raise ValueError("Invalid token: Missing 'sub' claim")
        if not is_valid_key(str(payload["sub"])):
            logger.warning(f"Rejected token with unusable subject {payload['sub']!r}")
            raise ValueError("Invalid token: 'sub' claim is not a valid user id")
        return payload
