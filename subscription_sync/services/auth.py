"""Bearer token verification for user-facing endpoints."""

import threading
from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt

from subscription_sync.config import get_config
from subscription_sync.errors import NotConfigured, Unauthenticated
from subscription_sync.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Principal:
    """Authenticated caller."""

    profile_id: str  # Token subject
    email: Optional[str] = None


class TokenVerifier:
    """Verifies HS256 tokens issued by the auth provider."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", audience: Optional[str] = None):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._audience = audience

    def verify(self, token: Optional[str]) -> Principal:
        """Decode and validate a token.

        Args:
            token: Raw JWT, without the "Bearer " prefix

        Returns:
            Principal for the token subject

        Raises:
            Unauthenticated: If the token is missing, expired, tampered with or has no subject
        """
        if not token:
            raise Unauthenticated()

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except JWTError as e:
            logger.info("token_rejected", reason=type(e).__name__)
            raise Unauthenticated() from e

        subject = payload.get("sub")
        if not subject:
            logger.info("token_rejected", reason="missing_sub")
            raise Unauthenticated()

        return Principal(profile_id=subject, email=payload.get("email"))


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an Authorization header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# Global verifier instance
_verifier_instance: Optional[TokenVerifier] = None
_verifier_lock = threading.Lock()


def get_token_verifier() -> TokenVerifier:
    """Get global token verifier (singleton).

    Raises:
        NotConfigured: If AUTH_JWT_SECRET is not set
    """
    global _verifier_instance
    if _verifier_instance is None:
        with _verifier_lock:
            if _verifier_instance is None:
                config = get_config()
                if not config.auth_jwt_secret:
                    logger.error("auth_not_configured", missing="AUTH_JWT_SECRET")
                    raise NotConfigured("Authentication is not configured")
                _verifier_instance = TokenVerifier(
                    secret_key=config.auth_jwt_secret,
                    algorithm=config.auth.jwt_algorithm,
                    audience=config.auth.jwt_audience,
                )
    return _verifier_instance


def reset_token_verifier() -> None:
    global _verifier_instance
    with _verifier_lock:
        _verifier_instance = None
