"""Authentication module using signed bearer tokens.

This module provides:
1. Token issuing for a principal identity (done out of band by an operator)
2. Token verification yielding the caller identity for market operations
3. A FastAPI dependency for protecting routes
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

# Configure logging
logger = logging.getLogger(__name__)

# Constants
SESSION_EXPIRY_DAYS = 30
JWT_ALGORITHM = "HS256"

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class SessionExpiredError(AuthError):
    """Raised when a token has expired."""
    pass

class InvalidTokenError(AuthError):
    """Raised when a token cannot be decoded or lacks a subject."""
    pass

class TokenManager:
    """Issues and verifies bearer tokens."""

    def __init__(self, secret: str, expiry_days: int = SESSION_EXPIRY_DAYS):
        """Initialize token manager.

        Args:
            secret: HMAC secret shared by issuer and API
            expiry_days: Lifetime of issued tokens
        """
        if not secret:
            raise AuthError("A non-empty jwt_secret is required")
        self.secret = secret
        self.expiry_days = expiry_days

    def create_token(self, identity: str, now: Optional[datetime] = None) -> str:
        """Create a token that authenticates ``identity``.

        Args:
            identity: Principal identity (ledger address)
            now: Issue time, defaults to the current UTC time

        Returns:
            Encoded JWT
        """
        issued_at = now or datetime.now(timezone.utc)
        claims = {
            'sub': identity,
            'iat': int(issued_at.timestamp()),
            'exp': int((issued_at + timedelta(days=self.expiry_days)).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> str:
        """Verify a token and return the identity it authenticates.

        Raises:
            SessionExpiredError: If the token has expired
            InvalidTokenError: If the token is malformed or badly signed
        """
        try:
            claims = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except JWTError as e:
            logger.warning(f"Rejected token: {e}")
            raise InvalidTokenError("Invalid token")

        identity = claims.get('sub')
        if not identity:
            raise InvalidTokenError("Token has no subject")
        return identity

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=True,  # Return 401 automatically if token is missing
    description="JWT Bearer token required"
)

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)
) -> str:
    """FastAPI dependency for getting the authenticated caller identity.

    Args:
        request: The FastAPI request
        credentials: Bearer token credentials

    Returns:
        The authenticated identity

    Raises:
        HTTPException: If authentication fails
    """
    manager: TokenManager = request.app.state.token_manager
    try:
        return manager.verify_token(credentials.credentials)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired"
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

# Export public interface
__all__ = [
    'TokenManager',
    'auth_scheme',
    'get_current_user',
    'AuthError',
    'SessionExpiredError',
    'InvalidTokenError'
]
