"""
JWT token verification.

Tokens are minted by the group's identity provider; this service only
checks the signature and reads the actor claims.
"""

from typing import Optional, Dict, Any
from jose import JWTError, jwt
from vikoba.app.core.config import settings


def decode_access_token(token: str, secret_key: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Args:
        token: JWT token string to decode
        secret_key: Override for the configured signing key

    Returns:
        Decoded payload if valid (sub, name, role, group, exp), None otherwise

    Example payload:
        {
            "sub": "member-17",
            "name": "Asha Mwita",
            "role": "Admin",
            "group": "SBK",
            "exp": 1234567890
        }
    """
    try:
        return jwt.decode(token, secret_key or settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
