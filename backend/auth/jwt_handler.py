import jwt

from backend.core import config


def decode_access_token(token: str) -> dict:
    """Verify a token issued by the identity provider and return its claims."""
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
