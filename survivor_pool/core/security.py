from jose import jwt

from survivor_pool.core.config import get_settings


def decode_access_token(token: str) -> dict:
    """
    Verify a bearer token from the auth service. The player id is in "sub".
    Raises jose.JWTError on a bad signature or an expired token.
    """
    settings = get_settings()
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
