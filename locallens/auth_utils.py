from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

from . import config
from .errors import AuthenticationError

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# pbkdf2_sha256 avoids the bcrypt backend incompatibilities of current passlib releases
password_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# ---------------------------
# Password Hashing
# ---------------------------
def hash_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return password_context.verify(plain_password, hashed_password)
    except ValueError:
        # Stored value is not a hash this context understands
        return False


# ---------------------------
# JWT Token Helpers
# ---------------------------
def _encode(user_id: int, token_type: str, expires: timedelta, secret: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + expires,
        "iss": config.JWT_ISSUER,
        "aud": config.JWT_AUDIENCE,
    }
    return jwt.encode(payload, secret, algorithm=config.JWT_ALGORITHM)


def _decode(token: str, secret: str) -> dict:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
            issuer=config.JWT_ISSUER,
        )
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED")
    except JWTError:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")


def _subject(payload: dict) -> int:
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")


def create_access_token(user_id: int, expires_minutes: int = None) -> str:
    minutes = config.ACCESS_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    return _encode(user_id, ACCESS_TOKEN_TYPE, timedelta(minutes=minutes), config.JWT_SECRET)


def create_refresh_token(user_id: int, expires_days: int = None) -> str:
    days = config.REFRESH_TOKEN_EXPIRE_DAYS if expires_days is None else expires_days
    return _encode(user_id, REFRESH_TOKEN_TYPE, timedelta(days=days), config.JWT_REFRESH_SECRET)


def decode_access_token(token: str) -> int:
    """Return the user id carried by an access token.

    Raises AuthenticationError with TOKEN_EXPIRED or INVALID_TOKEN. A refresh
    token is never accepted here, even when both secrets are the same.
    """
    payload = _decode(token, config.JWT_SECRET)
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")
    return _subject(payload)


def decode_refresh_token(token: str) -> int:
    payload = _decode(token, config.JWT_REFRESH_SECRET)
    if payload.get("type") != REFRESH_TOKEN_TYPE:
        raise AuthenticationError("Invalid token type", code="WRONG_TOKEN_TYPE")
    return _subject(payload)
