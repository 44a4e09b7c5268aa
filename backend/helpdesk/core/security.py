"""Security utilities - JWT codec, password hashing, secure tokens"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List
from jose import JWTError, jwt
import bcrypt
import hashlib
import secrets
import string

from helpdesk.config import settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

MIN_PASSWORD_LENGTH = 8


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    if not hashed_password:
        return False
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


def validate_password_strength(password: str) -> List[str]:
    """
    Check a candidate password against the strength policy

    Returns:
        List[str]: Human readable problems, empty when the password is acceptable
    """
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not any(c.islower() for c in password):
        problems.append("Password must contain a lowercase letter")
    if not any(c.isupper() for c in password):
        problems.append("Password must contain an uppercase letter")
    if not any(c.isdigit() for c in password):
        problems.append("Password must contain a digit")
    if not any(c in string.punctuation for c in password):
        problems.append("Password must contain a special character")
    return problems


def generate_secure_token() -> str:
    """Random single-use token for verification and reset links"""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """SHA-256 digest used to index refresh tokens without storing them raw"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _encode(claims: Dict[str, Any], token_type: str, key: str, expires_delta: timedelta) -> str:
    now = utcnow()
    to_encode = {
        "sub": str(claims["sub"]),
        "email": claims.get("email"),
        "role": claims.get("role"),
        "device_id": claims.get("device_id") or "unknown",
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
        "jti": secrets.token_urlsafe(16),  # Unique token ID
    }
    return jwt.encode(to_encode, key, algorithm=settings.ALGORITHM)


def _decode(token: str, token_type: str, key: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, key, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    # A validly signed token of the other kind must never be accepted here.
    if payload.get("type") != token_type:
        return None
    if not payload.get("sub"):
        return None
    return payload


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create JWT access token

    Args:
        claims: sub (user id), email, role, device_id
        expires_delta: Token lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        str: Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(claims, ACCESS_TOKEN_TYPE, settings.SECRET_KEY, expires_delta)


def create_refresh_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create JWT refresh token, signed with the refresh-only key

    Args:
        claims: sub (user id), email, role, device_id
        expires_delta: Token lifetime, defaults to REFRESH_TOKEN_EXPIRE_DAYS

    Returns:
        str: Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode(claims, REFRESH_TOKEN_TYPE, settings.REFRESH_SECRET_KEY, expires_delta)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify an access token

    Returns:
        Optional[Dict]: Claims, or None if invalid, expired or not an access token
    """
    return _decode(token, ACCESS_TOKEN_TYPE, settings.SECRET_KEY)


def decode_refresh_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a refresh token

    Returns:
        Optional[Dict]: Claims, or None if invalid, expired or not a refresh token
    """
    return _decode(token, REFRESH_TOKEN_TYPE, settings.REFRESH_SECRET_KEY)


def peek_token_claims(token: str) -> Optional[Dict[str, Any]]:
    """Read claims WITHOUT verifying the signature. Diagnostics only."""
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def get_token_expiration(token: str) -> Optional[datetime]:
    claims = peek_token_claims(token)
    if not claims or not claims.get("exp"):
        return None
    return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc).replace(tzinfo=None)


def is_token_expired(token: str) -> bool:
    expiration = get_token_expiration(token)
    if expiration is None:
        return True
    return utcnow() > expiration
