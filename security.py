import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt
from passlib.context import CryptContext

from config import Settings

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"

# Use pbkdf2_sha256 to avoid external bcrypt dependency issues
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class TokenInvalid(Exception):
    """Token is malformed, badly signed, expired, or of the wrong type."""


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password must not be blank")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def _encode(claims: Dict[str, Any], secret: str, expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    to_encode = dict(claims)
    to_encode.update({"iat": now, "exp": now + timedelta(minutes=max(1, int(expires_minutes)))})
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def create_access_token(settings: Settings, user: Dict[str, Any]) -> str:
    claims = {
        "sub": str(user["_id"]),
        "username": user.get("username"),
        "email": user.get("email"),
        "role": user.get("role", "user"),
        "type": ACCESS,
    }
    return _encode(claims, settings.access_token_secret, settings.access_token_expire_minutes)


def create_refresh_token(settings: Settings, user_id: Any) -> str:
    # jti keeps two tokens minted in the same second distinct
    claims = {"sub": str(user_id), "type": REFRESH, "jti": uuid.uuid4().hex}
    return _encode(claims, settings.refresh_token_secret, settings.refresh_token_expire_minutes)


def decode_token(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    if not token:
        raise TokenInvalid("token is blank")
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise TokenInvalid(str(exc)) from exc
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise TokenInvalid("unexpected token type")
    return payload
