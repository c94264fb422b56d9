"""Request authentication and role checks.

Access tokens are accepted from the `accessToken` cookie (set by login and
refresh) or from an `Authorization: Bearer <token>` header. Every failure
answers 401 with the same message so callers cannot tell which check failed.
"""
import logging
from typing import Optional

from bson.objectid import ObjectId
from fastapi import Cookie, Depends, Header

from context import AppContext, get_context
from database import PUBLIC_USER_PROJECTION
from errors import Forbidden, Unauthenticated
from security import ACCESS, TokenInvalid, decode_token

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def extract_token(access_cookie: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if access_cookie:
        return access_cookie
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


def get_current_user(
    context: AppContext = Depends(get_context),
    access_token: Optional[str] = Cookie(None, alias=ACCESS_COOKIE),
    authorization: Optional[str] = Header(None),
) -> dict:
    token = extract_token(access_token, authorization)
    if not token:
        raise Unauthenticated()
    try:
        payload = decode_token(token, context.settings.access_token_secret, ACCESS)
    except TokenInvalid as exc:
        logger.debug("Rejected access token: %s", exc)
        raise Unauthenticated()

    sub = payload["sub"]
    if not ObjectId.is_valid(sub):
        raise Unauthenticated()
    user = context.db["user"].find_one({"_id": ObjectId(sub)}, PUBLIC_USER_PROJECTION)
    if user is None:
        raise Unauthenticated()
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise Forbidden()
    return user
