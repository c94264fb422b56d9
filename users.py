"""User accounts and the login / refresh / logout session lifecycle."""
import logging
from typing import Optional, Tuple

from bson.objectid import ObjectId
from fastapi import APIRouter, Cookie, Depends, status
from fastapi.responses import JSONResponse

from auth import ACCESS_COOKIE, REFRESH_COOKIE, get_current_user, require_admin
from config import Settings
from context import AppContext, get_context
from database import (
    PUBLIC_USER_PROJECTION,
    create_document,
    parse_object_id,
    public_user,
    utcnow,
)
from errors import BadRequest, Conflict, Forbidden, NotFound, Unauthenticated, api_response
from payload import Payload, read_payload, validate_model
from schemas import User as UserSchema
from security import (
    REFRESH,
    TokenInvalid,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

ROLES = ("admin", "user")


# =======
# Service
# =======

def _users(context: AppContext):
    return context.db["user"]


def _identity_taken(context: AppContext, username: Optional[str], email: Optional[str],
                    exclude_id: Optional[ObjectId] = None) -> bool:
    clauses = []
    if username:
        clauses.append({"username": username})
    if email:
        clauses.append({"email": email.lower()})
    if not clauses:
        return False
    query = {"$or": clauses}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return _users(context).find_one(query, {"_id": 1}) is not None


def get_user(context: AppContext, user_id: ObjectId) -> dict:
    user = _users(context).find_one({"_id": user_id}, PUBLIC_USER_PROJECTION)
    if user is None:
        raise NotFound("User not found")
    return user


def register_user(context: AppContext, payload: Payload) -> dict:
    username = payload.text("username")
    email = payload.text("email")
    password = payload.text("password")
    if not username or not email or not password:
        raise BadRequest("Username, email, and password are required")
    if _identity_taken(context, username, email):
        raise Conflict("User with this username or email already exists")

    # hashed here, at the call site, never by the storage layer
    user = validate_model(
        UserSchema,
        {"username": username, "email": email, "password": hash_password(password), "role": "user"},
    )
    avatar = payload.file("profile_image")
    if avatar is not None:
        user.profile_image = context.media.upload(avatar)

    try:
        doc = create_document(context.db, "user", user)
    except Exception:
        if avatar is not None:
            context.media.release(user.profile_image)
        raise
    logger.info("Registered user %s", doc["username"])
    return public_user(doc)


def authenticate(context: AppContext, username: Optional[str], email: Optional[str],
                 password: Optional[str]) -> dict:
    if (not username and not email) or not password:
        raise BadRequest("Username or email and password are required")
    clauses = []
    if username:
        clauses.append({"username": username})
    if email:
        clauses.append({"email": email.lower()})
    user = _users(context).find_one({"$or": clauses})
    if user is None or not verify_password(password, user.get("password", "")):
        logger.warning("Failed login for %s", username or email)
        raise Unauthenticated("Invalid username/email or password")
    return user


def issue_tokens(context: AppContext, user_id: ObjectId) -> Tuple[str, str]:
    """Mint an access/refresh pair; the refresh token replaces whatever was stored."""
    user = _users(context).find_one({"_id": user_id}, PUBLIC_USER_PROJECTION)
    if user is None:
        raise NotFound("User not found")
    access_token = create_access_token(context.settings, user)
    refresh_token = create_refresh_token(context.settings, user_id)
    _users(context).update_one(
        {"_id": user_id},
        {"$set": {"refresh_token": refresh_token, "updated_at": utcnow()}},
    )
    return access_token, refresh_token


def refresh_session(context: AppContext, incoming: Optional[str]) -> Tuple[str, str]:
    if not incoming:
        raise BadRequest("Refresh token is required")
    try:
        claims = decode_token(incoming, context.settings.refresh_token_secret, REFRESH)
    except TokenInvalid:
        raise Unauthenticated("Invalid refresh token")

    sub = claims["sub"]
    user = _users(context).find_one({"_id": ObjectId(sub)}) if ObjectId.is_valid(sub) else None
    # a superseded token no longer matches the stored one
    if user is None or user.get("refresh_token") != incoming:
        raise Unauthenticated("Invalid refresh token")
    return issue_tokens(context, user["_id"])


def logout(context: AppContext, user_id: ObjectId) -> None:
    _users(context).update_one(
        {"_id": user_id}, {"$set": {"refresh_token": "", "updated_at": utcnow()}}
    )


def change_password(context: AppContext, user_id: ObjectId, current: Optional[str],
                    new: Optional[str]) -> dict:
    if not current or not new:
        raise BadRequest("Current and new password are required")
    user = _users(context).find_one({"_id": user_id})
    if user is None:
        raise NotFound("User not found")
    if not verify_password(current, user.get("password", "")):
        raise Unauthenticated("Current password is incorrect")
    _users(context).update_one(
        {"_id": user_id},
        {"$set": {"password": hash_password(new), "updated_at": utcnow()}},
    )
    return get_user(context, user_id)


def update_user(context: AppContext, actor: dict, user_id: ObjectId, payload: Payload) -> dict:
    if actor["_id"] != user_id and actor.get("role") != "admin":
        raise Forbidden("You are not authorized to update this user")
    user = _users(context).find_one({"_id": user_id})
    if user is None:
        raise NotFound("User not found")

    username = payload.text("username")
    email = payload.text("email")
    if _identity_taken(context, username, email, exclude_id=user_id):
        raise Conflict("User with this username or email already exists")

    merged = validate_model(UserSchema, {
        "username": username or user["username"],
        "email": email or user["email"],
        "password": user["password"],
        "role": user.get("role", "user"),
    })
    update = {"username": merged.username, "email": merged.email}

    old_avatar = user.get("profile_image", "")
    avatar = payload.file("profile_image")
    if avatar is not None:
        update["profile_image"] = context.media.upload(avatar)

    update["updated_at"] = utcnow()
    try:
        _users(context).update_one({"_id": user_id}, {"$set": update})
    except Exception:
        if avatar is not None:
            context.media.release(update["profile_image"])
        raise
    if avatar is not None:
        context.media.release(old_avatar)
    return get_user(context, user_id)


def update_role(context: AppContext, user_id: ObjectId, role: Optional[str]) -> dict:
    if role not in ROLES:
        raise BadRequest('Role must be either "admin" or "user"')
    get_user(context, user_id)
    _users(context).update_one({"_id": user_id}, {"$set": {"role": role, "updated_at": utcnow()}})
    logger.info("User %s role set to %s", user_id, role)
    return get_user(context, user_id)


def delete_user(context: AppContext, user_id: ObjectId) -> dict:
    """Remove the account and its avatar. Portfolio sections are removed separately."""
    user = get_user(context, user_id)
    _users(context).delete_one({"_id": user_id})
    context.media.release(user.get("profile_image"))
    logger.info("Deleted user %s", user.get("username"))
    return user


def bootstrap_admin(context: AppContext) -> Optional[dict]:
    s = context.settings
    if not (s.admin_username and s.admin_email and s.admin_password):
        return None
    if _identity_taken(context, s.admin_username, s.admin_email):
        return None
    admin = UserSchema(
        username=s.admin_username,
        email=s.admin_email,
        password=hash_password(s.admin_password),
        role="admin",
    )
    doc = create_document(context.db, "user", admin)
    logger.info("Bootstrapped admin user %s", doc["username"])
    return public_user(doc)


# =======
# Cookies
# =======

def set_session_cookies(response: JSONResponse, settings: Settings, access_token: str,
                        refresh_token: str) -> None:
    options = {"httponly": True, "secure": settings.cookie_secure, "samesite": settings.cookie_samesite}
    response.set_cookie(ACCESS_COOKIE, access_token,
                        max_age=settings.access_token_expire_minutes * 60, **options)
    response.set_cookie(REFRESH_COOKIE, refresh_token,
                        max_age=settings.refresh_token_expire_minutes * 60, **options)


def clear_session_cookies(response: JSONResponse, settings: Settings) -> None:
    options = {"httponly": True, "secure": settings.cookie_secure, "samesite": settings.cookie_samesite}
    response.set_cookie(ACCESS_COOKIE, "", **options)
    response.set_cookie(REFRESH_COOKIE, "", **options)


# ======
# Routes
# ======

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register")
def register(payload: Payload = Depends(read_payload), context: AppContext = Depends(get_context)):
    user = register_user(context, payload)
    return api_response(status.HTTP_201_CREATED, "User registered successfully", {"user": user})


@router.post("/login")
def login(payload: Payload = Depends(read_payload), context: AppContext = Depends(get_context)):
    user = authenticate(context, payload.text("username"), payload.text("email"),
                        payload.text("password"))
    access_token, refresh_token = issue_tokens(context, user["_id"])
    data = {
        "user": public_user(get_user(context, user["_id"])),
        "access_token": access_token,
        "refresh_token": refresh_token,
    }
    response = api_response(status.HTTP_200_OK, "User logged in successfully", data)
    set_session_cookies(response, context.settings, access_token, refresh_token)
    return response


@router.post("/logout")
def logout_route(user: dict = Depends(get_current_user), context: AppContext = Depends(get_context)):
    logout(context, user["_id"])
    response = api_response(status.HTTP_200_OK, "User logged out successfully")
    clear_session_cookies(response, context.settings)
    return response


@router.post("/refresh-token")
def refresh_token_route(
    payload: Payload = Depends(read_payload),
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    context: AppContext = Depends(get_context),
):
    incoming = refresh_cookie or payload.text("refresh_token")
    access_token, refresh_token = refresh_session(context, incoming)
    data = {"access_token": access_token, "refresh_token": refresh_token}
    response = api_response(status.HTTP_200_OK, "Access token refreshed successfully", data)
    set_session_cookies(response, context.settings, access_token, refresh_token)
    return response


@router.get("/current-user")
def current_user(user: dict = Depends(get_current_user)):
    return api_response(status.HTTP_200_OK, "Current user retrieved successfully",
                        {"user": public_user(user)})


@router.patch("/change-password")
def change_password_route(
    payload: Payload = Depends(read_payload),
    user: dict = Depends(get_current_user),
    context: AppContext = Depends(get_context),
):
    updated = change_password(context, user["_id"], payload.text("current_password"),
                              payload.text("new_password"))
    return api_response(status.HTTP_200_OK, "Password updated successfully",
                        {"user": public_user(updated)})


@router.patch("/update/{user_id}")
def update_user_route(
    user_id: str,
    payload: Payload = Depends(read_payload),
    user: dict = Depends(get_current_user),
    context: AppContext = Depends(get_context),
):
    updated = update_user(context, user, parse_object_id(user_id, "userId"), payload)
    return api_response(status.HTTP_200_OK, "User updated successfully",
                        {"user": public_user(updated)})


@router.get("/retrieve")
def list_users(_: dict = Depends(require_admin), context: AppContext = Depends(get_context)):
    users = list(_users(context).find({}, PUBLIC_USER_PROJECTION))
    if not users:
        raise NotFound("No users found")
    return api_response(status.HTTP_200_OK, "Users retrieved successfully",
                        {"users": [public_user(u) for u in users]})


@router.get("/retrieve/{user_id}")
def retrieve_user(user_id: str, _: dict = Depends(require_admin),
                  context: AppContext = Depends(get_context)):
    user = get_user(context, parse_object_id(user_id, "userId"))
    return api_response(status.HTTP_200_OK, "User retrieved successfully", {"user": public_user(user)})


@router.delete("/delete")
def delete_current_user(user: dict = Depends(get_current_user),
                        context: AppContext = Depends(get_context)):
    deleted = delete_user(context, user["_id"])
    response = api_response(status.HTTP_200_OK, "User deleted successfully",
                            {"user": public_user(deleted)})
    clear_session_cookies(response, context.settings)
    return response


@router.delete("/delete/{user_id}")
def delete_user_route(user_id: str, _: dict = Depends(require_admin),
                      context: AppContext = Depends(get_context)):
    deleted = delete_user(context, parse_object_id(user_id, "userId"))
    return api_response(status.HTTP_200_OK, "User deleted successfully",
                        {"user": public_user(deleted)})


@router.patch("/update-role/{user_id}")
def update_role_route(
    user_id: str,
    payload: Payload = Depends(read_payload),
    _: dict = Depends(require_admin),
    context: AppContext = Depends(get_context),
):
    updated = update_role(context, parse_object_id(user_id, "userId"), payload.text("role"))
    return api_response(status.HTTP_200_OK, "User role updated successfully",
                        {"user": public_user(updated)})
