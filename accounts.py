"""
Customer identities: sign-up, sign-in and account deletion.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from database import (
    CART_ITEMS,
    FAVORITES,
    PROFILES,
    REVIEWS,
    STOCK_NOTIFICATIONS,
    USER_ROLES,
    USERS,
    PrivilegedStore,
    ScopedStore,
)
from errors import Forbidden, InternalError, InvalidInput, Unauthorized
from schemas import LoginRequest, Profile, RegisterRequest, User, UserRole
from security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

# (collection, owner field) for every record tied to an identity
DEPENDENT_COLLECTIONS: Tuple[Tuple[str, str], ...] = (
    (CART_ITEMS, "user_id"),
    (FAVORITES, "user_id"),
    (REVIEWS, "user_id"),
    (STOCK_NOTIFICATIONS, "user_id"),
    (PROFILES, "id"),
    (USER_ROLES, "user_id"),
)

MSG_NOT_AUTHORIZED = "غير مصرح"
MSG_USER_NOT_FOUND = "المستخدم غير موجود"
MSG_DELETE_FAILED = "حدث خطأ أثناء حذف الحساب"
MSG_DELETED = "تم حذف الحساب بنجاح"
MSG_EMAIL_TAKEN = "البريد الإلكتروني مستخدم بالفعل"
MSG_WEAK_PASSWORD = "كلمة المرور يجب أن تكون 6 أحرف على الأقل"
MSG_BAD_CREDENTIALS = "البريد الإلكتروني أو كلمة المرور غير صحيحة"
MSG_ADMIN_ONLY = "هذه العملية متاحة للمسؤولين فقط"


def register(store: PrivilegedStore, body: RegisterRequest) -> Dict[str, Any]:
    email = body.email.lower()
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(MSG_WEAK_PASSWORD)
    if store.find_one(USERS, {"email": email}):
        raise InvalidInput(MSG_EMAIL_TAKEN)

    now = datetime.now(timezone.utc)
    user = User(email=email, password_hash=hash_password(body.password), created_at=now, updated_at=now)
    try:
        user_id = store.insert_one(USERS, user.model_dump())
    except DuplicateKeyError:
        raise InvalidInput(MSG_EMAIL_TAKEN)
    store.insert_one(PROFILES, Profile(id=user_id, full_name=body.full_name, email=email).model_dump())
    store.insert_one(USER_ROLES, UserRole(user_id=user_id).model_dump())
    logger.info("Registered user %s", user_id)
    return {"id": user_id, "email": email}


def login(store: PrivilegedStore, body: LoginRequest, secret: str, expire_minutes: int) -> Dict[str, Any]:
    user = store.find_one(USERS, {"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise Unauthorized(MSG_BAD_CREDENTIALS)
    user_id = str(user["_id"])
    token = create_access_token(user_id, secret, timedelta(minutes=expire_minutes))
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": {"id": user_id, "email": user["email"]},
    }


def resolve_caller(scoped: ScopedStore, token: Optional[str]) -> Dict[str, Any]:
    """Prove the bearer token belongs to a live identity."""
    if not token:
        raise Unauthorized(MSG_NOT_AUTHORIZED)
    user = scoped.get_user(token)
    if user is None:
        raise Unauthorized(MSG_USER_NOT_FOUND)
    return user


def require_admin(store: PrivilegedStore, user: Dict[str, Any]) -> None:
    if not store.find_one(USER_ROLES, {"user_id": str(user["_id"]), "role": "admin"}):
        raise Forbidden(MSG_ADMIN_ONLY)


def erase_dependents(store: PrivilegedStore, user_id: str) -> List[str]:
    """Delete every record owned by the identity.

    Each collection is independent: a failure is logged and the cascade
    moves on. Returns the collections that could not be cleared.
    """
    failed = []
    for collection, owner_field in DEPENDENT_COLLECTIONS:
        try:
            removed = store.delete_many(collection, {owner_field: user_id})
        except Exception:
            logger.exception("Failed to clear %s for user %s", collection, user_id)
            failed.append(collection)
            continue
        logger.debug("Removed %d %s rows for user %s", removed, collection, user_id)
    return failed


def delete_account(scoped: ScopedStore, store: PrivilegedStore, token: Optional[str]) -> Dict[str, Any]:
    user = resolve_caller(scoped, token)
    user_id = str(user["_id"])

    failed = erase_dependents(store, user_id)
    if failed:
        logger.warning("Partial cascade for user %s, not cleared: %s", user_id, ", ".join(failed))

    try:
        deleted = store.delete_user(user_id)
    except Exception:
        logger.exception("Error deleting user %s", user_id)
        raise InternalError(MSG_DELETE_FAILED)
    if not deleted:
        logger.error("Identity %s was not removed", user_id)
        raise InternalError(MSG_DELETE_FAILED)

    logger.info("Deleted account %s", user_id)
    return {"success": True, "message": MSG_DELETED}
