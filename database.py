"""
MongoDB access for the storefront functions.

Two credential tiers are kept as two separate objects:

- ScopedStore connects with the user-scoped credential and can only resolve
  a caller's bearer token to their identity record.
- PrivilegedStore connects with the service credential and performs every
  cross-user read and write.

Neither wraps the other; code that only needs to authenticate a caller
never holds the elevated handle.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from security import jwt_decode

USERS = "users"
PROFILES = "profiles"
USER_ROLES = "user_roles"
CART_ITEMS = "cart_items"
FAVORITES = "favorites"
REVIEWS = "reviews"
STOCK_NOTIFICATIONS = "stock_notifications"
ORDERS = "orders"
ORDER_ITEMS = "order_items"
COUPONS = "coupons"
COUPON_ATTEMPTS = "coupon_attempts"
BACKEND_LOGS = "backend_logs"
NOTIFICATION_OUTBOX = "notification_outbox"


def connect(url: str, key: str, name: str) -> Database:
    """Open a database handle for one credential tier.

    `key` is "username:password" of the database role for that tier; an
    empty key connects without authentication (local development).
    """
    username, _, password = key.partition(":")
    client = MongoClient(
        url,
        username=username or None,
        password=password or None,
        tz_aware=True,
        serverSelectionTimeoutMS=5000,
    )
    return client[name]


def as_utc(value: Any) -> Optional[datetime]:
    """Normalize a stored timestamp (aware, naive UTC or ISO string)."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Replace Mongo's `_id` with a string `id`."""
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


class ScopedStore:
    """Store handle bound to the user-scoped credential."""

    def __init__(self, db: Database, jwt_secret: str):
        self._db = db
        self._jwt_secret = jwt_secret

    def get_user(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the identity the token belongs to, or None."""
        try:
            claims = jwt_decode(token, self._jwt_secret)
        except ValueError:
            return None
        user_id = claims.get("sub")
        if not isinstance(user_id, str) or not ObjectId.is_valid(user_id):
            return None
        return self._db[USERS].find_one({"_id": ObjectId(user_id)}, {"password_hash": 0})


class PrivilegedStore:
    """Store handle bound to the service credential."""

    def __init__(self, db: Database):
        self._db = db

    def ensure_indexes(self) -> None:
        self._db[ORDERS].create_index([("order_number", ASCENDING)], unique=True)
        self._db[ORDER_ITEMS].create_index([("order_id", ASCENDING)])
        self._db[COUPONS].create_index([("code", ASCENDING)], unique=True)
        self._db[USERS].create_index([("email", ASCENDING)], unique=True)
        self._db[COUPON_ATTEMPTS].create_index([("ip_address", ASCENDING), ("created_at", ASCENDING)])
        self._db[NOTIFICATION_OUTBOX].create_index([("sent", ASCENDING), ("created_at", ASCENDING)])

    # Generic table access

    def find_one(
        self,
        collection: str,
        query: Dict[str, Any],
        fields: Optional[Iterable[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        projection = {f: 1 for f in fields} if fields else None
        return self._db[collection].find_one(query, projection)

    def find(
        self,
        collection: str,
        query: Dict[str, Any],
        fields: Optional[Iterable[str]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
    ) -> List[Dict[str, Any]]:
        projection = {f: 1 for f in fields} if fields else None
        cursor = self._db[collection].find(query, projection)
        if sort:
            cursor = cursor.sort(sort)
        return list(cursor)

    def insert_one(self, collection: str, doc: Dict[str, Any]) -> str:
        res = self._db[collection].insert_one(doc)
        return str(res.inserted_id)

    def insert_many(self, collection: str, docs: List[Dict[str, Any]]) -> List[str]:
        res = self._db[collection].insert_many(docs)
        return [str(i) for i in res.inserted_ids]

    def delete_many(self, collection: str, query: Dict[str, Any]) -> int:
        return self._db[collection].delete_many(query).deleted_count

    # Identity management

    def delete_user(self, user_id: str) -> bool:
        res = self._db[USERS].delete_one({"_id": ObjectId(user_id)})
        return res.deleted_count == 1

    # Coupons

    def find_active_coupon(self, code: str) -> Optional[Dict[str, Any]]:
        return self._db[COUPONS].find_one({"code": code, "is_active": True})

    def increment_coupon_usage(self, coupon_id: ObjectId, expected_used_count: Optional[int]) -> bool:
        """Compare-and-swap: bump used_count only if nobody changed it since it was read."""
        res = self._db[COUPONS].update_one(
            {"_id": coupon_id, "used_count": expected_used_count},
            {"$inc": {"used_count": 1}},
        )
        return res.modified_count == 1

    def release_coupon_usage(self, coupon_id: ObjectId) -> None:
        self._db[COUPONS].update_one(
            {"_id": coupon_id, "used_count": {"$gt": 0}},
            {"$inc": {"used_count": -1}},
        )

    def record_coupon_attempt(self, ip_address: str, code: str, success: bool) -> None:
        self._db[COUPON_ATTEMPTS].insert_one({
            "ip_address": ip_address,
            "attempted_code": code,
            "success": success,
            "created_at": datetime.now(timezone.utc),
        })

    def count_failed_coupon_attempts(self, ip_address: str, since: datetime) -> int:
        return self._db[COUPON_ATTEMPTS].count_documents(
            {"ip_address": ip_address, "success": False, "created_at": {"$gte": since}}
        )

    def purge_coupon_attempts(self, before: datetime) -> int:
        return self._db[COUPON_ATTEMPTS].delete_many({"created_at": {"$lt": before}}).deleted_count

    # Audit

    def write_backend_log(self, row: Dict[str, Any]) -> None:
        self._db[BACKEND_LOGS].insert_one({**row, "created_at": datetime.now(timezone.utc)})
