"""
Coupon validation and redemption.

Validation is read-only: it tells the shopper whether a code applies to a
given order total and how much it takes off. Redemption happens when the
order is placed and is the only place `used_count` changes.
"""
import logging
import math
import random
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError

from database import PrivilegedStore, as_utc
from errors import InternalError, InvalidInput, TooManyAttempts

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
BLOCK_WINDOW = timedelta(minutes=60)
CLEANUP_PROBABILITY = 0.05
REDEEM_RETRIES = 3

CODE_PATTERN = re.compile(r"[A-Z0-9_-]+")
MAX_CODE_LENGTH = 50

PERCENTAGE = "percentage"
FIXED = "fixed"

MSG_CODE_REQUIRED = "كود الكوبون مطلوب"
MSG_BAD_FORMAT = "صيغة الكوبون غير صحيحة"
MSG_BAD_TOTAL = "قيمة الطلب غير صالحة"
MSG_BLOCKED = "تم حظرك مؤقتاً بسبب كثرة المحاولات الفاشلة. حاول مرة أخرى بعد ساعة."
MSG_UNKNOWN = "كود الكوبون غير صالح"
MSG_EXPIRED = "انتهت صلاحية هذا الكوبون"
MSG_EXHAUSTED = "تم استنفاد عدد استخدامات هذا الكوبون"
MSG_LOOKUP_FAILED = "حدث خطأ في التحقق من الكوبون"


def min_order_message(amount: Any) -> str:
    return f"الحد الأدنى للطلب {amount} ج.م لاستخدام هذا الكوبون"


def normalize_code(code: Any) -> str:
    """Check and normalize a caller-supplied code. Raises InvalidInput."""
    if not isinstance(code, str) or not code.strip():
        raise InvalidInput(MSG_CODE_REQUIRED, valid=False)
    normalized = code.strip().upper()
    if len(normalized) > MAX_CODE_LENGTH or not CODE_PATTERN.fullmatch(normalized):
        raise InvalidInput(MSG_BAD_FORMAT, valid=False)
    return normalized


def parse_order_total(value: Any) -> float:
    if value is None:
        return 0
    if (isinstance(value, bool) or not isinstance(value, (int, float))
            or not math.isfinite(value) or value < 0):
        raise InvalidInput(MSG_BAD_TOTAL, valid=False)
    return value


def rejection_reason(coupon: Dict[str, Any], order_total: float, now: datetime) -> Optional[str]:
    """Return why the coupon cannot be used for this total, or None if it can.

    Rules are checked in a fixed order: expiry, usage cap, minimum order.
    """
    expires_at = as_utc(coupon.get("expires_at"))
    if expires_at is not None and expires_at < now:
        return MSG_EXPIRED
    max_uses = coupon.get("max_uses")
    if max_uses is not None and (coupon.get("used_count") or 0) >= max_uses:
        return MSG_EXHAUSTED
    min_amount = coupon.get("min_order_amount")
    if min_amount is not None and order_total < min_amount:
        return min_order_message(min_amount)
    return None


def compute_discount(discount_type: str, discount_value: float, order_total: float) -> float:
    if discount_type == PERCENTAGE:
        discount = order_total * discount_value / 100
    else:
        discount = discount_value
    return min(discount, order_total)


def validate_coupon(store: PrivilegedStore, code: Any, order_total: Any, ip_address: str) -> Dict[str, Any]:
    """Check a code for an order total and quote the discount.

    Business outcomes (unknown, expired, exhausted, below minimum) come back
    as {"valid": False, "error": ...}; only malformed input and throttling
    raise.
    """
    sanitized = normalize_code(code)
    total = parse_order_total(order_total)
    now = datetime.now(timezone.utc)

    failed = store.count_failed_coupon_attempts(ip_address, now - BLOCK_WINDOW)
    if failed >= MAX_FAILED_ATTEMPTS:
        logger.info("IP %s blocked after %d failed coupon attempts", ip_address, failed)
        raise TooManyAttempts(MSG_BLOCKED, valid=False, blocked=True, remainingAttempts=0)

    try:
        coupon = store.find_active_coupon(sanitized)
    except PyMongoError:
        logger.exception("Database error fetching coupon %s", sanitized)
        raise InternalError(MSG_LOOKUP_FAILED, valid=False)
    store.record_coupon_attempt(ip_address, sanitized, coupon is not None)

    if random.random() < CLEANUP_PROBABILITY:
        purged = store.purge_coupon_attempts(now - BLOCK_WINDOW)
        logger.debug("Purged %d old coupon attempts", purged)

    if coupon is None:
        return {
            "valid": False,
            "error": MSG_UNKNOWN,
            "remainingAttempts": max(0, MAX_FAILED_ATTEMPTS - failed - 1),
        }

    reason = rejection_reason(coupon, total, now)
    if reason is not None:
        return {"valid": False, "error": reason}

    discount_amount = compute_discount(coupon["discount_type"], coupon["discount_value"], total)
    logger.info("Coupon validated: %s, discount: %s", sanitized, discount_amount)
    return {
        "valid": True,
        "coupon": {
            "code": coupon["code"],
            "discount_type": coupon["discount_type"],
            "discount_value": coupon["discount_value"],
            "discount_amount": discount_amount,
        },
    }


def redeem_coupon(store: PrivilegedStore, code: str, order_total: float) -> Optional[Dict[str, Any]]:
    """Consume one use of a coupon, or return None if it cannot be used.

    The increment is conditioned on the used_count that was checked, so two
    checkouts racing for the last use cannot both succeed.
    """
    for _ in range(REDEEM_RETRIES):
        coupon = store.find_active_coupon(code)
        if coupon is None:
            return None
        if rejection_reason(coupon, order_total, datetime.now(timezone.utc)) is not None:
            return None
        if store.increment_coupon_usage(coupon["_id"], coupon.get("used_count")):
            return coupon
        logger.info("Coupon %s changed during redemption, retrying", code)
    return None


def release_coupon(store: PrivilegedStore, coupon: Dict[str, Any]) -> None:
    store.release_coupon_usage(coupon["_id"])
