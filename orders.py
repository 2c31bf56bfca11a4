"""
Order tracking and order placement.

Tracking is for guests: an order is shown to whoever knows its public order
number and the last four digits of the phone it was placed with. Both halves
failing look the same to the caller.
"""
import logging
import math
import re
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pymongo.errors import DuplicateKeyError

from coupons import redeem_coupon, release_coupon
from database import ORDER_ITEMS, ORDERS, PrivilegedStore, serialize
from errors import InternalError, InvalidInput, NotFound
from schemas import CreateOrderRequest, Order, OrderItem

logger = logging.getLogger(__name__)

PHONE_SUFFIX_PATTERN = re.compile(r"[0-9]{4}")
ORDER_NUMBER_MIN_LENGTH = 5
ORDER_NUMBER_MAX_LENGTH = 50
ORDER_NUMBER_PREFIX = "HS"
ORDER_NUMBER_RETRIES = 5

# returned to the tracking caller; customer_phone is read for verification only
TRACKED_ORDER_FIELDS = (
    "order_number", "status", "created_at", "updated_at",
    "subtotal", "delivery_fee", "discount_amount", "total",
    "governorate", "payment_method", "payment_confirmed",
)
TRACKED_ITEM_FIELDS = ("product_name", "product_price", "quantity")

MSG_ORDER_NUMBER_REQUIRED = "رقم الطلب مطلوب"
MSG_PHONE_REQUIRED = "آخر 4 أرقام من رقم الهاتف مطلوبة"
MSG_PHONE_NOT_NUMERIC = "آخر 4 أرقام يجب أن تكون أرقام فقط"
MSG_ORDER_NUMBER_INVALID = "رقم الطلب غير صالح"
MSG_ORDER_NOT_FOUND = "الطلب غير موجود أو البيانات غير صحيحة"
MSG_COUPON_UNAVAILABLE = "الكوبون غير صالح أو تم استنفاده"
MSG_CREATE_FAILED = "حدث خطأ أثناء إنشاء الطلب"
MSG_ITEMS_FAILED = "حدث خطأ أثناء إضافة المنتجات"


class OrderLookupMiss(NotFound):
    """Unknown order number or wrong phone digits; deliberately indistinguishable."""

    def __init__(self, reason: str, order_number: str):
        self.reason = reason
        self.order_number = order_number
        super().__init__(MSG_ORDER_NOT_FOUND)


def normalize_tracking_input(order_number: Any, phone_last4: Any) -> str:
    """Validate the tracking pair locally and return the normalized order number."""
    if not isinstance(order_number, str) or not order_number:
        raise InvalidInput(MSG_ORDER_NUMBER_REQUIRED)
    if not isinstance(phone_last4, str) or len(phone_last4) != 4:
        raise InvalidInput(MSG_PHONE_REQUIRED)
    if not PHONE_SUFFIX_PATTERN.fullmatch(phone_last4):
        raise InvalidInput(MSG_PHONE_NOT_NUMERIC)
    sanitized = order_number.strip().upper()
    if not ORDER_NUMBER_MIN_LENGTH <= len(sanitized) <= ORDER_NUMBER_MAX_LENGTH:
        raise InvalidInput(MSG_ORDER_NUMBER_INVALID)
    return sanitized


def track_order(store: PrivilegedStore, order_number: str, phone_last4: str) -> Dict[str, Any]:
    order = store.find_one(
        ORDERS,
        {"order_number": order_number},
        fields=TRACKED_ORDER_FIELDS + ("customer_phone",),
    )
    if order is None:
        raise OrderLookupMiss("not_found", order_number)

    phone = order.pop("customer_phone", None)
    if not isinstance(phone, str) or phone[-4:] != phone_last4:
        raise OrderLookupMiss("phone_mismatch", order_number)

    order = serialize(order)
    items = store.find(ORDER_ITEMS, {"order_id": order["id"]}, fields=TRACKED_ITEM_FIELDS)
    order["items"] = [serialize(i) for i in items]
    return {"order": order}


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{ORDER_NUMBER_PREFIX}-{now.strftime('%Y%m%d')}-{secrets.randbelow(10000):04d}"


def check_order_request(body: CreateOrderRequest) -> None:
    """Reject blank required fields and negative amounts."""
    required = (
        (body.customer_name, "اسم العميل مطلوب"),
        (body.customer_phone, "رقم الهاتف مطلوب"),
        (body.customer_address, "العنوان مطلوب"),
        (body.governorate, "المحافظة مطلوبة"),
        (body.payment_method, "طريقة الدفع مطلوبة"),
    )
    for value, message in required:
        if not value or not value.strip():
            raise InvalidInput(message)
    if not body.items:
        raise InvalidInput("يجب إضافة منتج واحد على الأقل")
    amounts = (
        (body.subtotal, "المجموع الفرعي غير صالح"),
        (body.delivery_fee, "رسوم التوصيل غير صالحة"),
        (body.total, "المجموع غير صالح"),
        (body.discount_amount or 0, "قيمة الخصم غير صالحة"),
    )
    for value, message in amounts:
        if not math.isfinite(value) or value < 0:
            raise InvalidInput(message)
    for item in body.items:
        if (not item.product_name.strip() or not math.isfinite(item.product_price)
                or item.product_price < 0 or item.quantity < 1):
            raise InvalidInput("بيانات المنتجات غير صالحة")


def create_order(store: PrivilegedStore, body: CreateOrderRequest, user_id: Optional[str] = None) -> Dict[str, Any]:
    check_order_request(body)

    coupon_code = (body.coupon_code or "").strip().upper() or None
    now = datetime.now(timezone.utc)
    order = Order(
        order_number=generate_order_number(now),
        customer_name=body.customer_name.strip(),
        customer_phone=body.customer_phone.strip(),
        customer_address=body.customer_address.strip(),
        governorate=body.governorate.strip(),
        payment_method=body.payment_method.strip(),
        notes=(body.notes or "").strip() or None,
        coupon_code=coupon_code,
        subtotal=body.subtotal,
        delivery_fee=body.delivery_fee,
        discount_amount=body.discount_amount or 0,
        total=body.total,
        user_id=user_id,
        created_at=now,
        updated_at=now,
    )

    coupon = None
    if coupon_code:
        coupon = redeem_coupon(store, coupon_code, body.subtotal)
        if coupon is None:
            raise InvalidInput(MSG_COUPON_UNAVAILABLE)

    # from here on any failure gives the coupon use back
    try:
        order_id = insert_order(store, order, now)
        insert_order_items(store, order_id, order.order_number, body)
    except Exception:
        if coupon is not None:
            release_coupon(store, coupon)
        raise

    logger.info("Order created successfully: %s", order.order_number)
    return {"success": True, "order": {"id": order_id, "order_number": order.order_number}}


def insert_order(store: PrivilegedStore, order: Order, now: datetime) -> str:
    try:
        for _ in range(ORDER_NUMBER_RETRIES):
            try:
                return store.insert_one(ORDERS, order.model_dump())
            except DuplicateKeyError:
                logger.info("Order number %s already taken, regenerating", order.order_number)
                order.order_number = generate_order_number(now)
    except Exception:
        logger.exception("Error creating order")
        raise InternalError(MSG_CREATE_FAILED)
    logger.error("Could not allocate a unique order number")
    raise InternalError(MSG_CREATE_FAILED)


def insert_order_items(store: PrivilegedStore, order_id: str, order_number: str, body: CreateOrderRequest) -> None:
    items = [
        OrderItem(
            order_id=order_id,
            product_id=item.product_id or None,
            product_name=item.product_name.strip(),
            product_price=item.product_price,
            quantity=item.quantity,
        ).model_dump()
        for item in body.items
    ]
    try:
        store.insert_many(ORDER_ITEMS, items)
    except Exception:
        logger.exception("Error creating order items for %s, rolling back", order_number)
        try:
            store.delete_many(ORDERS, {"order_number": order_number})
        except Exception:
            logger.exception("Rollback of order %s failed", order_number)
        raise InternalError(MSG_ITEMS_FAILED)
