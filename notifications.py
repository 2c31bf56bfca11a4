"""
Order status notifications.

The function composes the customer-facing message and queues it in the
notification outbox; delivery is left to whatever relay drains the outbox.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict

from bson import ObjectId

from database import NOTIFICATION_OUTBOX, ORDERS, PrivilegedStore
from errors import InvalidInput, NotFound
from schemas import OrderStatusNotification

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

STATUS_LABELS = {
    "pending": "قيد الانتظار",
    "confirmed": "تم التأكيد",
    "processing": "جاري التجهيز",
    "shipped": "تم الشحن",
    "delivered": "تم التوصيل",
    "cancelled": "ملغي",
}

STATUS_FOOTERS = {
    "shipped": "طلبك في الطريق إليك! سيصل خلال 2-3 أيام عمل.",
    "delivered": "شكراً لتسوقك معنا! نتمنى أن تنال المنتجات إعجابك.",
    "cancelled": "نأسف لإلغاء طلبك. إذا كان لديك أي استفسار، لا تتردد في التواصل معنا.",
}

MSG_FIELDS_REQUIRED = "جميع الحقول مطلوبة"
MSG_BAD_EMAIL = "البريد الإلكتروني غير صالح"
MSG_ORDER_MISSING = "الطلب غير موجود"


def render_status_message(order: Dict[str, Any], status: str) -> Dict[str, str]:
    label = STATUS_LABELS.get(status, status)
    lines = [
        f"مرحباً {order.get('customer_name', '')}،",
        "نود إعلامك بأن حالة طلبك قد تم تحديثها.",
        "",
        f"الحالة الجديدة: {label}",
        f"رقم الطلب: {order['order_number']}",
        f"منطقة التوصيل: {order.get('governorate', '')}",
        f"الإجمالي: {order.get('total')} ج.م",
    ]
    if status in STATUS_FOOTERS:
        lines += ["", STATUS_FOOTERS[status]]
    return {
        "subject": f"تحديث حالة طلبك - {order['order_number']}",
        "body": "\n".join(lines),
    }


def notify_order_status(store: PrivilegedStore, order_id: Any, new_status: Any, customer_email: Any) -> Dict[str, Any]:
    """Queue a status-change message for the customer of an order."""
    if not all(isinstance(v, str) and v.strip() for v in (order_id, new_status, customer_email)):
        raise InvalidInput(MSG_FIELDS_REQUIRED)
    customer_email = customer_email.strip()
    if not EMAIL_PATTERN.fullmatch(customer_email):
        raise InvalidInput(MSG_BAD_EMAIL)

    order = None
    if ObjectId.is_valid(order_id):
        order = store.find_one(
            ORDERS,
            {"_id": ObjectId(order_id)},
            fields=("order_number", "customer_name", "total", "governorate"),
        )
    if order is None:
        logger.info("Notification requested for unknown order %s", order_id)
        raise NotFound(MSG_ORDER_MISSING)

    new_status = new_status.strip()
    message = render_status_message(order, new_status)
    notification = OrderStatusNotification(
        to=customer_email,
        subject=message["subject"],
        body=message["body"],
        order_id=order_id,
        status=new_status,
        created_at=datetime.now(timezone.utc),
    )
    notification_id = store.insert_one(NOTIFICATION_OUTBOX, notification.model_dump())
    logger.info("Queued %s notification for order %s", new_status, order["order_number"])
    return {"success": True, "notification": {"id": notification_id, "status": new_status}}
