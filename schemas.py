"""
Database Schemas for the Storefront

Each Pydantic model in the first half represents a MongoDB collection
(collection name noted on the class). The second half holds request
bodies accepted by the HTTP functions.
"""
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime

# Collections

class User(BaseModel):
    """users"""
    email: EmailStr
    password_hash: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Profile(BaseModel):
    """profiles, keyed by the identity id"""
    id: str
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None

class UserRole(BaseModel):
    """user_roles"""
    user_id: str
    role: Literal["customer", "admin"] = "customer"

class CartItem(BaseModel):
    """cart_items"""
    user_id: str
    product_id: str
    quantity: int = Field(..., ge=1)

class Favorite(BaseModel):
    """favorites"""
    user_id: str
    product_id: str

class Review(BaseModel):
    """reviews"""
    user_id: str
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

class StockNotification(BaseModel):
    """stock_notifications"""
    user_id: Optional[str] = None
    product_id: str
    email: Optional[EmailStr] = None
    notified: bool = False

class Order(BaseModel):
    """orders; total = subtotal + delivery_fee - discount_amount"""
    order_number: str
    customer_name: str
    customer_phone: str
    customer_address: str
    governorate: str
    payment_method: str
    notes: Optional[str] = None
    coupon_code: Optional[str] = None
    subtotal: float = Field(..., ge=0)
    delivery_fee: float = Field(..., ge=0)
    discount_amount: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    user_id: Optional[str] = None
    status: str = "pending"  # pending, confirmed, processing, shipped, delivered, cancelled
    payment_confirmed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class OrderItem(BaseModel):
    """order_items; a snapshot of the product at order time"""
    order_id: str
    product_id: Optional[str] = None
    product_name: str
    product_price: float
    quantity: int

class Coupon(BaseModel):
    """coupons; code is stored upper-case"""
    code: str
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(..., ge=0)
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    used_count: int = 0
    min_order_amount: Optional[float] = None
    is_active: bool = True

class OrderStatusNotification(BaseModel):
    """notification_outbox; picked up and sent by the mail relay"""
    to: str
    subject: str
    body: str
    order_id: str
    status: str
    sent: bool = False
    created_at: Optional[datetime] = None

# Request bodies

class TrackOrderRequest(BaseModel):
    # checked by hand so each problem gets its own message
    orderNumber: Any = None
    phoneLast4: Any = None

class ValidateCouponRequest(BaseModel):
    code: Any = None
    orderTotal: Any = None

class OrderItemIn(BaseModel):
    product_id: Optional[str] = None
    product_name: str
    product_price: float = Field(..., allow_inf_nan=False)
    quantity: int

class CreateOrderRequest(BaseModel):
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    governorate: str = ""
    payment_method: str = ""
    notes: Optional[str] = None
    coupon_code: Optional[str] = None
    items: List[OrderItemIn] = []
    subtotal: float = Field(..., allow_inf_nan=False)
    delivery_fee: float = Field(..., allow_inf_nan=False)
    discount_amount: Optional[float] = Field(None, allow_inf_nan=False)
    total: float = Field(..., allow_inf_nan=False)

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class NotifyOrderStatusRequest(BaseModel):
    orderId: Any = None
    newStatus: Any = None
    customerEmail: Any = None
