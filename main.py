import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import accounts
import coupons
import notifications
import orders
from database import PrivilegedStore, ScopedStore, connect
from errors import InternalError, StorefrontError
from logger import AuditContext, setup_logger
from schemas import (
    CreateOrderRequest,
    LoginRequest,
    NotifyOrderStatusRequest,
    RegisterRequest,
    TrackOrderRequest,
    ValidateCouponRequest,
)
from settings import get_settings

setup_logger()
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

MSG_BAD_REQUEST = "بيانات الطلب غير صالحة"
MSG_PROCESSING_FAILED = "حدث خطأ في معالجة الطلب"
MSG_UNEXPECTED = "حدث خطأ غير متوقع"

# Store capabilities, one per credential tier
@lru_cache
def get_scoped_store() -> ScopedStore:
    s = get_settings()
    return ScopedStore(connect(s.database_url, s.anon_key, s.database_name), s.jwt_secret)

@lru_cache
def get_privileged_store() -> PrivilegedStore:
    s = get_settings()
    return PrivilegedStore(connect(s.database_url, s.service_key, s.database_name))

@asynccontextmanager
async def lifespan(app: FastAPI):
    store = app.dependency_overrides.get(get_privileged_store, get_privileged_store)()
    store.ensure_indexes()
    logger.info("Indexes ensured")
    yield

# FastAPI app
app = FastAPI(title="Storefront Functions", version="1.0.0", lifespan=lifespan)

bearer_scheme = HTTPBearer(auto_error=False)

@app.middleware("http")
async def cors_headers(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response

@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected malformed body on %s: %d errors", request.url.path, len(exc.errors()))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": MSG_BAD_REQUEST})

def bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    return credentials.credentials if credentials else None

# Order tracking
@app.post("/track-order")
def track_order(
    payload: TrackOrderRequest,
    request: Request,
    store: PrivilegedStore = Depends(get_privileged_store),
):
    audit = AuditContext.from_request("track-order", request)
    try:
        order_number = orders.normalize_tracking_input(payload.orderNumber, payload.phoneLast4)
        logger.info("Tracking order: %s", order_number)
        result = orders.track_order(store, order_number, payload.phoneLast4)
    except orders.OrderLookupMiss as exc:
        audit.record(store, "info" if exc.reason == "not_found" else "warning",
                     "Order not found" if exc.reason == "not_found" else "Phone verification failed",
                     {"order_number": exc.order_number}, exc.status_code)
        raise
    except StorefrontError as exc:
        audit.record(store, "warning", exc.message, None, exc.status_code)
        raise
    except Exception as exc:
        logger.exception("Error in track-order")
        audit.record(store, "error", "Unhandled error", {"error": str(exc)}, 500)
        raise InternalError(MSG_PROCESSING_FAILED)
    audit.record(store, "info", "Order tracked successfully",
                 {"order_number": result["order"]["order_number"], "status": result["order"].get("status")}, 200)
    return result

# Coupons
@app.post("/validate-coupon")
def validate_coupon(
    payload: ValidateCouponRequest,
    request: Request,
    store: PrivilegedStore = Depends(get_privileged_store),
):
    audit = AuditContext.from_request("validate-coupon", request)
    try:
        result = coupons.validate_coupon(store, payload.code, payload.orderTotal, audit.ip_address)
    except StorefrontError as exc:
        audit.record(store, "error" if exc.status_code >= 500 else "warning",
                     exc.message, None, exc.status_code)
        raise
    except Exception as exc:
        logger.exception("Error in validate-coupon")
        audit.record(store, "error", "Unhandled error", {"error": str(exc)}, 500)
        raise InternalError(MSG_PROCESSING_FAILED, valid=False)
    if result["valid"]:
        audit.record(store, "info", "Coupon validated successfully",
                     {"code": result["coupon"]["code"], "discount": result["coupon"]["discount_amount"]}, 200)
    else:
        audit.record(store, "info", result["error"], None, 200)
    return result

# Orders
@app.post("/create-order")
def create_order(
    payload: CreateOrderRequest,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    scoped: ScopedStore = Depends(get_scoped_store),
    store: PrivilegedStore = Depends(get_privileged_store),
):
    try:
        user_id = None
        token = bearer_token(credentials)
        if token:
            user_id = str(accounts.resolve_caller(scoped, token)["_id"])
        return orders.create_order(store, payload, user_id)
    except StorefrontError:
        raise
    except Exception:
        logger.exception("Error in create-order")
        raise InternalError(MSG_PROCESSING_FAILED)

# Notifications
@app.post("/send-order-notification")
def send_order_notification(
    payload: NotifyOrderStatusRequest,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    scoped: ScopedStore = Depends(get_scoped_store),
    store: PrivilegedStore = Depends(get_privileged_store),
):
    audit = AuditContext.from_request("send-order-notification", request)
    try:
        accounts.require_admin(store, accounts.resolve_caller(scoped, bearer_token(credentials)))
        result = notifications.notify_order_status(
            store, payload.orderId, payload.newStatus, payload.customerEmail
        )
    except StorefrontError as exc:
        audit.record(store, "warning", exc.message, None, exc.status_code)
        raise
    except Exception as exc:
        logger.exception("Error in send-order-notification")
        audit.record(store, "error", "Unhandled error", {"error": str(exc)}, 500)
        raise InternalError(MSG_PROCESSING_FAILED)
    audit.record(store, "info", "Notification queued",
                 {"order_id": payload.orderId, "status": result["notification"]["status"]}, 200)
    return result

# Accounts
@app.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, store: PrivilegedStore = Depends(get_privileged_store)):
    try:
        return accounts.register(store, payload)
    except StorefrontError:
        raise
    except Exception:
        logger.exception("Error in register")
        raise InternalError(MSG_UNEXPECTED)

@app.post("/auth/login")
def login(payload: LoginRequest, store: PrivilegedStore = Depends(get_privileged_store)):
    s = get_settings()
    try:
        return accounts.login(store, payload, s.jwt_secret, s.access_token_expire_minutes)
    except StorefrontError:
        raise
    except Exception:
        logger.exception("Error in login")
        raise InternalError(MSG_UNEXPECTED)

@app.post("/delete-account")
def delete_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    scoped: ScopedStore = Depends(get_scoped_store),
    store: PrivilegedStore = Depends(get_privileged_store),
):
    try:
        return accounts.delete_account(scoped, store, bearer_token(credentials))
    except StorefrontError:
        raise
    except Exception:
        logger.exception("Delete account error")
        raise InternalError(MSG_UNEXPECTED)

# Health
@app.get("/")
def root():
    return {"message": "Storefront functions running"}
