"""
Logging setup and the backend audit trail.

Operators read two things: the process log (console and, when LOG_DIR is
set, daily rotating files) and the `backend_logs` collection, which keeps
one row per tracked request.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Request

from settings import get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger() -> logging.Logger:
    """Configure the root logger once; repeated calls are no-ops."""
    settings = get_settings()
    root = logging.getLogger()
    if getattr(root, "_storefront_configured", False):
        return root

    root.setLevel(settings.log_level.upper())
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=log_dir / "storefront.log",
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root._storefront_configured = True
    logger.info("Logger initialized (level=%s)", settings.log_level.upper())
    return root


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@dataclass
class AuditContext:
    """Per-request data written alongside every audit row."""

    function_name: str
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    started: float = field(default_factory=time.monotonic)

    @classmethod
    def from_request(cls, function_name: str, request: Request) -> "AuditContext":
        return cls(
            function_name=function_name,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent") or "unknown",
        )

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def record(
        self,
        store,
        log_type: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        """Insert one backend_logs row. A failed write is logged and dropped."""
        row = {
            "function_name": self.function_name,
            "log_type": log_type,
            "message": message,
            "details": json.dumps(details, default=str) if details else None,
            "execution_time_ms": self.elapsed_ms(),
            "status_code": status_code,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }
        try:
            store.write_backend_log(row)
        except Exception:
            logger.exception("Failed to write backend log for %s", self.function_name)
