"""Security event logging and client fingerprint helpers."""

import json
import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from models.auth_audit import AuthAuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service for logging authentication events."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        user_id: Optional[int] = None,
        driver_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> AuthAuditLog:
        """Log an authentication event. The caller commits."""
        log_entry = AuthAuditLog(
            user_id=user_id,
            driver_id=driver_id,
            action=action,
            ip_address=ip_address[:45] if ip_address else None,
            user_agent=user_agent[:500] if user_agent else None,
            success=success,
            error_message=error_message,
            metadata_json=json.dumps(metadata) if metadata else None,
        )
        self.db.add(log_entry)
        await self.db.flush()
        return log_entry


def get_client_info(request: Request) -> tuple[str, str]:
    """Extract client IP and User-Agent from request."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            ip_address = real_ip.strip()
        elif request.client:
            ip_address = request.client.host
        else:
            ip_address = "unknown"

    user_agent = request.headers.get("User-Agent", "unknown")

    return ip_address, user_agent
