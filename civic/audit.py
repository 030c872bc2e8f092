# Audit trail and system feed writers

import json
import logging
from typing import Any, Optional

from .config import new_id, now_utc
from .models import FeedType
from .store import AUDIT_LOGS, SYSTEM_FEED, DocumentStore

logger = logging.getLogger(__name__)


def client_ip(request) -> str:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _as_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


def create_audit_log(store: DocumentStore, user: dict, action: str, target_type: str, target_id: str,
                     old_value: Any = None, new_value: Any = None, ip_address: str = "unknown") -> None:
    """Append an audit entry. Never raises; the triggering operation has already happened."""
    entry = {
        "_id": new_id(),
        "timestamp": now_utc(),
        "user_id": str(user.get("_id", "unknown")),
        "user_name": user.get("name") or user.get("email") or "Unknown",
        "action": action,
        "target_type": target_type,
        "target_id": target_id,
        "old_value": _as_json(old_value),
        "new_value": _as_json(new_value),
        "ip_address": ip_address,
    }
    try:
        store.insert(AUDIT_LOGS, entry)
    except Exception as e:
        logger.error("Failed to write audit log %s on %s/%s: %s", action, target_type, target_id, e)


def emit_feed_event(store: DocumentStore, feed_type: FeedType, message: str,
                    ticket_id: Optional[str] = None) -> None:
    try:
        store.insert(SYSTEM_FEED, {
            "_id": new_id(),
            "timestamp": now_utc(),
            "type": feed_type.value,
            "message": message,
            "ticket_id": ticket_id,
        })
    except Exception as e:
        logger.error("Failed to write feed event %s: %s", feed_type.value, e)
