"""
=============================================================================
APPLICATION MESSAGES
=============================================================================

JSON documents carried as text-frame payloads.

SERVER → OBSERVER:
──────────────────

    initial_status    once, right after the handshake
        {"type": "initial_status", "servers": {"api": "up", "web": "down"}}

    server_update     after every check
        {"type": "server_update", "server": {...}}

    server_alert      additionally, when a target goes Up → Down
        {"type": "server_alert", "message": "...", "server": {...}}

    server_recovery   additionally, when a target goes Down → Up
        {"type": "server_recovery", "message": "...", "server": {...}}

    "server" object:
        name, url, status, response_time (null when down), http_code,
        error (null when up), timestamp, status_changed

OBSERVER → SERVER:
──────────────────

    {"action": "force_check"}    run a manual sweep now

Anything else an observer sends is ignored.

=============================================================================
"""

import json
from typing import Any, Dict, List, Mapping, Optional

from ..health.models import EventKind, Status, StatusEvent


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

FORCE_CHECK = "force_check"


def server_payload(event: StatusEvent) -> Dict[str, Any]:
    """The "server" object shared by update, alert and recovery messages."""
    detail = event.detail
    return {
        "name": event.target.name,
        "url": event.target.url,
        "status": event.new_status.value,
        "response_time": detail.latency_ms if detail.reachable else None,
        "http_code": detail.http_status,
        "error": detail.error,
        "timestamp": detail.checked_at.strftime(TIMESTAMP_FORMAT),
        "status_changed": event.status_changed,
    }


def initial_status(statuses: Mapping[str, Status]) -> Dict[str, Any]:
    return {
        "type": "initial_status",
        "servers": {name: status.value for name, status in statuses.items()},
    }


def server_update(event: StatusEvent) -> Dict[str, Any]:
    return {"type": "server_update", "server": server_payload(event)}


def server_alert(event: StatusEvent) -> Dict[str, Any]:
    return {
        "type": "server_alert",
        "message": f"🚨 CRITICAL: Server '{event.target.name}' is DOWN!",
        "server": server_payload(event),
    }


def server_recovery(event: StatusEvent) -> Dict[str, Any]:
    return {
        "type": "server_recovery",
        "message": f"✅ RECOVERED: Server '{event.target.name}' is back up!",
        "server": server_payload(event),
    }


def messages_for_event(event: StatusEvent) -> List[Dict[str, Any]]:
    """
    Every message one event produces, in send order.

    The update always goes first so dashboards refresh before showing
    the alert banner.
    """
    messages = [server_update(event)]
    if event.kind is EventKind.ALERT_DOWN:
        messages.append(server_alert(event))
    elif event.kind is EventKind.ALERT_RECOVERED:
        messages.append(server_recovery(event))
    return messages


def encode_message(message: Mapping[str, Any]) -> bytes:
    return json.dumps(message, ensure_ascii=False).encode("utf-8")


def parse_action(payload: bytes) -> Optional[str]:
    """
    Extract the "action" field from an observer message.

    Returns:
        The action string, or None for anything that is not a JSON object
        with a string "action". Nesting too deep for the decoder counts as
        not an object.
    """
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError):
        return None

    if not isinstance(data, dict):
        return None

    action = data.get("action")
    return action if isinstance(action, str) else None
