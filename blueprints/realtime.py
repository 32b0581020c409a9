# blueprints/realtime.py
"""
Websocket endpoint for live commission updates.

Client -> server:  {"action": "subscribe", "userId": 7} / {"action": "unsubscribe", "userId": 7}
Server -> client:  {"event": "notifications" | "transactionUpdate", "data": {...}}
"""
import json
import logging

from flask import Blueprint
from flask_login import current_user
from simple_websocket import ConnectionClosed

from extensions import sock, notification_hub


logger = logging.getLogger(__name__)

bp = Blueprint('realtime', __name__, url_prefix="")

RECEIVE_TIMEOUT = 0.5


def _may_subscribe(user_id):
    if not current_user.is_authenticated:
        return False
    return current_user.id == user_id or current_user.is_admin


def handle_client_message(raw, subscription):
    """Apply one client message to `subscription`; returns a reply dict or None."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return {"event": "error", "data": {"message": "Invalid JSON"}}

    if not isinstance(message, dict):
        return {"event": "error", "data": {"message": "Invalid message"}}

    action = message.get("action")
    try:
        user_id = int(message.get("userId"))
    except (TypeError, ValueError):
        return {"event": "error", "data": {"message": "userId is required"}}

    if action == "subscribe":
        if not _may_subscribe(user_id):
            return {"event": "error", "data": {"message": "Not allowed to subscribe to this user"}}
        notification_hub.subscribe(user_id, subscription)
        return {"event": "subscribed", "data": {"userId": user_id}}

    if action == "unsubscribe":
        notification_hub.unsubscribe(user_id, subscription)
        return {"event": "unsubscribed", "data": {"userId": user_id}}

    return {"event": "error", "data": {"message": f"Unknown action {action!r}"}}


@sock.route('/ws', bp=bp)
def notifications_socket(ws):
    subscription = notification_hub.open()
    try:
        while True:
            raw = ws.receive(timeout=RECEIVE_TIMEOUT)
            if raw is not None:
                reply = handle_client_message(raw, subscription)
                if reply is not None:
                    ws.send(json.dumps(reply))

            # Drain everything published since the last pass
            while True:
                event = subscription.get(timeout=0)
                if event is None:
                    break
                ws.send(json.dumps(event, default=str))
    except ConnectionClosed:
        logger.debug("Websocket client disconnected")
    finally:
        subscription.close()
