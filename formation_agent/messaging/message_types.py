"""Wire message types exchanged between the page and background contexts."""

from enum import Enum
from typing import Any, Dict, List, Optional

from formation_agent.core.models import ConfirmationAction

SHOW_SAVE_NOTIFICATION = "SHOW_SAVE_NOTIFICATION"
SHOW_AUTOFILL_NOTIFICATION = "SHOW_AUTOFILL_NOTIFICATION"
SAVE_NOTIFICATION_RESPONSE = "SAVE_NOTIFICATION_RESPONSE"
AUTOFILL_NOTIFICATION_RESPONSE = "AUTOFILL_NOTIFICATION_RESPONSE"
SAVE_MODE_CHANGED = "SAVE_MODE_CHANGED"
GET_SAVE_MODE_STATUS = "GET_SAVE_MODE_STATUS"
SAVE_MODE_STATUS = "SAVE_MODE_STATUS"
TOGGLE_SAVE_MODE = "TOGGLE_SAVE_MODE"
PING = "PING"
PONG = "PONG"

ACTION_SAVE = "save"
ACTION_FILL = "fill"
ACTION_CANCEL = "cancel"
ACTION_NEVER = "never"


class ConfirmationKind(Enum):
    """What a confirmation asks the user to approve."""
    SAVE = "save"
    AUTOFILL = "autofill"

    @property
    def request_type(self) -> str:
        return SHOW_SAVE_NOTIFICATION if self is ConfirmationKind.SAVE else SHOW_AUTOFILL_NOTIFICATION

    @property
    def response_type(self) -> str:
        return SAVE_NOTIFICATION_RESPONSE if self is ConfirmationKind.SAVE else AUTOFILL_NOTIFICATION_RESPONSE

    @property
    def primary_action(self) -> str:
        return ACTION_SAVE if self is ConfirmationKind.SAVE else ACTION_FILL

    @classmethod
    def for_request(cls, message_type: str) -> Optional["ConfirmationKind"]:
        for kind in cls:
            if kind.request_type == message_type:
                return kind
        return None

    @classmethod
    def for_response(cls, message_type: str) -> Optional["ConfirmationKind"]:
        for kind in cls:
            if kind.response_type == message_type:
                return kind
        return None


def parse_action(action: Optional[str]) -> ConfirmationAction:
    """Map a wire action onto a confirmation outcome; unknown answers decline."""
    if action in (ACTION_SAVE, ACTION_FILL):
        return ConfirmationAction.PRIMARY
    if action == ACTION_NEVER:
        return ConfirmationAction.NEVER
    return ConfirmationAction.DECLINE


def wire_action(kind: ConfirmationKind, action: ConfirmationAction) -> str:
    if action is ConfirmationAction.PRIMARY:
        return kind.primary_action
    if action is ConfirmationAction.NEVER:
        return ACTION_NEVER
    return ACTION_CANCEL


def save_notification_request(
    site_name: str,
    storage_key: Dict[str, str],
    values: Dict[str, str],
) -> Dict[str, Any]:
    return {
        "type": SHOW_SAVE_NOTIFICATION,
        "fieldCount": len(values),
        "siteName": site_name,
        "formData": {
            "storageKey": storage_key,
            "values": dict(values),
            "origin": storage_key.get("origin", ""),
            "formSignature": storage_key.get("formSignature", ""),
        },
    }


def autofill_notification_request(site_name: str, preview_fields: List[str]) -> Dict[str, Any]:
    return {
        "type": SHOW_AUTOFILL_NOTIFICATION,
        "fieldCount": len(preview_fields),
        "siteName": site_name,
        "previewFields": list(preview_fields),
    }


def notification_response(kind: ConfirmationKind, request_id: str, action: str) -> Dict[str, Any]:
    return {"type": kind.response_type, "requestId": request_id, "action": action}


def save_mode_changed(is_enabled: bool) -> Dict[str, Any]:
    return {"type": SAVE_MODE_CHANGED, "isEnabled": bool(is_enabled)}
