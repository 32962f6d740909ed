"""Session lifecycle: reconciler, state machine and manager."""
from opencode_bridge.sessions.models import SessionSnapshot, SessionStatus, TurnOutput
from opencode_bridge.sessions.notifications import (
    ErrorNotification,
    Notification,
    NotificationCallback,
    NotificationKind,
    OutputNotification,
    PermissionNotification,
    TerminatedNotification,
)
from opencode_bridge.sessions.reconciler import EventReconciler
from opencode_bridge.sessions.session import Session
from opencode_bridge.sessions.manager import SessionManager

__all__ = [
    "SessionSnapshot", "SessionStatus", "TurnOutput",
    "Notification", "NotificationCallback", "NotificationKind", "OutputNotification",
    "PermissionNotification", "ErrorNotification", "TerminatedNotification",
    "EventReconciler", "Session", "SessionManager",
]
