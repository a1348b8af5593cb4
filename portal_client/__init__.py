from .access_gate import DASHBOARD_ROUTES, GateDecision, GateState, Route, dashboard_path, evaluate, landing_path
from .api import PortalApi
from .errors import ApiError, AuthError, InvalidCredentials, NetworkUnavailable, PortalError, StorageError, ValidationError
from .models import AppRole
from .notifications import FeedItem, NotificationFeed, merge_feed, unread_count
from .resolver import UserSnapshot, fetch_user_data, is_approved
from .session_store import SessionContext, SessionState

__all__ = [
    "DASHBOARD_ROUTES",
    "ApiError",
    "AppRole",
    "AuthError",
    "FeedItem",
    "GateDecision",
    "GateState",
    "InvalidCredentials",
    "NetworkUnavailable",
    "NotificationFeed",
    "PortalApi",
    "PortalError",
    "Route",
    "SessionContext",
    "SessionState",
    "StorageError",
    "UserSnapshot",
    "ValidationError",
    "dashboard_path",
    "evaluate",
    "fetch_user_data",
    "is_approved",
    "landing_path",
    "merge_feed",
    "unread_count",
]
