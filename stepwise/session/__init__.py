"""Persisted, resumable plan executions."""

from stepwise.session.manager import SessionManager
from stepwise.session.models import ExecutionSession, SessionStatusInfo
from stepwise.session.storage import SessionStorage, SqliteSessionStorage

__all__ = [
    "ExecutionSession",
    "SessionManager",
    "SessionStatusInfo",
    "SessionStorage",
    "SqliteSessionStorage",
]
