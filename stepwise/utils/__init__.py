"""Utility modules for stepwise."""

from stepwise.utils.logging import bind_session, get_logger, setup_logging

__all__ = ["bind_session", "get_logger", "setup_logging"]
