"""Notification sink implementations."""

from autopay.infrastructure.notifications.log_sink import LoggingNotificationSink

__all__ = ["LoggingNotificationSink"]
