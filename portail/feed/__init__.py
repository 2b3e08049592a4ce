"""Flux en direct: synchroniseur générique et cloche de notifications."""
from .synchronizer import FeedHandle, FeedSynchronizer, order_snapshot
from .notifications import NotificationBell, NotificationRecord

__all__ = ["FeedHandle", "FeedSynchronizer", "order_snapshot", "NotificationBell", "NotificationRecord"]
