# core/notifications/__init__.py
"""
Client-side notification cache.

Mutations are applied to the cache first and sent to the backend afterwards;
a failed call is reconciled by a full refetch.
"""

from core.notifications.manager import NotificationManager, create_notification_manager
from core.notifications.models import Notification

__all__ = ['Notification', 'NotificationManager', 'create_notification_manager']
