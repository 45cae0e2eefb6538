"""告警与通知模块"""

from .base import BaseNotifier, CRITICAL_PREFIX
from .engine import AlertEngine
from .manager import NotificationManager
from .slack_notifier import SlackNotifier
from .webhook_notifier import WebhookNotifier

__all__ = [
    'BaseNotifier',
    'CRITICAL_PREFIX',
    'AlertEngine',
    'NotificationManager',
    'SlackNotifier',
    'WebhookNotifier'
]
