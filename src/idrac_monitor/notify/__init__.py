"""Notification subsystem: message rendering and delivery channels."""

from idrac_monitor.notify.email import EmailDelivery, EmailDeliveryError
from idrac_monitor.notify.file import FileDelivery, FileDeliveryError
from idrac_monitor.notify.manager import NotificationManager, Notifier
from idrac_monitor.notify.messages import Message, MessageBuilder

__all__ = [
    "EmailDelivery",
    "EmailDeliveryError",
    "FileDelivery",
    "FileDeliveryError",
    "Message",
    "MessageBuilder",
    "NotificationManager",
    "Notifier",
]
