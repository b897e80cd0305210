from .dispatcher import ChannelDisabled, EventKind, Notification, Notifier
from .channels import ChannelNotifier

__all__ = [
    "ChannelDisabled", "ChannelNotifier", "EventKind", "Notification",
    "Notifier",
]
