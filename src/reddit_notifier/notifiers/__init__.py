"""
Notification targets for the Reddit Notifier.

Each endpoint kind has one notifier variant; ``build_notifier`` picks the
variant for a stored endpoint.
"""

from .base import Notifier
from .discord import DiscordNotifier
from .factory import NOTIFIER_REGISTRY, build_notifier
from .pushover import PushoverNotifier

__all__ = [
    "NOTIFIER_REGISTRY",
    "DiscordNotifier",
    "Notifier",
    "PushoverNotifier",
    "build_notifier",
]
