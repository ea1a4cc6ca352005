"""
Code Notifiers
==============
Email, SMS and development notifiers, selected by configuration.
"""

from typing import Optional

from ..config import NotifierConfig, VerificationConfig
from ..models import DeliveryChannel
from .base import Notifier, RecipientLookup, render_message
from .log import LogNotifier
from .sms import SmsNotifier
from .smtp import EmailNotifier


def get_notifier(
    config: VerificationConfig,
    notifier_config: Optional[NotifierConfig] = None,
    recipient_lookup: Optional[RecipientLookup] = None,
) -> Notifier:
    """Build the notifier for ``config.channel``."""
    if config.channel == DeliveryChannel.EMAIL:
        return EmailNotifier(notifier_config, recipient_lookup)
    if config.channel == DeliveryChannel.SMS:
        return SmsNotifier(notifier_config, recipient_lookup)
    return LogNotifier(recipient_lookup)


__all__ = [
    "Notifier",
    "RecipientLookup",
    "render_message",
    "EmailNotifier",
    "SmsNotifier",
    "LogNotifier",
    "get_notifier",
]
