# syndicator/publishers/__init__.py

"""Клиенты каналов-получателей."""

from syndicator.publishers.telegram import (
    ContentRejectedError,
    DeliveryError,
    DeliveryPermissionError,
    DeliveryTransportError,
    TelegramPublisher,
)

__all__ = [
    "ContentRejectedError",
    "DeliveryError",
    "DeliveryPermissionError",
    "DeliveryTransportError",
    "TelegramPublisher",
]
